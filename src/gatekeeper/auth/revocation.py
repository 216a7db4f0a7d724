"""
gatekeeper.auth.revocation

Store-backed token bookkeeping.

Responsibilities:
- Denylist revoked access tokens until their natural expiry (logout).
- Keep one allowlisted refresh token per subject; refresh requires a match.
"""

from __future__ import annotations

from gatekeeper.auth.jwt import IssuedToken
from gatekeeper.auth.models import Principal
from gatekeeper.clock import Clock, system_clock
from gatekeeper.store.base import SharedStore, StoreKeys


class TokenRegistry:
    def __init__(self, *, store: SharedStore, keys: StoreKeys, clock: Clock = system_clock) -> None:
        self._store = store
        self._keys = keys
        self._clock = clock

    def _ttl_ms(self, expires_at_s: float) -> int:
        return int((expires_at_s - self._clock()) * 1000)

    async def revoke(self, principal: Principal) -> None:
        ttl = self._ttl_ms(principal.expires_at.timestamp())
        # Already-expired tokens are rejected by verification; nothing to store.
        if ttl > 0:
            await self._store.set(self._keys.revoked(principal.token_id), "1", ttl_ms=ttl)

    async def is_revoked(self, token_id: str) -> bool:
        return await self._store.get(self._keys.revoked(token_id)) is not None

    async def remember_refresh(self, subject: str, issued: IssuedToken) -> None:
        ttl = self._ttl_ms(issued.expires_at.timestamp())
        if ttl > 0:
            await self._store.set(self._keys.refresh(subject), issued.token_id, ttl_ms=ttl)

    async def refresh_matches(self, principal: Principal) -> bool:
        stored = await self._store.get(self._keys.refresh(principal.subject))
        return stored is not None and stored == principal.token_id

    async def forget_refresh(self, subject: str) -> None:
        await self._store.delete(self._keys.refresh(subject))
