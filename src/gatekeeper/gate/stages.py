"""
gatekeeper.gate.stages

Ordered processing stages of the gate.

Responsibilities:
- TokenStage: bearer token -> Principal (signature, expiry, revocation, roles).
- QuotaStage: take a permit from every configured limiter.
- LockStage: hold the operation's resource lease for the handler's duration.

Each stage has an `enter` (pre) step and an `exit` (post) step; the pipeline
runs exits in reverse order for every stage whose `enter` completed.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from gatekeeper.auth.jwt import TokenVerifier
from gatekeeper.auth.models import Principal
from gatekeeper.auth.revocation import TokenRegistry
from gatekeeper.errors import (
    Forbidden,
    LockUnavailable,
    QuotaExceeded,
    ResourceBusy,
    RevokedToken,
    StoreUnavailable,
)
from gatekeeper.gate.state import GateContext, GateStage
from gatekeeper.locks import LockHandle, LockManager
from gatekeeper.observability.logging import get_logger
from gatekeeper.ratelimit import Denied, RateLimiter, RateLimitKey
from gatekeeper.settings import LockSettings

log = get_logger(__name__)


class Stage(Protocol):
    async def enter(self, ctx: GateContext, token: str | None, request: Any) -> None: ...

    async def exit(self, ctx: GateContext) -> None: ...


class TokenStage:
    def __init__(self, *, verifier: TokenVerifier, registry: TokenRegistry) -> None:
        self.verifier = verifier
        self._registry = registry

    async def authenticate(self, token: str | None) -> Principal:
        principal = self.verifier.verify(token or "")
        if await self._registry.is_revoked(principal.token_id):
            raise RevokedToken()
        return principal

    async def enter(self, ctx: GateContext, token: str | None, request: Any) -> None:
        principal = await self.authenticate(token)
        ctx.principal = principal
        ctx.advance(GateStage.token_verified)

        required = ctx.operation.required_roles
        if required and not principal.has_roles(required):
            raise Forbidden(f"Operation {ctx.operation.name!r} requires roles {sorted(required)}")

    async def exit(self, ctx: GateContext) -> None:
        return None


class QuotaStage:
    def __init__(self, *, limiters: list[RateLimiter]) -> None:
        # Checked in order; the first denial stops the request.
        self._limiters = limiters

    async def enter(self, ctx: GateContext, token: str | None, request: Any) -> None:
        principal = ctx.require_principal()
        key = RateLimitKey(principal_id=principal.subject, category=ctx.operation.category)
        for limiter in self._limiters:
            decision = await limiter.try_acquire(key, cost=ctx.operation.cost)
            if isinstance(decision, Denied):
                raise QuotaExceeded(decision.retry_after_ms)
        ctx.advance(GateStage.quota_checked)

    async def exit(self, ctx: GateContext) -> None:
        # Permits are consumed, not returned.
        return None


class LockStage:
    def __init__(self, *, locks: LockManager, settings: LockSettings) -> None:
        self._locks = locks
        self._settings = settings

    async def enter(self, ctx: GateContext, token: str | None, request: Any) -> None:
        resource_id = ctx.operation.resource_id(ctx.require_principal(), request)
        if resource_id is None:
            return
        ctx.resource_id = resource_id
        ctx.lock = await self._acquire_with_retry(ctx, resource_id)
        ctx.advance(GateStage.lock_held)

    async def _acquire_with_retry(self, ctx: GateContext, resource_id: str) -> LockHandle:
        op = ctx.operation
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_retries + 1),
            wait=wait_exponential(multiplier=self._settings.retry_backoff_ms / 1000),
            retry=retry_if_exception_type(LockUnavailable),
            before_sleep=_log_lock_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    handle = await self._locks.acquire(
                        resource_id,
                        lease_ms=op.lease_ms,
                        wait_timeout_ms=op.wait_timeout_ms,
                    )
        except LockUnavailable as e:
            raise ResourceBusy(resource_id, f"Resource {resource_id!r} is busy") from e
        return handle

    async def exit(self, ctx: GateContext) -> None:
        if ctx.lock is None:
            return
        handle, ctx.lock = ctx.lock, None
        try:
            # Shielded so a cancelled request still frees its lease.
            await asyncio.shield(self._locks.release(handle))
        except StoreUnavailable:
            # The lease TTL reclaims the lock; the handler outcome must not be masked.
            log.error(
                "gate.lock_release_failed",
                resource_id=handle.resource_id,
                lease_ms=handle.lease_ms,
            )


def _log_lock_retry(retry_state: RetryCallState) -> None:
    log.info(
        "gate.lock_retry",
        attempt=retry_state.attempt_number,
        sleep_s=retry_state.next_action.sleep if retry_state.next_action else None,
    )
