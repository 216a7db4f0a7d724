"""
gatekeeper.store.base

Shared-store contract used for all cross-instance coordination state.

Responsibilities:
- Define the async `SharedStore` protocol (atomic KV ops with TTL).
- Define bucket state/outcome types and the token-bucket transition both backends apply.
- Build namespaced keys so lock, quota and token state never collide.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class BucketState:
    tokens: int
    last_refill_ms: int


@dataclass(frozen=True, slots=True)
class BucketOutcome:
    permitted: bool
    remaining: int
    retry_after_ms: int


def apply_bucket(
    state: BucketState | None,
    *,
    capacity: int,
    refill_interval_ms: int,
    cost: int,
    now_ms: int,
) -> tuple[BucketState, BucketOutcome]:
    """
    Refill-then-take transition of a fixed-capacity bucket.

    Every elapsed full interval restores `capacity` tokens (capped); `last_refill_ms`
    only advances by whole intervals so partial progress is never lost. The Lua
    script in `store.redis` mirrors this function line for line.
    """

    if state is None:
        state = BucketState(tokens=capacity, last_refill_ms=now_ms)

    tokens = state.tokens
    last = state.last_refill_ms
    elapsed = now_ms - last
    if elapsed > 0:
        intervals = elapsed // refill_interval_ms
        if intervals > 0:
            tokens = min(capacity, tokens + intervals * capacity)
            last = last + intervals * refill_interval_ms

    if tokens >= cost:
        tokens -= cost
        outcome = BucketOutcome(permitted=True, remaining=tokens, retry_after_ms=0)
    else:
        needed = math.ceil((cost - tokens) / capacity)
        retry = max(0, needed * refill_interval_ms - (now_ms - last))
        outcome = BucketOutcome(permitted=False, remaining=tokens, retry_after_ms=retry)

    return BucketState(tokens=tokens, last_refill_ms=last), outcome


class SharedStore(Protocol):
    """
    Single source of truth for lock and quota state across service instances.

    Every method is atomic with respect to concurrent callers on any instance and
    raises `StoreUnavailable` when the backend cannot be reached.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, *, ttl_ms: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def set_if_absent(self, key: str, value: str, *, ttl_ms: int) -> bool: ...

    async def compare_and_set(
        self, key: str, expected: str, value: str, *, ttl_ms: int
    ) -> bool: ...

    async def compare_and_delete(self, key: str, expected: str) -> bool: ...

    async def take_tokens(
        self,
        key: str,
        *,
        capacity: int,
        refill_interval_ms: int,
        cost: int,
        now_ms: int,
        ttl_ms: int,
    ) -> BucketOutcome: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class StoreKeys:
    """
    Key builder; namespaces keep lock, quota and token state apart in one keyspace.
    """

    def __init__(self, prefix: str) -> None:
        self._prefix = prefix

    def lock(self, resource_id: str) -> str:
        return f"{self._prefix}:lock:{resource_id}"

    # Quota buckets live in three disjoint namespaces so a tier can never share
    # another tier's bucket. Category precedes the caller-controlled subject.
    def user_quota(self, subject: str, category: str) -> str:
        return f"{self._prefix}:quota-user:{category}:{subject}"

    def shared_quota(self, category: str) -> str:
        return f"{self._prefix}:quota-shared:{category}"

    def global_quota(self) -> str:
        return f"{self._prefix}:quota-global"

    def revoked(self, token_id: str) -> str:
        return f"{self._prefix}:revoked:{token_id}"

    def refresh(self, subject: str) -> str:
        return f"{self._prefix}:refresh:{subject}"


# --- Module Notes -----------------------------------------------------------
# Backends: `store.memory.MemoryStore` (single process) and `store.redis.RedisStore`.
