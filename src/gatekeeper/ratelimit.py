"""
gatekeeper.ratelimit

Distributed token-bucket rate limiter.

Responsibilities:
- Map a principal + operation category onto a bucket key in the shared store.
- Atomically check-and-decrement the bucket in a single store call.
- Report denials with a retry hint derived from the refill cadence and deficit.
"""

from __future__ import annotations

from dataclasses import dataclass

from gatekeeper.clock import Clock, now_ms, system_clock
from gatekeeper.observability.logging import get_logger
from gatekeeper.settings import RateLimitSettings
from gatekeeper.store.base import SharedStore, StoreKeys

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    capacity: int
    refill_interval_ms: int
    per_principal: bool = True
    # One bucket for every caller and category (the global tier).
    service_wide: bool = False

    @classmethod
    def per_principal_from(cls, settings: RateLimitSettings) -> RateLimitPolicy:
        return cls(
            capacity=settings.capacity,
            refill_interval_ms=settings.refill_interval_ms,
            per_principal=settings.per_principal,
        )

    @classmethod
    def global_from(cls, settings: RateLimitSettings) -> RateLimitPolicy | None:
        if settings.global_capacity <= 0:
            return None
        return cls(
            capacity=settings.global_capacity,
            refill_interval_ms=settings.global_refill_interval_ms,
            per_principal=False,
            service_wide=True,
        )

    @property
    def state_ttl_ms(self) -> int:
        # Idle buckets are full again after one interval, so they can be dropped soon after.
        return max(2 * self.refill_interval_ms, 1000)


@dataclass(frozen=True, slots=True)
class RateLimitKey:
    principal_id: str | None
    category: str = "default"


@dataclass(frozen=True, slots=True)
class Permitted:
    remaining: int


@dataclass(frozen=True, slots=True)
class Denied:
    retry_after_ms: int


Decision = Permitted | Denied


class RateLimiter:
    def __init__(
        self,
        *,
        store: SharedStore,
        keys: StoreKeys,
        policy: RateLimitPolicy,
        clock: Clock = system_clock,
        name: str = "principal",
    ) -> None:
        self._store = store
        self._keys = keys
        self._clock = clock
        self.policy = policy
        self.name = name

    def _store_key(self, key: RateLimitKey) -> str:
        if self.policy.service_wide:
            return self._keys.global_quota()
        if not self.policy.per_principal:
            return self._keys.shared_quota(key.category)
        if key.principal_id is None:
            raise ValueError("per-principal limiter needs a principal_id")
        return self._keys.user_quota(key.principal_id, key.category)

    async def try_acquire(self, key: RateLimitKey, cost: int = 1) -> Decision:
        """
        Non-blocking: returns immediately with `Permitted` or `Denied(retry_after_ms)`.
        """

        if cost < 1:
            raise ValueError("cost must be at least 1")
        if cost > self.policy.capacity:
            raise ValueError(
                f"cost {cost} exceeds bucket capacity {self.policy.capacity} and can never be granted"
            )

        outcome = await self._store.take_tokens(
            self._store_key(key),
            capacity=self.policy.capacity,
            refill_interval_ms=self.policy.refill_interval_ms,
            cost=cost,
            now_ms=now_ms(self._clock),
            ttl_ms=self.policy.state_ttl_ms,
        )
        if outcome.permitted:
            return Permitted(remaining=outcome.remaining)

        log.warning(
            "ratelimit.denied",
            limiter=self.name,
            principal=key.principal_id,
            category=key.category,
            retry_after_ms=outcome.retry_after_ms,
        )
        return Denied(retry_after_ms=outcome.retry_after_ms)


# --- Module Notes -----------------------------------------------------------
# The gate composes an optional global limiter (one service-wide bucket across
# all categories) ahead of the per-principal or per-category shared limiter.
