"""
gatekeeper.store.memory

In-process `SharedStore` backend.

Responsibilities:
- Provide the full store contract for local development and tests.
- Serialize every operation behind one asyncio lock so each call is atomic.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from gatekeeper.clock import Clock, system_clock
from gatekeeper.store.base import BucketOutcome, BucketState, apply_bucket


@dataclass(slots=True)
class _Entry:
    value: str
    expires_at_ms: int | None


class MemoryStore:
    """
    Only coordinates callers inside one process; use `RedisStore` for multiple instances.
    """

    def __init__(self, *, clock: Clock = system_clock) -> None:
        self._clock = clock
        self._data: dict[str, _Entry] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    def _now(self) -> int:
        return round(self._clock() * 1000)

    def _expiry(self, ttl_ms: int | None) -> int | None:
        return None if ttl_ms is None else self._now() + ttl_ms

    def _live(self, key: str) -> _Entry | None:
        # Lazy expiry: entries are evicted when touched after their deadline.
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at_ms is not None and entry.expires_at_ms <= self._now():
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> str | None:
        async with self._lock:
            entry = self._live(key)
            return entry.value if entry else None

    async def set(self, key: str, value: str, *, ttl_ms: int | None = None) -> None:
        async with self._lock:
            self._data[key] = _Entry(value, self._expiry(ttl_ms))

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def set_if_absent(self, key: str, value: str, *, ttl_ms: int) -> bool:
        async with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = _Entry(value, self._expiry(ttl_ms))
            return True

    async def compare_and_set(self, key: str, expected: str, value: str, *, ttl_ms: int) -> bool:
        async with self._lock:
            entry = self._live(key)
            if entry is None or entry.value != expected:
                return False
            self._data[key] = _Entry(value, self._expiry(ttl_ms))
            return True

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        async with self._lock:
            entry = self._live(key)
            if entry is None or entry.value != expected:
                return False
            del self._data[key]
            return True

    async def take_tokens(
        self,
        key: str,
        *,
        capacity: int,
        refill_interval_ms: int,
        cost: int,
        now_ms: int,
        ttl_ms: int,
    ) -> BucketOutcome:
        async with self._lock:
            entry = self._live(key)
            state = _decode_bucket(entry.value) if entry else None
            new_state, outcome = apply_bucket(
                state,
                capacity=capacity,
                refill_interval_ms=refill_interval_ms,
                cost=cost,
                now_ms=now_ms,
            )
            self._data[key] = _Entry(
                f"{new_state.tokens}:{new_state.last_refill_ms}", self._expiry(ttl_ms)
            )
            return outcome

    async def ping(self) -> bool:
        return not self._closed

    async def close(self) -> None:
        self._closed = True


def _decode_bucket(raw: str) -> BucketState:
    tokens, last = raw.split(":", 1)
    return BucketState(tokens=int(tokens), last_refill_ms=int(last))
