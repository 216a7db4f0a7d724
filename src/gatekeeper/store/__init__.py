"""
gatekeeper.store

Shared-store package (lock, quota and token state).

Responsibilities:
- Expose the `SharedStore` contract and key builder.
- Build the configured backend at startup.
"""

from __future__ import annotations

from gatekeeper.clock import Clock, system_clock
from gatekeeper.settings import Settings
from gatekeeper.store.base import BucketOutcome, BucketState, SharedStore, StoreKeys
from gatekeeper.store.memory import MemoryStore
from gatekeeper.store.redis import RedisStore

__all__ = [
    "BucketOutcome",
    "BucketState",
    "MemoryStore",
    "RedisStore",
    "SharedStore",
    "StoreKeys",
    "create_store",
]


def create_store(settings: Settings, *, clock: Clock = system_clock) -> SharedStore:
    if settings.store_backend == "redis":
        return RedisStore.from_url(settings.redis_url)
    return MemoryStore(clock=clock)


# --- Module Notes -----------------------------------------------------------
# The store handle is created once per process and shared read-only by all requests.
