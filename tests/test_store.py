"""
tests.test_store

In-memory shared store: atomic primitives, TTL expiry, and the bucket transition.
"""

from __future__ import annotations

import pytest
from conftest import FakeClock

from gatekeeper.store import BucketState, MemoryStore
from gatekeeper.store.base import apply_bucket


@pytest.mark.asyncio
async def test_set_if_absent_respects_ttl(store: MemoryStore, clock: FakeClock) -> None:
    assert await store.set_if_absent("k", "a", ttl_ms=1000)
    assert not await store.set_if_absent("k", "b", ttl_ms=1000)

    clock.advance(1.0)
    assert await store.get("k") is None
    assert await store.set_if_absent("k", "b", ttl_ms=1000)
    assert await store.get("k") == "b"


@pytest.mark.asyncio
async def test_compare_and_delete_checks_owner(store: MemoryStore) -> None:
    await store.set("k", "owner-1", ttl_ms=1000)

    assert not await store.compare_and_delete("k", "owner-2")
    assert await store.get("k") == "owner-1"
    assert await store.compare_and_delete("k", "owner-1")
    assert not await store.compare_and_delete("k", "owner-1")


@pytest.mark.asyncio
async def test_compare_and_set_refreshes_ttl(store: MemoryStore, clock: FakeClock) -> None:
    await store.set("k", "v", ttl_ms=1000)
    clock.advance(0.9)

    assert await store.compare_and_set("k", "v", "v", ttl_ms=1000)
    clock.advance(0.9)
    assert await store.get("k") == "v"
    assert not await store.compare_and_set("k", "other", "x", ttl_ms=1000)


@pytest.mark.asyncio
async def test_ping_reports_closed_store(store: MemoryStore) -> None:
    assert await store.ping()
    await store.close()
    assert not await store.ping()


def test_bucket_refills_whole_intervals_only() -> None:
    state = BucketState(tokens=0, last_refill_ms=10_000)

    state, outcome = apply_bucket(state, capacity=5, refill_interval_ms=1000, cost=1, now_ms=10_999)
    assert not outcome.permitted
    assert outcome.retry_after_ms == 1

    state, outcome = apply_bucket(state, capacity=5, refill_interval_ms=1000, cost=1, now_ms=12_500)
    assert outcome.permitted
    assert outcome.remaining == 4
    # Two whole intervals consumed; the half interval carries over.
    assert state.last_refill_ms == 12_000


def test_bucket_never_exceeds_capacity() -> None:
    state = BucketState(tokens=5, last_refill_ms=0)

    state, outcome = apply_bucket(state, capacity=5, refill_interval_ms=1000, cost=1, now_ms=60_000)
    assert outcome.remaining == 4
    assert state.tokens == 4
