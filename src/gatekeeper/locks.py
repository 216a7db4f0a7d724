"""
gatekeeper.locks

Lease-based distributed lock manager.

Responsibilities:
- Acquire exclusive, time-bounded ownership of a resource id via atomic set-if-absent.
- Release/extend only when the caller still owns the lease (owner-token check).
- Provide a scoped `hold` helper that releases on every exit path.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

from gatekeeper.clock import Clock, system_clock
from gatekeeper.errors import LockUnavailable
from gatekeeper.observability.logging import get_logger
from gatekeeper.settings import LockSettings
from gatekeeper.store.base import SharedStore, StoreKeys

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class LockHandle:
    resource_id: str
    owner_token: str
    acquired_at: datetime
    lease_ms: int


class LockManager:
    def __init__(
        self,
        *,
        store: SharedStore,
        keys: StoreKeys,
        settings: LockSettings,
        clock: Clock = system_clock,
    ) -> None:
        self._store = store
        self._keys = keys
        self._settings = settings
        self._clock = clock

    async def try_acquire(self, resource_id: str, *, lease_ms: int | None = None) -> LockHandle | None:
        """Single non-blocking attempt; `None` when another holder's lease is live."""

        lease = lease_ms or self._settings.default_lease_ms
        owner = uuid.uuid4().hex
        acquired = await self._store.set_if_absent(self._keys.lock(resource_id), owner, ttl_ms=lease)
        if not acquired:
            return None
        return LockHandle(
            resource_id=resource_id,
            owner_token=owner,
            acquired_at=datetime.fromtimestamp(self._clock(), tz=UTC),
            lease_ms=lease,
        )

    async def acquire(
        self,
        resource_id: str,
        *,
        lease_ms: int | None = None,
        wait_timeout_ms: int | None = None,
    ) -> LockHandle:
        """
        Poll until the lock is free or `wait_timeout_ms` elapses, then raise `LockUnavailable`.
        """

        wait_ms = self._settings.wait_timeout_ms if wait_timeout_ms is None else wait_timeout_ms
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_ms / 1000
        poll_s = self._settings.poll_interval_ms / 1000

        while True:
            handle = await self.try_acquire(resource_id, lease_ms=lease_ms)
            if handle is not None:
                log.debug("lock.acquired", resource_id=resource_id, lease_ms=handle.lease_ms)
                return handle
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise LockUnavailable(resource_id, f"Lock on {resource_id!r} is held")
            await asyncio.sleep(min(poll_s, remaining))

    async def release(self, handle: LockHandle) -> bool:
        """
        Release only if `handle` still owns the lease. Returns False for stale or repeated
        releases, which leaves any newer holder untouched.
        """

        released = await self._store.compare_and_delete(
            self._keys.lock(handle.resource_id), handle.owner_token
        )
        if released:
            log.debug("lock.released", resource_id=handle.resource_id)
        else:
            log.info("lock.release_noop", resource_id=handle.resource_id)
        return released

    async def extend(self, handle: LockHandle, *, lease_ms: int | None = None) -> bool:
        """Reset the lease TTL while still the owner; False if the lease was lost."""

        lease = lease_ms or handle.lease_ms
        return await self._store.compare_and_set(
            self._keys.lock(handle.resource_id),
            handle.owner_token,
            handle.owner_token,
            ttl_ms=lease,
        )

    @asynccontextmanager
    async def hold(
        self,
        resource_id: str,
        *,
        lease_ms: int | None = None,
        wait_timeout_ms: int | None = None,
    ) -> AsyncIterator[LockHandle]:
        handle = await self.acquire(resource_id, lease_ms=lease_ms, wait_timeout_ms=wait_timeout_ms)
        try:
            yield handle
        finally:
            # Shielded so a cancelled caller still frees the lease.
            await asyncio.shield(self.release(handle))


# --- Module Notes -----------------------------------------------------------
# A holder that outlives its lease loses exclusivity silently; long-running
# handlers should call `extend` before the lease elapses.
