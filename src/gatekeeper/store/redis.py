"""
gatekeeper.store.redis

Redis-backed `SharedStore` for multi-instance deployments.

Responsibilities:
- Map each store operation onto one atomic Redis round trip (`SET NX PX` or a Lua script).
- Translate connection/command failures into `StoreUnavailable` so callers fail closed.
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import TypeVar

import redis.asyncio as redis
from redis.exceptions import RedisError

from gatekeeper.errors import StoreUnavailable
from gatekeeper.observability.logging import get_logger
from gatekeeper.store.base import BucketOutcome

log = get_logger(__name__)

T = TypeVar("T")

_COMPARE_AND_DELETE = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""

_COMPARE_AND_SET = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    redis.call('SET', KEYS[1], ARGV[2], 'PX', ARGV[3])
    return 1
end
return 0
"""

# Mirrors `store.base.apply_bucket`.
_TAKE_TOKENS = """
local capacity = tonumber(ARGV[1])
local interval = tonumber(ARGV[2])
local cost = tonumber(ARGV[3])
local now = tonumber(ARGV[4])
local ttl = tonumber(ARGV[5])

local state = redis.call('HMGET', KEYS[1], 'tokens', 'last_refill')
local tokens = tonumber(state[1])
local last = tonumber(state[2])
if tokens == nil or last == nil then
    tokens = capacity
    last = now
end

local elapsed = now - last
if elapsed > 0 then
    local intervals = math.floor(elapsed / interval)
    if intervals > 0 then
        tokens = math.min(capacity, tokens + intervals * capacity)
        last = last + intervals * interval
    end
end

local permitted = 0
local retry = 0
if tokens >= cost then
    tokens = tokens - cost
    permitted = 1
else
    local needed = math.ceil((cost - tokens) / capacity)
    retry = needed * interval - (now - last)
    if retry < 0 then
        retry = 0
    end
end

redis.call('HSET', KEYS[1], 'tokens', tokens, 'last_refill', last)
redis.call('PEXPIRE', KEYS[1], ttl)
return {permitted, tokens, retry}
"""


class RedisStore:
    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self._cad = client.register_script(_COMPARE_AND_DELETE)
        self._cas = client.register_script(_COMPARE_AND_SET)
        self._take = client.register_script(_TAKE_TOKENS)

    @classmethod
    def from_url(cls, url: str) -> RedisStore:
        # decode_responses keeps values as str, matching the protocol.
        return cls(redis.Redis.from_url(url, decode_responses=True))

    async def _call(self, op: str, aw: Awaitable[T]) -> T:
        try:
            return await aw
        except RedisError as e:
            log.error("store.unavailable", op=op, error=str(e))
            raise StoreUnavailable(f"Redis {op} failed") from e

    async def get(self, key: str) -> str | None:
        return await self._call("get", self._client.get(key))

    async def set(self, key: str, value: str, *, ttl_ms: int | None = None) -> None:
        await self._call("set", self._client.set(key, value, px=ttl_ms))

    async def delete(self, key: str) -> None:
        await self._call("delete", self._client.delete(key))

    async def set_if_absent(self, key: str, value: str, *, ttl_ms: int) -> bool:
        result = await self._call("set_if_absent", self._client.set(key, value, nx=True, px=ttl_ms))
        return bool(result)

    async def compare_and_set(self, key: str, expected: str, value: str, *, ttl_ms: int) -> bool:
        result = await self._call(
            "compare_and_set", self._cas(keys=[key], args=[expected, value, ttl_ms])
        )
        return int(result) == 1

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        result = await self._call("compare_and_delete", self._cad(keys=[key], args=[expected]))
        return int(result) == 1

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
        permitted, remaining, retry = await self._call(
            "take_tokens",
            self._take(keys=[key], args=[capacity, refill_interval_ms, cost, now_ms, ttl_ms]),
        )
        return BucketOutcome(
            permitted=int(permitted) == 1,
            remaining=int(remaining),
            retry_after_ms=int(retry),
        )

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            log.warning("store.ping_failed", error=str(e))
            return False

    async def close(self) -> None:
        await self._client.aclose()


# --- Module Notes -----------------------------------------------------------
# `now_ms` is supplied by the caller rather than read from Redis TIME so the
# bucket math stays identical to the in-memory backend; instances are expected
# to run with synchronized clocks.
