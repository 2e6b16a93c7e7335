"""Redis-backed counter store for multi-instance deployments."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .exceptions import StoreUnavailableError
from .models import CounterKey, IncrementResult
from .period import retention_end
from .store import CounterStore, PolicyResolver, check_delta, check_limit

# KEYS[1] counter key; ARGV: delta, limit, expire-at epoch seconds ('' = none)
_TRY_INCREMENT_LUA = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
local delta = tonumber(ARGV[1])
local limit = tonumber(ARGV[2])
if current + delta > limit then
    return {0, current}
end
local value = redis.call('INCRBY', KEYS[1], delta)
if ARGV[3] ~= '' then
    redis.call('EXPIREAT', KEYS[1], ARGV[3])
end
return {1, value}
"""

# KEYS[1] counter key; ARGV: delta, expire-at epoch seconds ('' = none)
_INCREMENT_LUA = """
local value = redis.call('INCRBY', KEYS[1], ARGV[1])
if ARGV[2] ~= '' then
    redis.call('EXPIREAT', KEYS[1], ARGV[2])
end
return value
"""

# KEYS[1] counter key; ARGV: delta. Never goes below zero or creates the key.
_RELEASE_LUA = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
if current <= 0 then
    return 0
end
return redis.call('DECRBY', KEYS[1], math.min(tonumber(ARGV[1]), current))
"""


class RedisCounterStore(CounterStore):
    """Counter store shared between processes through Redis.

    Check-and-increment runs as a Lua script so the comparison and the INCRBY
    are atomic on the server. Keys carry an EXPIREAT at the end of their
    retention window, so expiry is left to Redis and ``sweep_expired`` has
    nothing to remove.
    """

    def __init__(
        self,
        client: Any,
        policy_of: PolicyResolver,
        *,
        key_prefix: str = "quota:",
    ) -> None:
        self._client = client
        self._policy_of = policy_of
        self._prefix = key_prefix
        self._try_script = client.register_script(_TRY_INCREMENT_LUA)
        self._incr_script = client.register_script(_INCREMENT_LUA)
        self._release_script = client.register_script(_RELEASE_LUA)

    @classmethod
    def from_url(
        cls,
        url: str,
        policy_of: PolicyResolver,
        *,
        key_prefix: str = "quota:",
    ) -> RedisCounterStore:
        client = aioredis.Redis.from_url(url, decode_responses=True)
        return cls(client, policy_of, key_prefix=key_prefix)

    async def get(self, key: CounterKey) -> int:
        try:
            value = await self._client.get(key.render(self._prefix))
        except RedisError as e:
            raise StoreUnavailableError(f"Redis GET failed: {e}", cause=e) from e
        return int(value) if value is not None else 0

    async def increment_and_get(self, key: CounterKey, delta: int) -> int:
        check_delta(delta)
        try:
            value = await self._incr_script(
                keys=[key.render(self._prefix)],
                args=[delta, self._expire_at(key)],
            )
        except RedisError as e:
            raise StoreUnavailableError(f"Redis INCRBY failed: {e}", cause=e) from e
        return int(value)

    async def try_increment(self, key: CounterKey, delta: int, limit: int) -> IncrementResult:
        check_delta(delta)
        check_limit(limit)
        try:
            applied, value = await self._try_script(
                keys=[key.render(self._prefix)],
                args=[delta, limit, self._expire_at(key)],
            )
        except RedisError as e:
            raise StoreUnavailableError(f"Redis check-and-increment failed: {e}", cause=e) from e
        return IncrementResult(applied=bool(int(applied)), value=int(value))

    async def release(self, key: CounterKey, delta: int) -> int:
        check_delta(delta)
        try:
            value = await self._release_script(keys=[key.render(self._prefix)], args=[delta])
        except RedisError as e:
            raise StoreUnavailableError(f"Redis DECRBY failed: {e}", cause=e) from e
        return int(value)

    async def sweep_expired(self, now: datetime, policy_of: PolicyResolver) -> int:
        return 0

    async def size(self) -> int:
        count = 0
        try:
            async for _ in self._client.scan_iter(match=f"{self._prefix}*"):
                count += 1
        except RedisError as e:
            raise StoreUnavailableError(f"Redis SCAN failed: {e}", cause=e) from e
        return count

    async def close(self) -> None:
        await self._client.aclose()

    def _expire_at(self, key: CounterKey) -> int | str:
        policy = self._policy_of(key.service, key.metric)
        if policy is None:
            return ""
        end = retention_end(policy, key.period_key)
        return int(end.timestamp()) if end is not None else ""
