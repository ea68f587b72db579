"""Redis-backed windowed counter store.

Counters live in Redis so every API instance shares one budget per client.
Increment and expiry run inside a single Lua script, which Redis executes
atomically.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import redis.asyncio as redis
from redis.exceptions import RedisError

from nerix_gateway.adapters.rate_limit.base import AbstractCounterStore, CounterEntry
from nerix_gateway.core.errors import CounterStoreError, ErrorCode

logger = logging.getLogger(__name__)


_INCREMENT_LUA = """
-- KEYS[1] = counter key
-- ARGV[1] = window length in milliseconds
local c = redis.call('INCR', KEYS[1])
if c == 1 then
  redis.call('PEXPIRE', KEYS[1], tonumber(ARGV[1]))
end
local ttl = redis.call('PTTL', KEYS[1])
if ttl < 0 then
  redis.call('PEXPIRE', KEYS[1], tonumber(ARGV[1]))
  ttl = tonumber(ARGV[1])
end
return {c, ttl}
"""

_READ_LUA = """
-- KEYS[1] = counter key
local c = redis.call('GET', KEYS[1])
if not c then
  return {0, -2}
end
return {tonumber(c), redis.call('PTTL', KEYS[1])}
"""


class RedisCounterStore(AbstractCounterStore):
    """Counter store using Redis INCR/PEXPIRE.

    Args:
        client: An ``redis.asyncio.Redis`` client (or compatible object).
        clock: Time source used to turn key TTLs into reset timestamps.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._clock = clock

    @classmethod
    def from_url(cls, url: str, *, timeout_seconds: float = 0.5) -> "RedisCounterStore":
        """Build a store with its own connection pool.

        ``from_url`` is sync in redis-py; connections open lazily on first use.
        """
        client = redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=timeout_seconds,
            socket_timeout=timeout_seconds,
            health_check_interval=30,
        )
        return cls(client)

    async def increment(self, key: str, window_seconds: int) -> CounterEntry:
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        window_ms = window_seconds * 1000
        try:
            count, ttl_ms = await self._client.eval(_INCREMENT_LUA, 1, key, window_ms)
        except RedisError as exc:
            raise self._store_error("increment", exc) from exc

        now = self._clock()
        return CounterEntry(count=int(count), reset_at=now + int(ttl_ms) / 1000)

    async def get(self, key: str) -> CounterEntry | None:
        try:
            count, ttl_ms = await self._client.eval(_READ_LUA, 1, key)
        except RedisError as exc:
            raise self._store_error("get", exc) from exc

        if int(ttl_ms) < 0:
            return None
        return CounterEntry(count=int(count), reset_at=self._clock() + int(ttl_ms) / 1000)

    async def reset(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as exc:
            raise self._store_error("reset", exc) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as exc:
            logger.warning(
                "rate_limit.store_ping_failed",
                extra={"backend": "redis", "error_type": type(exc).__name__},
            )
            return False

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _store_error(operation: str, exc: Exception) -> CounterStoreError:
        return CounterStoreError(
            code=ErrorCode.RATE_LIMIT_UNAVAILABLE.value,
            message=f"Redis counter store {operation} failed",
            details={"backend": "redis", "context": {"error_type": type(exc).__name__}},
        )
