"""Redis-backed distributed cache with absolute and sliding expiration.

Each entry is a hash with three fields: the absolute expiration instant and
the sliding duration (both in ticks, -1 when absent) and the payload. The key
TTL is what the server enforces; the two fields let every read recompute it.
Writes and read-and-refresh each run as a single Lua script so no reader can
see fields without the TTL that belongs to them.
"""

from __future__ import annotations

from typing import List, Optional

from redisdist.core.cache import NO_EXPIRATION, AsyncDistributedCache, CacheEntryOptions, DistributedCache
from redisdist.core.connection import AsyncRedisConnection, RedisConnection
from redisdist.core.expiration import compute_expiration, to_ticks, utc_now
from redisdist.utils.logging import get_logger


logger = get_logger(__name__)

ABSOLUTE_EXPIRATION_FIELD = "absexp"
SLIDING_EXPIRATION_FIELD = "sldexp"
DATA_FIELD = "data"

SET_SCRIPT = """
redis.call('HSET', KEYS[1], 'absexp', ARGV[1], 'sldexp', ARGV[2], 'data', ARGV[4])
if ARGV[3] ~= '-1' then
  redis.call('PEXPIRE', KEYS[1], ARGV[3])
else
  redis.call('PERSIST', KEYS[1])
end
return 1
"""

# ARGV[1] is the caller's current time in ticks. An entry past its absolute
# instant is deleted and reported as a miss. With a sliding component the TTL
# becomes the sliding duration, or the time left until the absolute instant
# when that is longer. Absolute-only entries keep the TTL set on write.
GET_AND_REFRESH_SCRIPT = """
local values = redis.call('HMGET', KEYS[1], 'absexp', 'sldexp', 'data')
if not values[1] and not values[2] and not values[3] then
  return values
end
local now = tonumber(ARGV[1])
local absolute = tonumber(values[1] or '-1') or -1
if absolute > -1 and absolute <= now then
  redis.call('DEL', KEYS[1])
  return {false, false, false}
end
local sliding = tonumber(values[2] or '-1') or -1
if sliding > -1 then
  local ttl = sliding
  if absolute > -1 then
    local remaining = absolute - now
    if remaining > ttl then
      ttl = remaining
    end
  end
  local ttl_ms = math.floor(ttl / 10000)
  if ttl_ms < 1 then
    ttl_ms = 1
  end
  redis.call('PEXPIRE', KEYS[1], ttl_ms)
end
return values
"""


def _check_key(key: str) -> None:
    if key is None:
        raise TypeError("key must not be None")


def _payload(values: Optional[List[Optional[bytes]]]) -> Optional[bytes]:
    if not values or all(value is None for value in values):
        return None
    return values[2] if len(values) > 2 else None


class RedisDistributedCache(DistributedCache):
    """Blocking cache over a shared `RedisConnection`."""

    def __init__(self, connection: RedisConnection, *, instance_name: Optional[str] = None) -> None:
        self._connection = connection
        self._instance = connection.settings.instance_name if instance_name is None else instance_name

    def _key(self, key: str) -> str:
        _check_key(key)
        return f"{self._instance}{key}"

    def get(self, key: str) -> Optional[bytes]:
        redis_key = self._key(key)
        database = self._connection.get_database()
        values = database.eval(GET_AND_REFRESH_SCRIPT, 1, redis_key, to_ticks(utc_now()))
        payload = _payload(values)
        logger.debug("Cache %s: %s", "HIT" if payload is not None else "MISS", redis_key)
        return payload

    def set(self, key: str, value: bytes, options: CacheEntryOptions = NO_EXPIRATION) -> None:
        redis_key = self._key(key)
        if value is None:
            raise TypeError("value must not be None")
        if options is None:
            raise TypeError("options must not be None")
        expiration = compute_expiration(options)
        database = self._connection.get_database()
        database.eval(
            SET_SCRIPT,
            1,
            redis_key,
            expiration.absolute_ticks,
            expiration.sliding_ticks,
            expiration.ttl_ms,
            value,
        )
        logger.debug("Cache SET: %s (TTL: %sms)", redis_key, expiration.ttl_ms)

    def refresh(self, key: str) -> None:
        self.get(key)

    def remove(self, key: str) -> None:
        redis_key = self._key(key)
        self._connection.get_database().delete(redis_key)
        logger.debug("Cache DELETE: %s", redis_key)


class AsyncRedisDistributedCache(AsyncDistributedCache):
    """Asyncio cache over a shared `AsyncRedisConnection`.

    Cancelling the calling task abandons the operation at its next await: while
    waiting for the connection or for a store round trip.
    """

    def __init__(self, connection: AsyncRedisConnection, *, instance_name: Optional[str] = None) -> None:
        self._connection = connection
        self._instance = connection.settings.instance_name if instance_name is None else instance_name

    def _key(self, key: str) -> str:
        _check_key(key)
        return f"{self._instance}{key}"

    async def get(self, key: str) -> Optional[bytes]:
        redis_key = self._key(key)
        database = await self._connection.get_database()
        values = await database.eval(GET_AND_REFRESH_SCRIPT, 1, redis_key, to_ticks(utc_now()))
        payload = _payload(values)
        logger.debug("Cache %s: %s", "HIT" if payload is not None else "MISS", redis_key)
        return payload

    async def set(self, key: str, value: bytes, options: CacheEntryOptions = NO_EXPIRATION) -> None:
        redis_key = self._key(key)
        if value is None:
            raise TypeError("value must not be None")
        if options is None:
            raise TypeError("options must not be None")
        expiration = compute_expiration(options)
        database = await self._connection.get_database()
        await database.eval(
            SET_SCRIPT,
            1,
            redis_key,
            expiration.absolute_ticks,
            expiration.sliding_ticks,
            expiration.ttl_ms,
            value,
        )
        logger.debug("Cache SET: %s (TTL: %sms)", redis_key, expiration.ttl_ms)

    async def refresh(self, key: str) -> None:
        await self.get(key)

    async def remove(self, key: str) -> None:
        redis_key = self._key(key)
        database = await self._connection.get_database()
        await database.delete(redis_key)
        logger.debug("Cache DELETE: %s", redis_key)
