"""Redis-based distributed lock using SET NX PX semantics."""

from __future__ import annotations

import datetime as dt
import inspect
import logging
import math
import uuid
from typing import Any, Optional

from tenacity import AsyncRetrying, before_sleep_log, retry_if_result, stop_after_attempt, wait_fixed, wait_none

from redisdist.core.commands import execute_async
from redisdist.core.connection import AsyncRedisConnection
from redisdist.core.locks import Expiry, LockedAction, LockManager, T
from redisdist.utils.logging import get_logger


logger = get_logger(__name__)

RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""

# Returned by a single attempt when someone else holds the lock.
_NOT_ACQUIRED = object()


def _expiry_ms(expiry: Expiry) -> Optional[int]:
    if expiry is None:
        return None
    if isinstance(expiry, dt.timedelta):
        expiry = expiry.total_seconds()
    if expiry <= 0:
        raise ValueError("lock expiry must be positive")
    if math.isinf(expiry):
        return None
    return max(1, int(expiry * 1000))


class RedisLock:
    """A held lease. Only the holder of `value` can release it."""

    def __init__(self, connection: AsyncRedisConnection, key: str, value: str, expiry: Expiry) -> None:
        self._connection = connection
        self.key = key
        self.value = value
        self.expiry = expiry

    async def release(self) -> bool:
        """Delete the key if it still holds our token; False once expired or already released."""
        released = await execute_async(
            self._connection, lambda db: db.eval(RELEASE_SCRIPT, 1, self.key, self.value)
        )
        logger.debug("Lock %s: %s", "released" if released else "not held", self.key)
        return bool(released)

    async def __aenter__(self) -> "RedisLock":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()

    def __repr__(self) -> str:
        return f"RedisLock(key={self.key!r}, expiry={self.expiry!r})"


class _LockScope:
    def __init__(self, manager: "RedisLockManager", key: str, expiry: Expiry) -> None:
        self._manager = manager
        self._key = key
        self._expiry = expiry
        self._lock: Optional[RedisLock] = None

    async def __aenter__(self) -> bool:
        self._lock = await self._manager.acquire(self._key, self._expiry)
        return self._lock is not None

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._lock is None:
            return
        try:
            await self._lock.release()
        finally:
            self._lock = None


class RedisLockManager(LockManager):
    def __init__(self, connection: AsyncRedisConnection, *, key_prefix: str = "") -> None:
        self._connection = connection
        self._key_prefix = key_prefix

    async def acquire(self, key: str, expiry: Expiry) -> Optional[RedisLock]:
        if key is None:
            raise TypeError("key must not be None")
        redis_key = f"{self._key_prefix}{key}"
        token = uuid.uuid4().hex
        px = _expiry_ms(expiry)
        acquired = await execute_async(
            self._connection, lambda db: db.set(redis_key, token, px=px, nx=True)
        )
        if not acquired:
            logger.debug("Lock busy: %s", redis_key)
            return None
        logger.debug("Lock acquired: %s", redis_key)
        return RedisLock(self._connection, redis_key, token, expiry)

    def lock(self, key: str, expiry: Expiry = 30.0) -> _LockScope:
        return _LockScope(self, key, expiry)

    async def _attempt(self, key: str, expiry: Expiry, action: LockedAction[T]) -> Any:
        redis_lock = await self.acquire(key, expiry)
        if redis_lock is None:
            return _NOT_ACQUIRED
        try:
            result = action()
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            await redis_lock.release()

    async def run_locked(
        self,
        key: str,
        expiry: Expiry,
        action: LockedAction[T],
        *,
        retry_count: int = 0,
        retry_interval: float = 0.0,
        default: Optional[T] = None,
    ) -> Optional[T]:
        """Acquire `key`, run `action`, release; retry acquisition up to `retry_count` times.

        Failures of `action` are never retried: they propagate after the lock
        is released. When the lock could not be taken on any attempt `default`
        is returned and `action` never runs.
        """
        if retry_count < 0:
            raise ValueError("retry_count must not be negative")
        if retry_interval < 0:
            raise ValueError("retry_interval must not be negative")

        retrying = AsyncRetrying(
            stop=stop_after_attempt(retry_count + 1),
            wait=wait_fixed(retry_interval) if retry_interval > 0 else wait_none(),
            retry=retry_if_result(lambda outcome: outcome is _NOT_ACQUIRED),
            retry_error_callback=lambda state: default,
            before_sleep=before_sleep_log(logger, logging.DEBUG),
        )
        result = await retrying(self._attempt, key, expiry, action)
        if result is _NOT_ACQUIRED:
            return default
        return result
