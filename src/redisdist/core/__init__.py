"""Core primitives: connection manager, distributed cache and distributed lock."""

from .cache import NO_EXPIRATION, AsyncDistributedCache, CacheEntryOptions, DistributedCache
from .cache_redis import AsyncRedisDistributedCache, RedisDistributedCache
from .connection import AsyncRedisConnection, RedisConnection
from .locks import LockManager
from .locks_redis import RedisLock, RedisLockManager
from .settings import RedisSettings, RetrySettings

__all__ = [
    "AsyncDistributedCache",
    "AsyncRedisConnection",
    "AsyncRedisDistributedCache",
    "CacheEntryOptions",
    "DistributedCache",
    "LockManager",
    "NO_EXPIRATION",
    "RedisConnection",
    "RedisDistributedCache",
    "RedisLock",
    "RedisLockManager",
    "RedisSettings",
    "RetrySettings",
]
