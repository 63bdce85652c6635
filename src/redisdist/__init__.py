"""Lazily connected redis handles, a sliding-expiration distributed cache and distributed locks."""

from .core import (
    AsyncDistributedCache,
    AsyncRedisConnection,
    AsyncRedisDistributedCache,
    CacheEntryOptions,
    DistributedCache,
    LockManager,
    NO_EXPIRATION,
    RedisConnection,
    RedisDistributedCache,
    RedisLock,
    RedisLockManager,
    RedisSettings,
    RetrySettings,
)

__all__ = [
    "__version__",
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

__version__ = "0.1.0"
