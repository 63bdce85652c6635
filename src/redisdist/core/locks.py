"""Abstract interfaces for distributed locks."""

from __future__ import annotations

import abc
import datetime as dt
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar, Union


T = TypeVar("T")

Expiry = Optional[Union[float, dt.timedelta]]
LockedAction = Callable[[], Union[Awaitable[T], T]]


class AsyncLock(Protocol):
    async def __aenter__(self) -> Any: ...
    async def __aexit__(self, exc_type, exc, tb) -> None: ...


class LockManager(abc.ABC):
    @abc.abstractmethod
    async def acquire(self, key: str, expiry: Expiry) -> Optional[Any]:  # pragma: no cover - interface
        """Try once to take the lock; return a releasable handle or None if it is held."""
        raise NotImplementedError

    @abc.abstractmethod
    def lock(self, key: str, expiry: Expiry) -> AsyncLock:  # pragma: no cover - interface
        """Return an async context manager that attempts to acquire a lock."""
        raise NotImplementedError

    @abc.abstractmethod
    async def run_locked(
        self,
        key: str,
        expiry: Expiry,
        action: LockedAction[T],
        *,
        retry_count: int = 0,
        retry_interval: float = 0.0,
        default: Optional[T] = None,
    ) -> Optional[T]:  # pragma: no cover - interface
        """Run `action` while holding the lock, or return `default` if it never frees up."""
        raise NotImplementedError
