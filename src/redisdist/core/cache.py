"""Abstract interfaces for distributed caches."""

from __future__ import annotations

import abc
import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from redisdist.core.expiration import as_utc


class CacheEntryOptions(BaseModel):
    """Expiration settings for one cache entry.

    Any combination may be given. Without any of them the entry never expires.
    """

    model_config = ConfigDict(frozen=True)

    absolute_expiration: Optional[dt.datetime] = None
    absolute_expiration_relative_to_now: Optional[dt.timedelta] = None
    sliding_expiration: Optional[dt.timedelta] = None

    @field_validator("absolute_expiration")
    @classmethod
    def _normalize_instant(cls, value: Optional[dt.datetime]) -> Optional[dt.datetime]:
        return as_utc(value) if value is not None else None

    @field_validator("absolute_expiration_relative_to_now", "sliding_expiration")
    @classmethod
    def _require_positive(cls, value: Optional[dt.timedelta]) -> Optional[dt.timedelta]:
        if value is not None and value <= dt.timedelta(0):
            raise ValueError("expiration durations must be positive")
        return value


NO_EXPIRATION = CacheEntryOptions()


class DistributedCache(abc.ABC):
    """Blocking byte cache shared between processes."""

    @abc.abstractmethod
    def get(self, key: str) -> Optional[bytes]:  # pragma: no cover - interface
        """Return the payload or None, resetting the sliding window if there is one."""
        raise NotImplementedError

    @abc.abstractmethod
    def set(self, key: str, value: bytes, options: CacheEntryOptions = NO_EXPIRATION) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def refresh(self, key: str) -> None:  # pragma: no cover - interface
        """Reset the sliding window without reading the payload back."""
        raise NotImplementedError

    @abc.abstractmethod
    def remove(self, key: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def get_string(self, key: str, encoding: str = "utf-8") -> Optional[str]:
        value = self.get(key)
        return value.decode(encoding) if value is not None else None

    def set_string(
        self, key: str, value: str, options: CacheEntryOptions = NO_EXPIRATION, encoding: str = "utf-8"
    ) -> None:
        if value is None:
            raise TypeError("value must not be None")
        self.set(key, value.encode(encoding), options)


class AsyncDistributedCache(abc.ABC):
    """Asyncio counterpart of `DistributedCache`."""

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[bytes]:  # pragma: no cover - interface
        raise NotImplementedError

    @abc.abstractmethod
    async def set(
        self, key: str, value: bytes, options: CacheEntryOptions = NO_EXPIRATION
    ) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abc.abstractmethod
    async def refresh(self, key: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abc.abstractmethod
    async def remove(self, key: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def get_string(self, key: str, encoding: str = "utf-8") -> Optional[str]:
        value = await self.get(key)
        return value.decode(encoding) if value is not None else None

    async def set_string(
        self, key: str, value: str, options: CacheEntryOptions = NO_EXPIRATION, encoding: str = "utf-8"
    ) -> None:
        if value is None:
            raise TypeError("value must not be None")
        await self.set(key, value.encode(encoding), options)
