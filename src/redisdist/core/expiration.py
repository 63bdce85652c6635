"""Expiration bookkeeping for cache entries.

Instants and durations are stored as ticks, 100 ns intervals counted from
0001-01-01T00:00:00 UTC, so entries stay readable by other clients that share
the same hash layout.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from redisdist.core.cache import CacheEntryOptions


NOT_PRESENT = -1
TICKS_PER_MICROSECOND = 10
TICKS_PER_MILLISECOND = 10_000

_TICKS_EPOCH = dt.datetime(1, 1, 1, tzinfo=dt.timezone.utc)
_MICROSECOND = dt.timedelta(microseconds=1)
_MILLISECOND = dt.timedelta(milliseconds=1)


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def as_utc(value: dt.datetime) -> dt.datetime:
    """Naive datetimes are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def timedelta_to_ticks(value: dt.timedelta) -> int:
    return (value // _MICROSECOND) * TICKS_PER_MICROSECOND


def to_ticks(value: dt.datetime) -> int:
    return timedelta_to_ticks(as_utc(value) - _TICKS_EPOCH)


def from_ticks(ticks: int) -> dt.datetime:
    return _TICKS_EPOCH + dt.timedelta(microseconds=ticks // TICKS_PER_MICROSECOND)


def _to_ttl_ms(value: dt.timedelta) -> int:
    # PEXPIRE 0 deletes the key outright.
    return max(1, value // _MILLISECOND)


@dataclass(frozen=True, slots=True)
class CacheExpiration:
    """Values written next to the payload: two tick fields and the key TTL."""

    absolute_ticks: int = NOT_PRESENT
    sliding_ticks: int = NOT_PRESENT
    ttl_ms: int = NOT_PRESENT

    @property
    def has_ttl(self) -> bool:
        return self.ttl_ms != NOT_PRESENT


def compute_expiration(
    options: "CacheEntryOptions", now: Optional[dt.datetime] = None
) -> CacheExpiration:
    """Turn entry options into stored fields and the TTL to apply at write time.

    An explicit `absolute_expiration` wins over a relative one. With both an
    absolute and a sliding component the TTL is the smaller of the two.

    Raises:
        TypeError: `options` is None.
        ValueError: `absolute_expiration` is not in the future.
    """
    if options is None:
        raise TypeError("options must not be None")
    now = as_utc(now) if now is not None else utc_now()

    absolute: Optional[dt.datetime] = None
    if options.absolute_expiration is not None:
        absolute = as_utc(options.absolute_expiration)
        if absolute <= now:
            raise ValueError(
                f"The absolute expiration value must be in the future, got {absolute.isoformat()}"
            )
    elif options.absolute_expiration_relative_to_now is not None:
        absolute = now + options.absolute_expiration_relative_to_now

    sliding = options.sliding_expiration

    absolute_ticks = to_ticks(absolute) if absolute is not None else NOT_PRESENT
    sliding_ticks = timedelta_to_ticks(sliding) if sliding is not None else NOT_PRESENT

    remaining = [sliding] if sliding is not None else []
    if absolute is not None:
        remaining.append(absolute - now)
    ttl_ms = _to_ttl_ms(min(remaining)) if remaining else NOT_PRESENT
    return CacheExpiration(absolute_ticks=absolute_ticks, sliding_ticks=sliding_ticks, ttl_ms=ttl_ms)
