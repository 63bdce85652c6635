"""Environment helper utilities."""

from __future__ import annotations

import os
from typing import Optional


_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _read(name: str) -> Optional[str]:
    """Stripped value of `name`; None when unset or blank."""
    value = os.environ.get(name, "").strip()
    return value or None


def get_bool_env(name: str, *, default: bool = False) -> bool:
    """Any value other than 0/false/no/off (case-insensitive) counts as set."""
    value = _read(name)
    if value is None:
        return default
    return value.lower() not in _FALSE_VALUES


def get_int_env(name: str, *, default: Optional[int] = None) -> Optional[int]:
    """Read an integer from the environment, keeping `default` when unset or blank."""
    value = _read(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer, got {value!r}") from exc
