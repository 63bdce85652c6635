"""Connection settings loader."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from redisdist.utils.env import get_bool_env, get_int_env


DEFAULT_URL = "redis://localhost:6379/0"
_SCHEMES = ("redis://", "rediss://", "unix://")


class RetrySettings(BaseModel):
    """Reconnection policy applied to every pooled connection."""

    retries: int = Field(default=3, ge=0)
    backoff_base: float = Field(default=0.05, gt=0)
    backoff_cap: float = Field(default=2.0, gt=0)


class RedisSettings(BaseModel):
    """Everything needed to open the shared store handle."""

    url: str = DEFAULT_URL
    default_database: Optional[int] = None
    instance_name: str = ""
    abort_connect: bool = True
    socket_timeout: Optional[float] = Field(default=5.0, gt=0)
    socket_connect_timeout: Optional[float] = Field(default=5.0, gt=0)
    socket_read_size: int = Field(default=65536, gt=0)
    max_connections: Optional[int] = Field(default=None, gt=0)
    retry: Optional[RetrySettings] = None

    @field_validator("url")
    @classmethod
    def _check_scheme(cls, value: str) -> str:
        if not value.startswith(_SCHEMES):
            raise ValueError(f"Redis url must start with one of {', '.join(_SCHEMES)}")
        return value

    def connection_options(self) -> Dict[str, Any]:
        """Keyword arguments shared by sync and async connection pools."""
        options: Dict[str, Any] = {
            "socket_timeout": self.socket_timeout,
            "socket_connect_timeout": self.socket_connect_timeout,
            "socket_read_size": self.socket_read_size,
        }
        if self.max_connections is not None:
            options["max_connections"] = self.max_connections
        return options

    @classmethod
    def from_file(cls, path: Path) -> "RedisSettings":
        data = yaml.safe_load(path.read_text()) or {}
        if isinstance(data, dict) and isinstance(data.get("redis"), dict):
            data = data["redis"]
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Invalid redis settings in {path}: {exc}") from exc

    @classmethod
    def from_env(cls, prefix: str = "REDIS_") -> "RedisSettings":
        data: Dict[str, Any] = {}
        url = os.getenv(f"{prefix}URL")
        if url:
            data["url"] = url
        default_database = get_int_env(f"{prefix}DEFAULT_DATABASE")
        if default_database is not None:
            data["default_database"] = default_database
        instance_name = os.getenv(f"{prefix}INSTANCE_NAME")
        if instance_name is not None:
            data["instance_name"] = instance_name
        data["abort_connect"] = get_bool_env(f"{prefix}ABORT_CONNECT", default=True)
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Invalid redis settings from environment: {exc}") from exc
