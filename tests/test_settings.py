from __future__ import annotations

import pytest

from redisdist.core.settings import DEFAULT_URL, RedisSettings
from redisdist.utils.env import get_bool_env, get_int_env


def test_defaults():
    settings = RedisSettings()
    assert settings.url == DEFAULT_URL
    assert settings.instance_name == ""
    assert settings.abort_connect is True
    assert settings.retry is None
    assert settings.connection_options()["socket_read_size"] == 65536


def test_rejects_unknown_scheme():
    with pytest.raises(ValueError):
        RedisSettings(url="http://localhost:6379")


def test_from_file_top_level(tmp_path):
    path = tmp_path / "redis.yaml"
    path.write_text(
        "url: rediss://cache.internal:6380/2\n"
        "instance_name: 'orders:'\n"
        "retry:\n"
        "  retries: 4\n"
    )
    settings = RedisSettings.from_file(path)

    assert settings.url == "rediss://cache.internal:6380/2"
    assert settings.instance_name == "orders:"
    assert settings.retry.retries == 4


def test_from_file_redis_section(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("redis:\n  default_database: 7\n  abort_connect: false\nother: 1\n")
    settings = RedisSettings.from_file(path)

    assert settings.default_database == 7
    assert settings.abort_connect is False


def test_from_file_invalid(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("socket_read_size: -1\n")
    with pytest.raises(ValueError, match="Invalid redis settings"):
        RedisSettings.from_file(path)


def test_from_env(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://10.1.1.1:6379/1")
    monkeypatch.setenv("REDIS_DEFAULT_DATABASE", "4")
    monkeypatch.setenv("REDIS_INSTANCE_NAME", "svc:")
    monkeypatch.setenv("REDIS_ABORT_CONNECT", "off")

    settings = RedisSettings.from_env()

    assert settings.url == "redis://10.1.1.1:6379/1"
    assert settings.default_database == 4
    assert settings.instance_name == "svc:"
    assert settings.abort_connect is False


def test_from_env_unset_keeps_defaults(monkeypatch):
    for name in ("REDIS_URL", "REDIS_DEFAULT_DATABASE", "REDIS_INSTANCE_NAME", "REDIS_ABORT_CONNECT"):
        monkeypatch.delenv(name, raising=False)
    assert RedisSettings.from_env().model_dump() == RedisSettings().model_dump()


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("FLAG", " No ")
    assert get_bool_env("FLAG", default=True) is False
    monkeypatch.setenv("FLAG", "")
    assert get_bool_env("FLAG", default=True) is True
    monkeypatch.setenv("FLAG", "   ")
    assert get_bool_env("FLAG") is False
    monkeypatch.setenv("FLAG", "YES")
    assert get_bool_env("FLAG") is True
    monkeypatch.delenv("FLAG")
    assert get_bool_env("FLAG", default=True) is True

    monkeypatch.setenv("NUMBER", " 12 ")
    assert get_int_env("NUMBER") == 12
    monkeypatch.setenv("NUMBER", "twelve")
    with pytest.raises(ValueError, match="NUMBER"):
        get_int_env("NUMBER")
    monkeypatch.delenv("NUMBER")
    assert get_int_env("NUMBER", default=3) == 3
