from __future__ import annotations

import fakeredis
import pytest

from fakes import FakeAsyncConnection, FakeConnection


@pytest.fixture
def server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def raw(server) -> fakeredis.FakeRedis:
    """Direct view of the fake store, bypassing the code under test."""
    return fakeredis.FakeRedis(server=server)


@pytest.fixture
def connection(server) -> FakeConnection:
    return FakeConnection(server)


@pytest.fixture
def async_connection(server) -> FakeAsyncConnection:
    return FakeAsyncConnection(server)
