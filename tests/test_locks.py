from __future__ import annotations

import asyncio
import datetime as dt

import pytest

from redisdist.core.locks_redis import RedisLockManager


class CountingLockManager(RedisLockManager):
    def __init__(self, connection, **kwargs) -> None:
        super().__init__(connection, **kwargs)
        self.attempts = 0

    async def acquire(self, key, expiry):
        self.attempts += 1
        return await super().acquire(key, expiry)


@pytest.fixture
def manager(async_connection) -> CountingLockManager:
    return CountingLockManager(async_connection)


@pytest.mark.asyncio
async def test_second_acquire_fails_while_first_is_held(manager, raw):
    first = await manager.acquire("job", 5)
    second = await manager.acquire("job", 5)

    assert first is not None
    assert second is None
    assert len(first.value) == 32
    assert raw.get("job") == first.value.encode()
    assert 0 < raw.pttl("job") <= 5_000


@pytest.mark.asyncio
async def test_release_only_once(manager, raw):
    held = await manager.acquire("job", dt.timedelta(seconds=5))

    assert await held.release() is True
    assert not raw.exists("job")
    assert await held.release() is False
    assert await manager.acquire("job", 5) is not None


@pytest.mark.asyncio
async def test_stale_holder_cannot_release_new_lease(manager, raw):
    stale = await manager.acquire("job", 0.1)
    await asyncio.sleep(0.2)
    current = await manager.acquire("job", 5)

    assert current is not None
    assert await stale.release() is False
    assert raw.get("job") == current.value.encode()


@pytest.mark.asyncio
async def test_lock_without_expiry_has_no_ttl(manager, raw):
    held = await manager.acquire("forever", None)
    assert raw.pttl("forever") == -1
    await held.release()


@pytest.mark.asyncio
async def test_infinite_expiry_means_no_ttl(manager, raw):
    held = await manager.acquire("forever", float("inf"))
    assert held is not None
    assert raw.pttl("forever") == -1
    assert await held.release() is True


@pytest.mark.asyncio
async def test_lock_handle_releases_on_exit(manager, raw):
    held = await manager.acquire("job", 5)
    async with held:
        assert raw.exists("job")
    assert not raw.exists("job")


@pytest.mark.asyncio
async def test_lock_scope_reports_acquisition(manager, raw):
    async with manager.lock("job", 5) as acquired:
        assert acquired is True
        async with manager.lock("job", 5) as again:
            assert again is False
        assert raw.exists("job")
    assert not raw.exists("job")


@pytest.mark.asyncio
async def test_key_prefix(async_connection, raw):
    manager = RedisLockManager(async_connection, key_prefix="lock:")
    held = await manager.acquire("job", 5)
    assert held.key == "lock:job"
    assert raw.exists("lock:job")


@pytest.mark.asyncio
async def test_run_locked_returns_action_result_and_releases(manager, raw):
    async def action():
        assert raw.exists("job")
        return 42

    assert await manager.run_locked("job", 5, action) == 42
    assert not raw.exists("job")


@pytest.mark.asyncio
async def test_run_locked_accepts_plain_callables(manager):
    assert await manager.run_locked("job", 5, lambda: "done") == "done"


@pytest.mark.asyncio
async def test_run_locked_skips_action_when_held(manager):
    calls = []
    await manager.acquire("job", 5)

    result = await manager.run_locked("job", 5, lambda: calls.append(1), default="busy")

    assert result == "busy"
    assert calls == []
    assert manager.attempts == 2


@pytest.mark.asyncio
async def test_run_locked_releases_when_action_fails(manager, raw):
    async def action():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        await manager.run_locked("job", 5, action, retry_count=3)
    assert not raw.exists("job")
    assert manager.attempts == 1


@pytest.mark.asyncio
async def test_run_locked_retries_until_the_lock_frees_up(manager):
    holder = await manager.acquire("job", 5)

    async def release_later():
        await asyncio.sleep(0.15)
        await holder.release()

    releaser = asyncio.create_task(release_later())
    result = await manager.run_locked("job", 5, lambda: "ran", retry_count=2, retry_interval=0.1)
    await releaser

    assert result == "ran"
    # holder + three attempts: 0s and 0.1s fail, 0.2s succeeds.
    assert manager.attempts == 4


@pytest.mark.asyncio
async def test_run_locked_gives_up_after_budget(manager):
    await manager.acquire("job", 5)
    manager.attempts = 0

    assert await manager.run_locked("job", 5, lambda: "ran", retry_count=2, retry_interval=0.01) is None
    assert manager.attempts == 3


@pytest.mark.asyncio
async def test_zero_retries_means_a_single_attempt(manager):
    await manager.acquire("job", 5)
    manager.attempts = 0

    assert await manager.run_locked("job", 5, lambda: "ran", retry_count=0) is None
    assert manager.attempts == 1


@pytest.mark.asyncio
async def test_run_locked_validates_budget(manager):
    with pytest.raises(ValueError):
        await manager.run_locked("job", 5, lambda: None, retry_count=-1)
    with pytest.raises(ValueError):
        await manager.run_locked("job", 5, lambda: None, retry_interval=-0.5)
    with pytest.raises(ValueError):
        await manager.acquire("job", 0)
