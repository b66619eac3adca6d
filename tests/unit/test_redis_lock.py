from datetime import date, time
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import LockNotOwnedError

from app.core.exceptions import PersistenceError
from app.core.redis import RedisClient

DAY = date(2030, 1, 8)
START = time(10, 30)


def lock_returning(acquired):
    lock = AsyncMock()
    lock.name = "slot_lock:1:2030-01-08:10:30"
    lock.acquire.return_value = acquired
    return lock


def client_with(lock):
    redis_mock = MagicMock()
    redis_mock.lock.return_value = lock
    client = RedisClient("redis://localhost:6379/0")
    client.get_redis = AsyncMock(return_value=redis_mock)
    return client, redis_mock


@pytest.mark.unit
class TestSlotLock:
    """Unit tests for the per-slot admission lock."""

    def test_lock_key(self):
        assert RedisClient.slot_lock_key(3, DAY, START) == "slot_lock:3:2030-01-08:10:30"

    async def test_disabled_client_skips_lock(self):
        client = RedisClient("")
        client.get_redis = AsyncMock()

        assert client.enabled is False
        assert await client.acquire_slot_lock(1, DAY, START) is None
        client.get_redis.assert_not_called()

    async def test_acquire_uses_ttl_and_bounded_wait(self):
        lock = lock_returning(True)
        client, redis_mock = client_with(lock)

        held = await client.acquire_slot_lock(
            1, DAY, START, ttl_seconds=7, wait_seconds=2, poll_interval=0.01
        )

        assert held is lock
        redis_mock.lock.assert_called_once_with(
            "slot_lock:1:2030-01-08:10:30",
            timeout=7,
            sleep=0.01,
            blocking_timeout=2,
        )
        lock.acquire.assert_awaited_once()

    async def test_acquire_gives_up_after_wait(self):
        client, _ = client_with(lock_returning(False))

        with pytest.raises(PersistenceError):
            await client.acquire_slot_lock(1, DAY, START, wait_seconds=0.03)

    async def test_unreachable_redis_returns_none(self):
        client = RedisClient("redis://localhost:6379/0")
        client.get_redis = AsyncMock(side_effect=RedisConnectionError("refused"))

        assert await client.acquire_slot_lock(1, DAY, START) is None

    async def test_release_of_expired_lock(self):
        lock = lock_returning(True)
        lock.release.side_effect = LockNotOwnedError("expired")
        client, _ = client_with(lock)

        assert await client.release_slot_lock(lock) is False

    async def test_context_manager_releases_on_error(self):
        lock = lock_returning(True)
        client, _ = client_with(lock)

        with pytest.raises(RuntimeError):
            async with client.slot_lock(1, DAY, START) as held:
                assert held is lock
                raise RuntimeError("admission failed")

        lock.release.assert_awaited_once()
