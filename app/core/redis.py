from contextlib import asynccontextmanager
from datetime import date, time
from typing import Optional

import redis.asyncio as redis
import structlog
from redis.asyncio.lock import Lock
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.exceptions import PersistenceError

logger = structlog.get_logger(__name__)


class RedisClient:
    """Redis client for per-slot admission locks."""

    def __init__(self, url: Optional[str] = None):
        self.url = url
        self.redis_pool = None

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def init_redis(self):
        """Initialize Redis connection pool."""
        try:
            self.redis_pool = redis.ConnectionPool.from_url(
                self.url,
                decode_responses=True,
                retry_on_timeout=True,
                socket_keepalive=True,
            )

            async with redis.Redis(connection_pool=self.redis_pool) as r:
                await r.ping()
                logger.info("Redis connection established")

        except Exception as e:
            logger.error("Failed to connect to Redis", exc_info=e)
            self.redis_pool = None
            raise

    async def get_redis(self) -> redis.Redis:
        """Get Redis client instance."""
        if not self.redis_pool:
            await self.init_redis()
        return redis.Redis(connection_pool=self.redis_pool)

    async def close(self):
        if self.redis_pool:
            await self.redis_pool.disconnect()
            self.redis_pool = None

    @staticmethod
    def slot_lock_key(business_id: int, booking_date: date, start_time: time) -> str:
        return f"slot_lock:{business_id}:{booking_date.isoformat()}:{start_time.strftime('%H:%M')}"

    async def acquire_slot_lock(
        self,
        business_id: int,
        booking_date: date,
        start_time: time,
        ttl_seconds: int = None,
        wait_seconds: float = None,
        poll_interval: float = 0.05,
    ) -> Optional[Lock]:
        """Acquire the admission lock for one slot.

        Returns the held lock, or None when Redis is disabled or unreachable
        (admission then relies on the database constraint alone). Raises
        PersistenceError when the lock stays held past ``wait_seconds``.
        """
        if not self.enabled:
            return None

        ttl_seconds = ttl_seconds or settings.SLOT_LOCK_TTL_SECONDS
        wait_seconds = (
            settings.SLOT_LOCK_WAIT_SECONDS if wait_seconds is None else wait_seconds
        )
        key = self.slot_lock_key(business_id, booking_date, start_time)

        try:
            client = await self.get_redis()
            lock = client.lock(
                key,
                timeout=ttl_seconds,
                sleep=poll_interval,
                blocking_timeout=wait_seconds,
            )
            acquired = await lock.acquire()
        except (RedisError, OSError) as e:
            logger.warning(
                "Redis unavailable, admitting without slot lock",
                lock_key=key,
                error=str(e),
            )
            return None

        if not acquired:
            logger.warning("Slot lock wait timed out", lock_key=key)
            raise PersistenceError("Timed out waiting for slot lock", lock_key=key)
        return lock

    async def release_slot_lock(self, lock: Lock) -> bool:
        """Release a held slot lock. False when it already expired or Redis failed."""
        try:
            await lock.release()
            return True
        except RedisError as e:
            # LockNotOwnedError lands here when the TTL ran out first
            logger.error("Failed to release slot lock", lock_key=lock.name, error=str(e))
            return False

    @asynccontextmanager
    async def slot_lock(self, business_id: int, booking_date: date, start_time: time):
        lock = await self.acquire_slot_lock(business_id, booking_date, start_time)
        try:
            yield lock
        finally:
            if lock is not None:
                await self.release_slot_lock(lock)


# Global Redis client instance
redis_client = RedisClient(settings.REDIS_URL)
