"""
Per-order locking for image runs.

Two runs that mutate the same order folder (reconciliation, auto-repair) must
not overlap. Runs for different orders never contend. Two backends share one
interface:

- LocalLockService: one asyncio.Lock per resource, for a single API process.
- RedisLockService: Redis SET NX PX with Lua check-and-delete release, for
  several API processes / Celery workers sharing one bucket.

Usage:
    from order_assets.core.shared.lock_service import get_lock_service

    async with get_lock_service().lock(f"order:{order_id}", wait_seconds=60) as acquired:
        if acquired:
            # Do work while holding the lock
            pass

Lock Key Format (Redis):
    order_assets:lock:{resource_name}

Lock Value Format (Redis):
    {lock_id}:{acquired_at}
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache
from typing import AsyncIterator, Dict, Optional

import redis.asyncio as redis

from order_assets.config import settings

logger = logging.getLogger("order_assets.lock")


def order_lock_name(order_id: str) -> str:
    return f"order:{order_id}"


class LocalLockService:
    """
    In-process per-resource mutex.

    A resource's lock exists only while some task holds or waits for it.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def _get(self, resource_name: str) -> asyncio.Lock:
        lock = self._locks.get(resource_name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[resource_name] = lock
        self._users[resource_name] = self._users.get(resource_name, 0) + 1
        return lock

    def _put(self, resource_name: str) -> None:
        remaining = self._users.get(resource_name, 1) - 1
        if remaining > 0:
            self._users[resource_name] = remaining
            return
        self._users.pop(resource_name, None)
        self._locks.pop(resource_name, None)

    def is_locked(self, resource_name: str) -> bool:
        lock = self._locks.get(resource_name)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def lock(
        self,
        resource_name: str,
        timeout: int = 300,
        wait_seconds: float = 0.0,
    ) -> AsyncIterator[bool]:
        """
        Acquire the resource's mutex, waiting up to ``wait_seconds``.

        ``timeout`` is accepted for interface parity with Redis locks; an
        in-process lock is released when the holder exits.

        Yields:
            True if acquired, False otherwise
        """
        lock = self._get(resource_name)
        acquired = False
        try:
            try:
                if wait_seconds > 0:
                    await asyncio.wait_for(lock.acquire(), timeout=wait_seconds)
                    acquired = True
                elif not lock.locked():
                    await lock.acquire()
                    acquired = True
            except asyncio.TimeoutError:
                acquired = False

            if not acquired:
                logger.debug(f"Lock not available: {resource_name}")
            yield acquired
        finally:
            if acquired:
                lock.release()
                logger.debug(f"Lock released: {resource_name}")
            self._put(resource_name)


class RedisLockService:
    """
    Distributed lock using Redis.

    Attributes:
        _redis: Async Redis client (created lazily per event loop)
        _lock_prefix: Prefix for lock keys in Redis
    """

    def __init__(self, redis_url: Optional[str] = None):
        self._redis_url = redis_url or settings.redis_url
        self._redis: Optional[redis.Redis] = None
        self._redis_loop: Optional[asyncio.AbstractEventLoop] = None
        self._lock_prefix = "order_assets:lock:"

    async def _get_redis(self) -> redis.Redis:
        loop = asyncio.get_running_loop()
        if self._redis is None or self._redis_loop is not loop:
            # Clients bound to a closed loop (asyncio.run per Celery task) are abandoned.
            self._redis_loop = loop
            self._redis = redis.from_url(self._redis_url, decode_responses=True)
        return self._redis

    async def acquire_lock(
        self,
        resource_name: str,
        timeout: int = 300,
        retry_interval: float = 0.5,
        max_retries: int = 0,
    ) -> Optional[str]:
        """
        Attempt to acquire the lock with SET NX PX.

        Returns:
            Lock ID string if acquired, None if lock not available
        """
        r = await self._get_redis()
        lock_key = f"{self._lock_prefix}{resource_name}"
        lock_id = str(uuid.uuid4())
        lock_value = f"{lock_id}:{datetime.utcnow().isoformat()}"

        attempts = 0
        while True:
            acquired = await r.set(lock_key, lock_value, nx=True, px=timeout * 1000)
            if acquired:
                logger.debug(f"Lock acquired: {resource_name} (id={lock_id[:8]}..., timeout={timeout}s)")
                return lock_id

            attempts += 1
            if attempts > max_retries:
                logger.debug(f"Lock not available: {resource_name} (attempts={attempts})")
                return None
            await asyncio.sleep(retry_interval)

    async def release_lock(self, resource_name: str, lock_id: str) -> bool:
        """Release the lock only if ``lock_id`` still owns it."""
        r = await self._get_redis()
        lock_key = f"{self._lock_prefix}{resource_name}"

        release_script = """
        local current = redis.call('GET', KEYS[1])
        if current and string.find(current, ARGV[1], 1, true) == 1 then
            return redis.call('DEL', KEYS[1])
        end
        return 0
        """

        result = await r.eval(release_script, 1, lock_key, lock_id)
        released = result == 1
        if not released:
            logger.debug(f"Lock not released (not held or expired): {resource_name}")
        return released

    @asynccontextmanager
    async def lock(
        self,
        resource_name: str,
        timeout: int = 300,
        wait_seconds: float = 0.0,
        retry_interval: float = 0.5,
    ) -> AsyncIterator[bool]:
        max_retries = int(wait_seconds / retry_interval) if wait_seconds > 0 else 0
        lock_id = await self.acquire_lock(resource_name, timeout, retry_interval, max_retries)
        try:
            yield lock_id is not None
        finally:
            if lock_id:
                await self.release_lock(resource_name, lock_id)

    async def close(self):
        if self._redis:
            await self._redis.close()
            self._redis = None
            self._redis_loop = None


@lru_cache()
def get_lock_service():
    """Lock backend selected by ``settings.lock_backend``."""
    if settings.lock_backend == "redis":
        return RedisLockService()
    return LocalLockService()
