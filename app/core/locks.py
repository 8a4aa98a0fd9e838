"""
Per-key single-flight locks for premium generation.

Concurrent cache misses for the same (user, analysis, kind) queue behind one
lock so only the first one calls the LLM; the rest re-read the cache once
they get the lock. Inside one process an asyncio.Lock per key does this.
With REDIS_URL set, a Redis lock also coordinates multiple instances.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

logger = structlog.get_logger()

LOCK_PREFIX = "genlock:"


class GenerationLocks:
    """Keyed locks. Keys are dropped once nobody holds or waits on them."""

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        lock_timeout: float = 90.0,
    ):
        self._redis = redis_client
        self._lock_timeout = lock_timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def in_use(self) -> int:
        """Number of keys currently held or awaited."""
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                async with self._distributed(key):
                    yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)

    @asynccontextmanager
    async def _distributed(self, key: str) -> AsyncIterator[None]:
        if self._redis is None:
            yield
            return

        rlock = self._redis.lock(
            f"{LOCK_PREFIX}{key}",
            timeout=self._lock_timeout,
            blocking_timeout=self._lock_timeout,
        )
        acquired = False
        try:
            acquired = await rlock.acquire()
        except RedisError as e:
            # Degrade to the in-process lock only
            logger.warning("generation_lock.redis_unavailable", key=key, error=str(e))
        if not acquired:
            logger.warning("generation_lock.not_acquired", key=key)

        try:
            yield
        finally:
            if acquired:
                try:
                    await rlock.release()
                except RedisError as e:
                    logger.warning("generation_lock.release_failed", key=key, error=str(e))
