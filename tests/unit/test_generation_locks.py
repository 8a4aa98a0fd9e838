"""
Unit tests for keyed generation locks.
"""

import asyncio
import os
import sys

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from app.core.locks import GenerationLocks


class BrokenRedisLock:
    async def acquire(self):
        raise RedisConnectionError("redis down")

    async def release(self):
        raise AssertionError("release without acquire")


class BrokenRedis:
    def lock(self, name, timeout=None, blocking_timeout=None):
        return BrokenRedisLock()


class TestGenerationLocks:

    @pytest.mark.unit
    async def test_same_key_serialized(self):
        locks = GenerationLocks()
        order = []

        async def worker(name):
            async with locks.hold("k"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.unit
    async def test_different_keys_overlap(self):
        locks = GenerationLocks()
        inside = asyncio.Event()

        async def holder():
            async with locks.hold("k1"):
                await asyncio.wait_for(inside.wait(), timeout=1)

        async def other():
            async with locks.hold("k2"):
                inside.set()

        await asyncio.gather(holder(), other())

    @pytest.mark.unit
    async def test_keys_released_after_use(self):
        locks = GenerationLocks()
        async with locks.hold("k"):
            assert locks.in_use() == 1
        assert locks.in_use() == 0

    @pytest.mark.unit
    async def test_key_released_on_error(self):
        locks = GenerationLocks()
        with pytest.raises(RuntimeError):
            async with locks.hold("k"):
                raise RuntimeError("generation failed")
        assert locks.in_use() == 0

    @pytest.mark.unit
    async def test_redis_failure_degrades_to_local_lock(self):
        locks = GenerationLocks(redis_client=BrokenRedis())
        entered = False
        async with locks.hold("k"):
            entered = True
        assert entered
