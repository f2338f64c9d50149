import asyncio
from datetime import date, time
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.errors import StoreUnavailableError
from app.core.locks import (
    MemorySlotLockManager,
    RedisSlotLockManager,
    appointment_lock_key,
    slot_lock_key,
)


def test_lock_keys():
    assert slot_lock_key(date(2024, 6, 10), time(9, 0)) == "slot_lock:2024-06-10:09:00"
    assert appointment_lock_key("abc") == "appointment_lock:abc"


class TestMemorySlotLockManager:
    async def test_same_key_is_serialised(self):
        locks = MemorySlotLockManager(timeout_seconds=1.0)
        events = []

        async def worker(name):
            async with locks.acquire("slot_lock:a"):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(worker("one"), worker("two"))

        assert events in (
            ["one-in", "one-out", "two-in", "two-out"],
            ["two-in", "two-out", "one-in", "one-out"],
        )

    async def test_different_keys_do_not_block(self):
        locks = MemorySlotLockManager(timeout_seconds=0.1)

        async with locks.acquire("slot_lock:a"):
            async with locks.acquire("slot_lock:b"):
                pass

    async def test_timeout_reports_store_unavailable(self):
        locks = MemorySlotLockManager(timeout_seconds=0.05)

        async with locks.acquire("slot_lock:a"):
            with pytest.raises(StoreUnavailableError):
                async with locks.acquire("slot_lock:a", "slot_lock:0"):
                    pass

        # "slot_lock:0" sorts first and was released again
        async with locks.acquire("slot_lock:0"):
            pass

    async def test_lock_is_released_on_error(self):
        locks = MemorySlotLockManager(timeout_seconds=0.05)

        with pytest.raises(RuntimeError):
            async with locks.acquire("slot_lock:a"):
                raise RuntimeError("boom")

        async with locks.acquire("slot_lock:a"):
            pass


class TestRedisSlotLockManager:
    @pytest.fixture
    def redis_client(self):
        client = AsyncMock()
        client.set.return_value = True
        client.eval.return_value = 1
        return client

    async def test_acquires_in_sorted_order_and_releases(self, redis_client):
        locks = RedisSlotLockManager(client=redis_client, ttl_seconds=10, timeout_seconds=1)

        async with locks.acquire("slot_lock:b", "appointment_lock:a"):
            pass

        acquired = [call.args[0] for call in redis_client.set.call_args_list]
        assert acquired == ["appointment_lock:a", "slot_lock:b"]
        for call in redis_client.set.call_args_list:
            assert call.kwargs == {"nx": True, "px": 10_000}
        released = [call.args[2] for call in redis_client.eval.call_args_list]
        assert released == ["slot_lock:b", "appointment_lock:a"]

    async def test_waits_for_a_held_lock(self, redis_client):
        redis_client.set.side_effect = [False, False, True]
        locks = RedisSlotLockManager(
            client=redis_client, timeout_seconds=1, poll_interval=0.001
        )

        async with locks.acquire("slot_lock:a"):
            pass

        assert redis_client.set.call_count == 3

    async def test_timeout_reports_store_unavailable(self, redis_client):
        redis_client.set.return_value = False
        locks = RedisSlotLockManager(
            client=redis_client, timeout_seconds=0.02, poll_interval=0.005
        )

        with pytest.raises(StoreUnavailableError):
            async with locks.acquire("slot_lock:a"):
                pass
        redis_client.eval.assert_not_called()

    async def test_redis_errors_report_store_unavailable(self, redis_client):
        redis_client.set.side_effect = RedisConnectionError("connection refused")
        locks = RedisSlotLockManager(client=redis_client, timeout_seconds=1)

        with pytest.raises(StoreUnavailableError):
            async with locks.acquire("slot_lock:a"):
                pass
