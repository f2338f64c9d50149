import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import date, time
from typing import AsyncContextManager, Optional, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError
import structlog

from app.core.config import settings
from app.core.errors import StoreUnavailableError

logger = structlog.get_logger(__name__)

# Compare-and-delete so a worker never releases a lock it no longer owns
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


def slot_lock_key(slot_date: date, slot_time: time) -> str:
    return f"slot_lock:{slot_date.isoformat()}:{slot_time.strftime('%H:%M')}"


def appointment_lock_key(appointment_uuid) -> str:
    return f"appointment_lock:{appointment_uuid}"


def client_lock_key(client_key) -> str:
    return f"client_lock:{client_key}"


SHOP_CONFIG_LOCK_KEY = "shop_config_lock"


class SlotLockManager(Protocol):
    def acquire(self, *keys: str) -> AsyncContextManager[None]: ...


class MemorySlotLockManager:
    """Per-key asyncio locks. Only serializes writers inside one process."""

    def __init__(self, timeout_seconds: float = None):
        self.timeout_seconds = (
            settings.SLOT_LOCK_TIMEOUT_SECONDS
            if timeout_seconds is None
            else timeout_seconds
        )
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def acquire(self, *keys: str):
        held: list[asyncio.Lock] = []
        try:
            for key in sorted(set(keys)):
                lock = self._lock_for(key)
                try:
                    await asyncio.wait_for(lock.acquire(), self.timeout_seconds)
                except asyncio.TimeoutError:
                    logger.warning("Timed out waiting for lock", key=key)
                    raise StoreUnavailableError(
                        "Another change to this slot is in progress, try again"
                    )
                held.append(lock)
            yield
        finally:
            for lock in reversed(held):
                lock.release()


class RedisSlotLockManager:
    """Distributed locks using ``SET key token NX PX ttl``."""

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        ttl_seconds: int = None,
        timeout_seconds: float = None,
        poll_interval: float = 0.05,
    ):
        self._client = client
        self.ttl_ms = int(
            (settings.SLOT_LOCK_TTL_SECONDS if ttl_seconds is None else ttl_seconds)
            * 1000
        )
        self.timeout_seconds = (
            settings.SLOT_LOCK_TIMEOUT_SECONDS
            if timeout_seconds is None
            else timeout_seconds
        )
        self.poll_interval = poll_interval

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.Redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                retry_on_timeout=True,
                socket_keepalive=True,
            )
        return self._client

    async def _acquire_one(self, key: str, token: str) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds
        while True:
            try:
                acquired = await self.client.set(key, token, nx=True, px=self.ttl_ms)
            except RedisError as e:
                logger.error("Redis lock error", key=key, exc_info=e)
                raise StoreUnavailableError("Lock service unavailable, try again")
            if acquired:
                return
            if loop.time() >= deadline:
                logger.warning("Timed out waiting for lock", key=key)
                raise StoreUnavailableError(
                    "Another change to this slot is in progress, try again"
                )
            await asyncio.sleep(self.poll_interval)

    async def _release_one(self, key: str, token: str) -> None:
        try:
            await self.client.eval(_RELEASE_SCRIPT, 1, key, token)
        except RedisError as e:
            # The lock expires on its own after the TTL
            logger.error("Redis lock release error", key=key, exc_info=e)

    @asynccontextmanager
    async def acquire(self, *keys: str):
        token = uuid.uuid4().hex
        held: list[str] = []
        try:
            for key in sorted(set(keys)):
                await self._acquire_one(key, token)
                held.append(key)
            yield
        finally:
            for key in reversed(held):
                await self._release_one(key, token)


_lock_manager: Optional[SlotLockManager] = None


def get_lock_manager() -> SlotLockManager:
    """Return the process-wide lock manager for the configured backend."""
    global _lock_manager
    if _lock_manager is None:
        if settings.LOCK_BACKEND == "redis":
            _lock_manager = RedisSlotLockManager()
        else:
            _lock_manager = MemorySlotLockManager()
        logger.info("Slot lock manager initialized", backend=settings.LOCK_BACKEND)
    return _lock_manager
