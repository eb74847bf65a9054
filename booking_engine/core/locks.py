"""
Keyed serialization for the check-then-write steps of booking changes.

Every booking write holds the lock for the service and, when an employee is
named, for that employee too, so the check and the store write are observed
atomically by concurrent requests. Keys are always acquired in sorted order.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Optional, Protocol

import structlog
from redis.exceptions import LockError

from booking_engine.core.config import settings
from booking_engine.core.redis import RedisClient, redis_client

logger = structlog.get_logger(__name__)


class SlotLockTimeout(RuntimeError):
    """Raised when a distributed slot lock could not be acquired in time."""


def booking_lock_keys(service_id: str, employee_id: Optional[str] = None) -> list[str]:
    """Lock keys guarding bookings of a service and an optional employee."""
    keys = [f"service:{service_id}"]
    if employee_id:
        keys.append(f"employee:{employee_id}")
    return keys


class KeyedLock(Protocol):
    def hold(self, *keys: str) -> AsyncContextManager[None]: ...


class LocalKeyedLock:
    """Per-key asyncio locks for a single process."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        acquired: list[asyncio.Lock] = []
        try:
            for key in sorted(set(keys)):
                lock = self._lock_for(key)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


class RedisKeyedLock:
    """Redis-backed locks shared by every worker process."""

    def __init__(
        self,
        client: RedisClient,
        timeout: int = None,
        blocking_timeout: int = None,
        prefix: str = "slot_lock",
    ):
        self.client = client
        self.timeout = timeout or settings.SLOT_LOCK_TIMEOUT_SECONDS
        self.blocking_timeout = blocking_timeout or self.timeout
        self.prefix = prefix

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        redis = await self.client.get_redis()
        acquired = []
        try:
            for key in sorted(set(keys)):
                lock = redis.lock(
                    f"{self.prefix}:{key}",
                    timeout=self.timeout,
                    blocking_timeout=self.blocking_timeout,
                )
                if not await lock.acquire():
                    logger.warning("Slot lock acquisition timed out", key=key)
                    raise SlotLockTimeout(f"Could not acquire slot lock for {key}")
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                try:
                    await lock.release()
                except LockError:
                    # Expired while held; the next holder already owns it.
                    logger.warning("Slot lock expired before release", name=lock.name)


def build_slot_lock() -> KeyedLock:
    """Create the lock backend selected by ``SLOT_LOCK_BACKEND``."""
    if settings.SLOT_LOCK_BACKEND == "redis":
        return RedisKeyedLock(redis_client)
    return LocalKeyedLock()
