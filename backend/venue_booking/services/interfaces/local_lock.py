"""
In-process resource locks.
Correct for a single worker process; use the Redis strategy when several
workers share one database.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional

from venue_booking.core.errors import ResourceBusy
from venue_booking.core.metrics import lock_wait
from venue_booking.services.interfaces.resource_lock import ResourceLockStrategy


class LocalResourceLock(ResourceLockStrategy):
    """
    One asyncio.Lock per key, created on demand and dropped once nobody
    holds or waits for it.
    """

    def __init__(self, blocking_timeout: Optional[float] = None):
        self.blocking_timeout = blocking_timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def _checkout(self, key: str) -> asyncio.Lock:
        self._users[key] = self._users.get(key, 0) + 1
        return self._locks.setdefault(key, asyncio.Lock())

    def _checkin(self, key: str) -> None:
        self._users[key] -= 1
        if self._users[key] == 0:
            del self._users[key]
            del self._locks[key]

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        ordered = sorted(set(keys))
        checked_out: list[str] = []
        held: list[asyncio.Lock] = []
        started = time.perf_counter()
        try:
            for key in ordered:
                lock = self._checkout(key)
                checked_out.append(key)
                try:
                    await asyncio.wait_for(lock.acquire(), self.blocking_timeout)
                except asyncio.TimeoutError:
                    raise ResourceBusy("Resource is busy, please retry", lock_key=key)
                held.append(lock)
            lock_wait.observe(time.perf_counter() - started)
            yield
        finally:
            for lock in reversed(held):
                lock.release()
            for key in checked_out:
                self._checkin(key)

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()
