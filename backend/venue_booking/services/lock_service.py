"""
Redis-backed resource locks for multi-worker deployments.
Implements ResourceLockStrategy using redis-py's Lock.

Failure policy:
  Unlike cache lookups, lock failures must fail CLOSED. If Redis cannot be
  reached the confirm request is rejected with ResourceBusy (retryable) rather
  than entering the critical section unprotected.

  Each lock carries a TTL so a crashed worker cannot wedge a venue forever.
  The TTL must comfortably exceed one re-check + commit.
"""

from contextlib import asynccontextmanager
import time
from typing import AsyncIterator, Iterable, Optional

import redis.asyncio as redis
from redis.exceptions import LockError

from venue_booking.core.errors import ResourceBusy
from venue_booking.core.logging import get_logger
from venue_booking.core.metrics import lock_wait
from venue_booking.infrastructure.redis_client import get_redis
from venue_booking.services.interfaces.resource_lock import ResourceLockStrategy

logger = get_logger(__name__)

KEY_PREFIX = "lock:reservation:"


class RedisResourceLock(ResourceLockStrategy):
    """
    Distributed lock per resource key.

    Use when:
    - Several API workers or hosts serve confirmations
    - The database alone cannot serialise the re-check + insert
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        ttl_seconds: float = 30,
        blocking_timeout: float = 10.0,
    ):
        self.redis = client or get_redis()
        self.ttl_seconds = ttl_seconds
        self.blocking_timeout = blocking_timeout

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        held = []
        started = time.perf_counter()
        try:
            for key in sorted(set(keys)):
                lock = self.redis.lock(
                    KEY_PREFIX + key,
                    timeout=self.ttl_seconds,
                    blocking_timeout=self.blocking_timeout,
                )
                try:
                    acquired = await lock.acquire()
                except redis.RedisError as e:
                    logger.error("resource_lock_redis_error", key=key, error=str(e))
                    raise ResourceBusy("Resource lock service unavailable, please retry", lock_key=key)
                if not acquired:
                    logger.warning("resource_lock_timeout", key=key, waited=self.blocking_timeout)
                    raise ResourceBusy("Resource is busy, please retry", lock_key=key)
                held.append(lock)
            lock_wait.observe(time.perf_counter() - started)
            yield
        finally:
            for lock in reversed(held):
                try:
                    await lock.release()
                except LockError:
                    # TTL elapsed while we held it; the commit already happened
                    logger.warning("resource_lock_expired_before_release", key=lock.name)
                except redis.RedisError as e:
                    logger.error("resource_lock_release_failed", key=lock.name, error=str(e))
