"""
Resource lock strategy factory.
Configures which locking strategy guards the confirm critical section.
"""

from typing import Optional

from venue_booking.core.config import get_settings
from venue_booking.services.interfaces.local_lock import LocalResourceLock
from venue_booking.services.interfaces.resource_lock import ResourceLockStrategy
from venue_booking.services.lock_service import RedisResourceLock


def build_lock_strategy() -> ResourceLockStrategy:
    """
    Build the configured lock strategy.

    - local: asyncio locks, one worker process (development, tests)
    - redis: distributed locks, any number of workers (production)

    Selected by the LOCK_STRATEGY env var.
    """
    settings = get_settings()
    if settings.LOCK_STRATEGY == "redis":
        return RedisResourceLock(
            ttl_seconds=settings.LOCK_TTL_SECONDS,
            blocking_timeout=settings.LOCK_BLOCKING_TIMEOUT_SECONDS,
        )
    if settings.LOCK_STRATEGY == "local":
        return LocalResourceLock(blocking_timeout=settings.LOCK_BLOCKING_TIMEOUT_SECONDS)
    raise ValueError(f"Unknown LOCK_STRATEGY: {settings.LOCK_STRATEGY}")


# Singleton instance
_strategy: Optional[ResourceLockStrategy] = None


def get_lock_strategy() -> ResourceLockStrategy:
    """Get lock strategy singleton."""
    global _strategy
    if _strategy is None:
        _strategy = build_lock_strategy()
    return _strategy
