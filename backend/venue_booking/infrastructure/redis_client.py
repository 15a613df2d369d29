"""
Redis client for distributed resource locks.
Separated from business logic for clean architecture.
"""

from typing import Optional

import redis.asyncio as redis

from venue_booking.core.config import get_settings
from venue_booking.core.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """Singleton async Redis client with connection pooling."""

    _instance: Optional[redis.Redis] = None

    @classmethod
    def get_client(cls) -> redis.Redis:
        """Get or create Redis client instance."""
        if cls._instance is None:
            settings = get_settings()
            cls._instance = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        return cls._instance

    @classmethod
    async def close(cls) -> None:
        """Close Redis connection."""
        if cls._instance:
            await cls._instance.aclose()
            cls._instance = None


def get_redis() -> redis.Redis:
    """Get Redis client instance."""
    return RedisClient.get_client()


async def ping_redis() -> dict:
    """Connection status for the health endpoint."""
    try:
        await get_redis().ping()
        return {"status": "connected"}
    except redis.RedisError as e:
        logger.error("redis_ping_failed", error=str(e))
        return {"status": "error", "error": str(e)}
