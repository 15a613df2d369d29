"""
Background sweep that fails pending reservations nobody confirmed in time.
Started from the application lifespan when PENDING_SWEEP_INTERVAL_SECONDS > 0.
"""

import asyncio
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from venue_booking.core.logging import get_logger
from venue_booking.services.reservation_service import ReservationCoordinator

logger = get_logger(__name__)


async def run_expiry_sweeper(
    session_factory: async_sessionmaker[AsyncSession],
    coordinator_factory: Callable[[AsyncSession], ReservationCoordinator],
    interval_seconds: float,
) -> None:
    """Sweep forever until cancelled. A failed round is logged and retried next interval."""
    logger.info("expiry_sweeper_started", interval_seconds=interval_seconds)
    while True:
        try:
            async with session_factory() as session:
                await coordinator_factory(session).expire_stale_reservations()
        except Exception as e:
            # A failed round is retried next interval; only cancellation stops the loop
            logger.exception("expiry_sweep_failed", error=str(e))
        await asyncio.sleep(interval_seconds)
