"""
Booking queries and administrative status transitions.

Bookings are never created here; see reservation_service. The only
mutations allowed after creation are:

    confirmed -> cancelled
    confirmed -> completed

Cancelling releases the interval: availability checks only consider
confirmed bookings, so the slot is immediately bookable again.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.errors import InvalidState, NotFound
from venue_booking.core.logging import get_logger
from venue_booking.models.booking import Booking

logger = get_logger(__name__)

ALLOWED_TRANSITIONS = {
    "confirmed": {"cancelled", "completed"},
}


async def get_booking(db: AsyncSession, booking_id: int) -> Booking:
    result = await db.execute(select(Booking).where(Booking.id == booking_id))
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFound("Booking not found", booking_id=booking_id)
    return booking


async def update_booking_status(db: AsyncSession, booking_id: int, new_status: str) -> Booking:
    """Apply an administrative status transition."""
    booking = await get_booking(db, booking_id)

    if new_status not in ALLOWED_TRANSITIONS.get(booking.status, set()):
        raise InvalidState(
            f"Booking cannot move from {booking.status} to {new_status}",
            booking_id=booking_id,
            status=booking.status,
            requested=new_status,
        )

    previous = booking.status
    booking.status = new_status
    await db.flush()

    logger.info(
        "booking_status_changed",
        booking_id=booking.id,
        venue_id=booking.venue_id,
        previous=previous,
        status=new_status,
    )
    return booking


async def get_user_bookings(db: AsyncSession, customer_id: int) -> list[Booking]:
    """Get all bookings for a customer, newest first."""
    result = await db.execute(
        select(Booking)
        .where(Booking.customer_id == customer_id)
        .order_by(Booking.start_time.desc(), Booking.id.desc())
    )
    return list(result.scalars().all())
