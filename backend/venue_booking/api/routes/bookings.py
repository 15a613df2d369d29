"""
Booking endpoints. Bookings are created only by reservation confirmation.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.api.deps import Principal, get_current_user, require_admin
from venue_booking.db.session import get_db
from venue_booking.schemas.booking import BookingResponse, BookingStatusUpdate
from venue_booking.services.booking_service import get_booking, get_user_bookings, update_booking_status

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.get("/", response_model=list[BookingResponse])
async def list_user_bookings(
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get all bookings for the calling customer."""
    return await get_user_bookings(db, principal.user_id)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    _admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Look up any booking by id (administrators only)."""
    return await get_booking(db, booking_id)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status_endpoint(
    booking_id: int,
    update: BookingStatusUpdate,
    _admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Cancel or complete a confirmed booking (administrators only)."""
    return await update_booking_status(db, booking_id, update.status)
