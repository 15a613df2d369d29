"""
Slot browsing endpoint.
"""

from datetime import date as date_type
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.config import get_settings
from venue_booking.db.session import get_db
from venue_booking.schemas.booking import SlotListResponse, SlotResponse
from venue_booking.services.availability_service import list_free_slots

router = APIRouter(prefix="/venues", tags=["Venues"])


@router.get("/{venue_id}/slots", response_model=SlotListResponse)
async def list_slots_endpoint(
    venue_id: int,
    date: date_type = Query(..., description="Day to list, YYYY-MM-DD"),
    slot_minutes: Optional[int] = Query(None, ge=15, le=480),
    db: AsyncSession = Depends(get_db),
):
    """
    List fixed-length slots between opening and closing time.
    `available` only reflects venue bookings; coach and equipment are checked
    when the reservation is initiated.
    """
    slot_minutes = slot_minutes or get_settings().DEFAULT_SLOT_MINUTES
    listing = await list_free_slots(db, venue_id, date, slot_minutes)
    slots = [SlotResponse.model_validate(slot) for slot in listing]
    return SlotListResponse(
        venue_id=venue_id,
        day=date,
        slot_minutes=slot_minutes,
        count=len(slots),
        slots=slots,
    )
