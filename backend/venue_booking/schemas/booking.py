"""
Pydantic schemas for booking and slot responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel


class BookingResponse(BaseModel):
    id: int
    customer_id: int
    venue_id: int
    coach_id: Optional[int]
    equipment_ids: list[int]
    start_time: datetime
    end_time: datetime
    total_amount: Decimal
    payment_status: str
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingStatusUpdate(BaseModel):
    status: Literal["cancelled", "completed"]


class SlotResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    price: Decimal
    available: bool

    model_config = {"from_attributes": True}


class SlotListResponse(BaseModel):
    venue_id: int
    day: date
    slot_minutes: int
    count: int
    slots: list[SlotResponse]
