"""
Pydantic schemas for the initiate/confirm reservation flow.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import AwareDatetime, BaseModel, Field


class StagedDetails(BaseModel):
    """Reservation held on a pending payment until the charge clears."""

    venue_id: int
    start_time: datetime
    end_time: datetime
    coach_id: Optional[int] = None
    equipment_ids: list[int] = Field(default_factory=list)
    amount: Decimal


class ReservationInitiate(BaseModel):
    venue_id: int
    start_time: AwareDatetime
    end_time: AwareDatetime
    coach_id: Optional[int] = None
    equipment_ids: list[int] = Field(default_factory=list, max_length=20)
    quoted_amount: Decimal = Field(..., ge=0)


class ReservationInitiateResponse(BaseModel):
    payment_id: int
    gateway_reference: str
    client_secret: str
    amount: Decimal
    message: str = "Payment initiated successfully. Please complete payment."


class ReservationConfirmResponse(BaseModel):
    booking_id: int
    already_confirmed: bool = False
    message: str = "Payment confirmed and booking created successfully."


class PaymentResponse(BaseModel):
    id: int
    payer_id: int
    amount: Decimal
    status: str
    payment_method: str
    gateway_reference: Optional[str]
    booking_id: Optional[int]
    notes: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}
