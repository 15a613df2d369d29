"""
Two-phase reservation endpoints: initiate payment, then confirm it.
"""

from fastapi import APIRouter, Depends

from venue_booking.api.deps import Principal, get_coordinator, get_current_user
from venue_booking.schemas.reservation import (
    ReservationConfirmResponse,
    ReservationInitiate,
    ReservationInitiateResponse,
)
from venue_booking.services.reservation_service import ReservationCoordinator

router = APIRouter(prefix="/reservations", tags=["Reservations"])


@router.post("/initiate", response_model=ReservationInitiateResponse)
async def initiate_reservation_endpoint(
    request: ReservationInitiate,
    principal: Principal = Depends(get_current_user),
    coordinator: ReservationCoordinator = Depends(get_coordinator),
):
    """
    Check availability, price server-side and open a payment intent.
    Returns the client secret used to complete payment with the gateway.
    """
    initiated = await coordinator.initiate(
        customer_id=principal.user_id,
        venue_id=request.venue_id,
        start_time=request.start_time,
        end_time=request.end_time,
        coach_id=request.coach_id,
        equipment_ids=request.equipment_ids,
        quoted_amount=request.quoted_amount,
    )
    return ReservationInitiateResponse(
        payment_id=initiated.payment_id,
        gateway_reference=initiated.gateway_reference,
        client_secret=initiated.client_secret,
        amount=initiated.amount,
    )


@router.post("/{payment_id}/confirm", response_model=ReservationConfirmResponse)
async def confirm_reservation_endpoint(
    payment_id: int,
    principal: Principal = Depends(get_current_user),
    coordinator: ReservationCoordinator = Depends(get_coordinator),
):
    """
    Verify the payment with the gateway and create the booking.

    A 409 with code `paid_but_unbookable` means the customer was charged but
    the slot was taken in the meantime; the client must route them to support.
    """
    confirmed = await coordinator.confirm(principal.user_id, payment_id)
    return ReservationConfirmResponse(
        booking_id=confirmed.booking_id,
        already_confirmed=confirmed.already_confirmed,
    )
