from venue_booking.schemas.booking import BookingResponse, BookingStatusUpdate, SlotResponse, SlotListResponse
from venue_booking.schemas.reservation import (
    StagedDetails,
    ReservationInitiate,
    ReservationInitiateResponse,
    ReservationConfirmResponse,
    PaymentResponse,
)

__all__ = [
    "BookingResponse", "BookingStatusUpdate", "SlotResponse", "SlotListResponse",
    "StagedDetails", "ReservationInitiate", "ReservationInitiateResponse",
    "ReservationConfirmResponse", "PaymentResponse",
]
