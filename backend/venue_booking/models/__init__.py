from venue_booking.models.catalog import Venue, Coach, Equipment, Tariff
from venue_booking.models.booking import Booking, booking_equipment
from venue_booking.models.payment import Payment

__all__ = ["Venue", "Coach", "Equipment", "Tariff", "Booking", "booking_equipment", "Payment"]
