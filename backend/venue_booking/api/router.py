"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from venue_booking.api.routes import venues, reservations, bookings, payments

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(venues.router)
api_router.include_router(reservations.router)
api_router.include_router(bookings.router)
api_router.include_router(payments.router)
