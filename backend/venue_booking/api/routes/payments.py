"""
Payment history endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.api.deps import Principal, get_current_user, require_admin
from venue_booking.db.session import get_db
from venue_booking.schemas.reservation import PaymentResponse
from venue_booking.services.reservation_service import get_owner_payments, get_user_payments, list_payments

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("/", response_model=list[PaymentResponse])
async def list_all_payments(
    status: Optional[str] = Query(None, description="pending, success, failed or refunded"),
    _admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Every payment record, newest first (administrators only)."""
    return await list_payments(db, status)


@router.get("/my", response_model=list[PaymentResponse])
async def list_my_payments(
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Payment records for the calling customer, including failed attempts and their notes."""
    return await get_user_payments(db, principal.user_id)


@router.get("/owner", response_model=list[PaymentResponse])
async def list_owner_payments(
    principal: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Payments for bookings at the caller's venues."""
    return await get_owner_payments(db, principal.user_id)
