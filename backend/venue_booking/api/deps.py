"""
Shared FastAPI dependencies.

Identity comes from the upstream auth gateway, which authenticates the
caller and forwards X-User-Id / X-User-Role. This service trusts those
headers and never sees credentials.
"""

from dataclasses import dataclass
from functools import lru_cache

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.clock import Clock, get_clock
from venue_booking.core.config import get_settings
from venue_booking.core.errors import Forbidden
from venue_booking.db.session import get_db
from venue_booking.services.interfaces.payment_gateway import PaymentGateway
from venue_booking.services.interfaces.resource_lock import ResourceLockStrategy
from venue_booking.services.notification_service import LoggingNotificationDispatcher, NotificationDispatcher
from venue_booking.services.reservation_service import ReservationCoordinator
from venue_booking.services.strategy_factory import get_lock_strategy
from venue_booking.services.stripe_gateway import StripePaymentGateway


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str = "player"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def get_current_user(
    x_user_id: int = Header(..., alias="X-User-Id"),
    x_user_role: str = Header("player", alias="X-User-Role"),
) -> Principal:
    return Principal(user_id=x_user_id, role=x_user_role)


async def require_admin(principal: Principal = Depends(get_current_user)) -> Principal:
    if not principal.is_admin:
        raise Forbidden("Administrator role required")
    return principal


@lru_cache()
def get_payment_gateway() -> PaymentGateway:
    return StripePaymentGateway(api_key=get_settings().STRIPE_SECRET_KEY)


@lru_cache()
def get_notifier() -> NotificationDispatcher:
    return LoggingNotificationDispatcher()


def get_locks() -> ResourceLockStrategy:
    return get_lock_strategy()


async def get_coordinator(
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: NotificationDispatcher = Depends(get_notifier),
    locks: ResourceLockStrategy = Depends(get_locks),
    clock: Clock = Depends(get_clock),
) -> ReservationCoordinator:
    return ReservationCoordinator(db, gateway, notifier, locks, clock=clock)
