"""
Pytest fixtures for test database, catalog data, fakes and the HTTP client.

Each test gets a fresh SQLite database file so concurrent sessions really
are separate connections, like workers sharing one database.
"""

import os

os.environ.setdefault("PENDING_SWEEP_INTERVAL_SECONDS", "0")
os.environ.setdefault("VENUE_TIMEZONE", "UTC")

from datetime import datetime, timezone, timedelta
from decimal import Decimal
from types import SimpleNamespace
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from venue_booking.main import app
from venue_booking.api.deps import get_locks, get_notifier, get_payment_gateway
from venue_booking.core.clock import FrozenClock, get_clock
from venue_booking.core.config import Settings
from venue_booking.core.errors import GatewayError
from venue_booking.db.base import Base
from venue_booking.db.session import get_db
from venue_booking.models import Booking, Coach, Equipment, Tariff, Venue
from venue_booking.services.interfaces.local_lock import LocalResourceLock
from venue_booking.services.interfaces.payment_gateway import (
    INTENT_FAILED,
    INTENT_PENDING,
    INTENT_SUCCEEDED,
    IntentStatus,
    PaymentGateway,
    PaymentIntent,
)
from venue_booking.services.notification_service import NotificationDispatcher, drain_notifications
from venue_booking.services.reservation_service import ReservationCoordinator

# Monday
DAY = datetime(2026, 10, 19, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day_offset: int = 0) -> datetime:
    """An instant on the test day (UTC)."""
    return DAY + timedelta(days=day_offset, hours=hour, minutes=minute)


class FakeGateway(PaymentGateway):
    """In-memory payment gateway. Intents start pending until `settle` is called."""

    def __init__(self):
        self.intents: dict[str, dict] = {}
        self.create_errors: list[GatewayError] = []
        self.status_error: Optional[GatewayError] = None
        self.create_calls = 0
        self.idempotency_keys: list[Optional[str]] = []
        self.cancelled: list[str] = []
        # Intents that cannot be cancelled yet (e.g. processing)
        self.stuck_processing = False

    async def create_intent(self, amount, currency, metadata, idempotency_key=None) -> PaymentIntent:
        self.create_calls += 1
        self.idempotency_keys.append(idempotency_key)
        if self.create_errors:
            raise self.create_errors.pop(0)
        reference = f"pi_test_{len(self.intents) + 1}"
        self.intents[reference] = {
            "status": INTENT_PENDING,
            "raw_status": "requires_payment_method",
            "amount": Decimal(amount),
            "charged": Decimal("0.00"),
            "currency": currency,
            "metadata": metadata,
        }
        return PaymentIntent(reference=reference, client_secret=f"{reference}_secret")

    def settle(self, reference: str, status: str = INTENT_SUCCEEDED, charged: Optional[Decimal] = None,
               raw_status: Optional[str] = None):
        intent = self.intents[reference]
        intent["status"] = status
        intent["raw_status"] = raw_status or status
        if charged is not None:
            intent["charged"] = Decimal(charged)
        elif status == INTENT_SUCCEEDED:
            intent["charged"] = intent["amount"]

    async def get_intent_status(self, reference: str) -> IntentStatus:
        if self.status_error:
            raise self.status_error
        intent = self.intents[reference]
        return IntentStatus(status=intent["status"], charged_amount=intent["charged"], raw_status=intent["raw_status"])

    async def cancel_intent(self, reference: str) -> IntentStatus:
        if self.status_error:
            raise self.status_error
        intent = self.intents[reference]
        if intent["status"] == INTENT_PENDING and not self.stuck_processing:
            self.cancelled.append(reference)
            intent["status"] = INTENT_FAILED
            intent["raw_status"] = "canceled"
        return await self.get_intent_status(reference)


class RecordingNotifier(NotificationDispatcher):
    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.fail = fail

    async def notify(self, target, message, category, link=None):
        if self.fail:
            raise RuntimeError("notification backend down")
        self.sent.append({"target": target, "message": message, "category": category, "link": link})


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Fresh SQLite file per test with all tables created."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'reservations.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings() -> Settings:
    return Settings(
        GATEWAY_MAX_RETRIES=3,
        GATEWAY_RETRY_BACKOFF_SECONDS=0,
        AMOUNT_TOLERANCE=Decimal("1.00"),
        PENDING_TTL_MINUTES=30,
        VENUE_TIMEZONE="UTC",
    )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 10, 18, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def locks() -> LocalResourceLock:
    return LocalResourceLock(blocking_timeout=5)


@pytest.fixture
def make_coordinator(gateway, notifier, locks, clock, settings):
    """Build a coordinator bound to a given session, sharing fakes and locks."""

    def _make(session: AsyncSession) -> ReservationCoordinator:
        return ReservationCoordinator(session, gateway, notifier, locks, clock=clock, settings=settings)

    return _make


@pytest.fixture
def coordinator(db_session, make_coordinator) -> ReservationCoordinator:
    return make_coordinator(db_session)


@pytest_asyncio.fixture
async def catalog(db_session: AsyncSession) -> SimpleNamespace:
    """
    Arena open 06:00-10:00 at 1000/hr, a 500/hr coach, two equipment items,
    and a second venue with its own equipment.
    """
    arena = Venue(name="Central Arena", owner_id=900, price_per_hour=Decimal("1000.00"),
                  opening_start="06:00", opening_end="10:00")
    annex = Venue(name="Annex Court", owner_id=901, price_per_hour=Decimal("800.00"),
                  opening_start="08:00", opening_end="20:00")
    db_session.add_all([arena, annex])
    await db_session.flush()

    coach = Coach(user_id=500, name="Coach Carter", hourly_rate=Decimal("500.00"))
    ball = Equipment(venue_id=arena.id, name="Football", rental_price=Decimal("200.00"))
    bibs = Equipment(venue_id=arena.id, name="Bibs", rental_price=Decimal("150.00"))
    annex_net = Equipment(venue_id=annex.id, name="Net", rental_price=Decimal("100.00"))
    db_session.add_all([coach, ball, bibs, annex_net])
    await db_session.commit()

    return SimpleNamespace(arena=arena, annex=annex, coach=coach, ball=ball, bibs=bibs, annex_net=annex_net)


@pytest_asyncio.fixture
async def add_booking(db_session: AsyncSession):
    """Insert a booking directly, bypassing the coordinator, to set up state."""

    async def _add(venue_id, start, end, coach_id=None, equipment=(), status="confirmed", customer_id=1):
        booking = Booking(
            customer_id=customer_id,
            venue_id=venue_id,
            coach_id=coach_id,
            start_time=start,
            end_time=end,
            total_amount=Decimal("1000.00"),
            payment_status="paid",
            status=status,
            equipment=list(equipment),
        )
        db_session.add(booking)
        await db_session.commit()
        return booking

    return _add


@pytest_asyncio.fixture
async def add_tariff(db_session: AsyncSession):
    async def _add(venue_id, day, time_start, time_end, price):
        tariff = Tariff(venue_id=venue_id, day=day, time_start=time_start, time_end=time_end, price=Decimal(price))
        db_session.add(tariff)
        await db_session.commit()
        return tariff

    return _add


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, gateway, notifier, locks, clock) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the DB, gateway, notifier, locks and clock swapped for test doubles."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_locks] = lambda: locks
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def player_headers(user_id: int = 1) -> dict:
    return {"X-User-Id": str(user_id), "X-User-Role": "player"}


def admin_headers(user_id: int = 1000) -> dict:
    return {"X-User-Id": str(user_id), "X-User-Role": "admin"}


@pytest_asyncio.fixture(autouse=True)
async def settle_notifications():
    """Finish background notifications inside the test's own event loop."""
    yield
    await drain_notifications()
