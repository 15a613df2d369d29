"""
Tests for logging setup and reservation context binding.
"""

import logging

import pytest
import structlog

from venue_booking.core.logging import HANDLER_NAME, add_service_context, reservation_context, setup_logging
from venue_booking.services.notification_service import drain_notifications
from venue_booking.services.reservation_service import ReservationCoordinator
from tests.conftest import RecordingNotifier, at


class ContextRecordingNotifier(RecordingNotifier):
    """Remembers the log context each notification was sent under."""

    def __init__(self):
        super().__init__()
        self.contexts: list[dict] = []

    async def notify(self, target, message, category, link=None):
        self.contexts.append(structlog.contextvars.get_contextvars())
        await super().notify(target, message, category, link)


def test_reservation_context_binds_and_unbinds():
    structlog.contextvars.clear_contextvars()

    with reservation_context(payment_id=7, booking_id=None):
        assert structlog.contextvars.get_contextvars() == {"payment_id": 7}
        with reservation_context(booking_id=3):
            assert structlog.contextvars.get_contextvars() == {"payment_id": 7, "booking_id": 3}
        assert structlog.contextvars.get_contextvars() == {"payment_id": 7}

    assert structlog.contextvars.get_contextvars() == {}


def test_reservation_context_rejects_unknown_keys():
    with pytest.raises(ValueError):
        with reservation_context(customer_id=1):
            pass


def test_service_context_does_not_override_event_fields():
    event = add_service_context(None, "info", {"event": "x", "environment": "replay"})

    assert event["service"] == "Venue Booking API"
    assert event["environment"] == "replay"


def test_setup_logging_installs_one_handler():
    root_logger = logging.getLogger()
    try:
        setup_logging()
        setup_logging()
        ours = [h for h in root_logger.handlers if h.get_name() == HANDLER_NAME]
        assert len(ours) == 1
        assert logging.getLogger("stripe").level == logging.WARNING
    finally:
        for handler in [h for h in root_logger.handlers if h.get_name() == HANDLER_NAME]:
            root_logger.removeHandler(handler)
        structlog.reset_defaults()


@pytest.mark.asyncio
async def test_notifications_carry_reservation_ids(db_session, catalog, gateway, locks, clock, settings):
    notifier = ContextRecordingNotifier()
    coordinator = ReservationCoordinator(db_session, gateway, notifier, locks, clock=clock, settings=settings)
    initiated = await coordinator.initiate(1, catalog.arena.id, at(8), at(9))
    gateway.settle(initiated.gateway_reference)

    confirmed = await coordinator.confirm(1, initiated.payment_id)
    await drain_notifications()

    assert notifier.contexts
    for context in notifier.contexts:
        assert context["payment_id"] == initiated.payment_id
        assert context["booking_id"] == confirmed.booking_id
    assert "payment_id" not in structlog.contextvars.get_contextvars()
