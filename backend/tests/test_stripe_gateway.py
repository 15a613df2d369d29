"""
Tests for the Stripe adapter. The SDK is patched; no network calls.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe

from venue_booking.core.errors import GatewayError
from venue_booking.services.interfaces.payment_gateway import INTENT_FAILED, INTENT_PENDING, INTENT_SUCCEEDED
from venue_booking.services.stripe_gateway import (
    StripePaymentGateway,
    from_minor_units,
    map_intent_status,
    to_minor_units,
)


def test_minor_units():
    assert to_minor_units(Decimal("1700.00")) == 170000
    assert to_minor_units(Decimal("10.005")) == 1001
    assert from_minor_units(169999) == Decimal("1699.99")


@pytest.mark.parametrize(
    "status,error,expected",
    [
        ("succeeded", None, INTENT_SUCCEEDED),
        ("canceled", None, INTENT_FAILED),
        ("requires_payment_method", {"code": "card_declined"}, INTENT_PENDING),
        ("requires_payment_method", None, INTENT_PENDING),
        ("processing", None, INTENT_PENDING),
        ("requires_action", None, INTENT_PENDING),
    ],
)
def test_map_intent_status(status, error, expected):
    intent = SimpleNamespace(status=status, last_payment_error=error)
    assert map_intent_status(intent) == expected


@pytest.mark.asyncio
async def test_create_intent_sends_minor_units_and_idempotency_key(monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="pi_123", client_secret="pi_123_secret")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    gateway = StripePaymentGateway(api_key="sk_test")

    intent = await gateway.create_intent(Decimal("1700.00"), "inr", {"payment_id": 5}, idempotency_key="reservation-5")

    assert intent.reference == "pi_123"
    assert intent.client_secret == "pi_123_secret"
    assert captured["amount"] == 170000
    assert captured["currency"] == "inr"
    assert captured["metadata"] == {"payment_id": "5"}
    assert captured["idempotency_key"] == "reservation-5"


@pytest.mark.asyncio
async def test_create_intent_transient_error_is_retryable(monkeypatch):
    def fake_create(**kwargs):
        raise stripe.APIConnectionError("connection reset")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    gateway = StripePaymentGateway(api_key="sk_test")

    with pytest.raises(GatewayError) as exc_info:
        await gateway.create_intent(Decimal("10.00"), "inr", {})

    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_create_intent_rejection_is_final(monkeypatch):
    def fake_create(**kwargs):
        raise stripe.InvalidRequestError("bad currency", param="currency")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    gateway = StripePaymentGateway(api_key="sk_test")

    with pytest.raises(GatewayError) as exc_info:
        await gateway.create_intent(Decimal("10.00"), "xyz", {})

    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_get_intent_status_reports_amount_received(monkeypatch):
    def fake_retrieve(reference, api_key=None):
        return SimpleNamespace(status="succeeded", amount_received=169999, last_payment_error=None)

    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", fake_retrieve)
    gateway = StripePaymentGateway(api_key="sk_test")

    status = await gateway.get_intent_status("pi_123")

    assert status.status == INTENT_SUCCEEDED
    assert status.charged_amount == Decimal("1699.99")
    assert status.raw_status == "succeeded"
    assert status.is_terminal


@pytest.mark.asyncio
async def test_cancel_intent_marks_it_failed(monkeypatch):
    captured = {}

    def fake_cancel(reference, **kwargs):
        captured.update(kwargs, reference=reference)
        return SimpleNamespace(status="canceled", amount_received=0, last_payment_error=None)

    monkeypatch.setattr(stripe.PaymentIntent, "cancel", fake_cancel)
    gateway = StripePaymentGateway(api_key="sk_test")

    status = await gateway.cancel_intent("pi_123")

    assert status.status == INTENT_FAILED
    assert status.raw_status == "canceled"
    assert captured["reference"] == "pi_123"
    assert captured["cancellation_reason"] == "abandoned"


@pytest.mark.asyncio
async def test_cancel_intent_that_already_succeeded(monkeypatch):
    """Stripe refuses to cancel a succeeded intent; the adapter reports the charge instead."""

    def fake_cancel(reference, **kwargs):
        raise stripe.InvalidRequestError("You cannot cancel this PaymentIntent", param=None)

    def fake_retrieve(reference, api_key=None):
        return SimpleNamespace(status="succeeded", amount_received=100000, last_payment_error=None)

    monkeypatch.setattr(stripe.PaymentIntent, "cancel", fake_cancel)
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", fake_retrieve)
    gateway = StripePaymentGateway(api_key="sk_test")

    status = await gateway.cancel_intent("pi_123")

    assert status.status == INTENT_SUCCEEDED
    assert status.charged_amount == Decimal("1000.00")


@pytest.mark.asyncio
async def test_cancel_intent_transient_error_is_retryable(monkeypatch):
    def fake_cancel(reference, **kwargs):
        raise stripe.APIConnectionError("connection reset")

    monkeypatch.setattr(stripe.PaymentIntent, "cancel", fake_cancel)
    gateway = StripePaymentGateway(api_key="sk_test")

    with pytest.raises(GatewayError) as exc_info:
        await gateway.cancel_intent("pi_123")

    assert exc_info.value.retryable is True
