"""
Stripe PaymentIntents adapter.

Stripe amounts are integers in the currency's minor unit (paise for INR).
The SDK is synchronous, so calls run in a worker thread.
"""

import asyncio
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import stripe

from venue_booking.core.errors import GatewayError
from venue_booking.core.logging import get_logger
from venue_booking.core.metrics import record_gateway_call
from venue_booking.services.interfaces.payment_gateway import (
    INTENT_FAILED,
    INTENT_PENDING,
    INTENT_SUCCEEDED,
    IntentStatus,
    PaymentGateway,
    PaymentIntent,
)

logger = get_logger(__name__)

MINOR_UNITS = Decimal(100)

TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError)


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * MINOR_UNITS).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / MINOR_UNITS).quantize(Decimal("0.01"))


def map_intent_status(intent) -> str:
    if intent.status == "succeeded":
        return INTENT_SUCCEEDED
    if intent.status == "canceled":
        return INTENT_FAILED
    # A declined card sends the intent back to requires_payment_method; the
    # customer can retry on the same intent, so it is still open
    return INTENT_PENDING


def to_intent_status(intent) -> IntentStatus:
    return IntentStatus(
        status=map_intent_status(intent),
        charged_amount=from_minor_units(intent.amount_received or 0),
        raw_status=intent.status,
    )


class StripePaymentGateway(PaymentGateway):
    def __init__(self, api_key: str):
        self.api_key = api_key

    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        metadata: dict,
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntent:
        stripe_kwargs = {
            "api_key": self.api_key,
            "amount": to_minor_units(amount),
            "currency": currency,
            "metadata": {k: str(v) for k, v in metadata.items()},
            "payment_method_types": ["card"],
        }
        if idempotency_key:
            stripe_kwargs["idempotency_key"] = idempotency_key

        try:
            intent = await asyncio.to_thread(stripe.PaymentIntent.create, **stripe_kwargs)
        except TRANSIENT_ERRORS as e:
            record_gateway_call("create_intent", "error")
            raise GatewayError("Payment gateway temporarily unavailable", retryable=True, error=str(e))
        except stripe.StripeError as e:
            record_gateway_call("create_intent", "error")
            logger.error("stripe_create_intent_failed", error=str(e), code=getattr(e, "code", None))
            raise GatewayError("Payment gateway rejected the payment intent", error=str(e))

        record_gateway_call("create_intent", "ok")
        return PaymentIntent(reference=intent.id, client_secret=intent.client_secret)

    async def get_intent_status(self, reference: str) -> IntentStatus:
        try:
            intent = await asyncio.to_thread(stripe.PaymentIntent.retrieve, reference, api_key=self.api_key)
        except TRANSIENT_ERRORS as e:
            record_gateway_call("get_status", "error")
            raise GatewayError("Could not verify payment status with the gateway", retryable=True, error=str(e))
        except stripe.StripeError as e:
            record_gateway_call("get_status", "error")
            logger.error("stripe_retrieve_intent_failed", reference=reference, error=str(e))
            raise GatewayError("Could not verify payment status with the gateway", retryable=True, error=str(e))

        record_gateway_call("get_status", "ok")
        return to_intent_status(intent)

    async def cancel_intent(self, reference: str) -> IntentStatus:
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.cancel,
                reference,
                api_key=self.api_key,
                cancellation_reason="abandoned",
            )
        except TRANSIENT_ERRORS as e:
            record_gateway_call("cancel_intent", "error")
            raise GatewayError("Could not cancel the payment intent", retryable=True, error=str(e))
        except stripe.InvalidRequestError as e:
            # Already succeeded or already canceled; report whatever it is now
            record_gateway_call("cancel_intent", "rejected")
            logger.warning("stripe_cancel_intent_rejected", reference=reference, error=str(e))
            return await self.get_intent_status(reference)
        except stripe.StripeError as e:
            record_gateway_call("cancel_intent", "error")
            logger.error("stripe_cancel_intent_failed", reference=reference, error=str(e))
            raise GatewayError("Could not cancel the payment intent", retryable=True, error=str(e))

        record_gateway_call("cancel_intent", "ok")
        return to_intent_status(intent)
