"""
Reservation transaction coordinator: initiate payment, then confirm payment
and materialise the booking.

TWO SYSTEMS, NO SHARED LOCK
===========================

Problem:
  The payment gateway and our database are separate systems. A customer can
  be charged while, in the meantime, someone else's confirmation claims the
  same venue/coach/equipment interval. Checking availability and inserting the
  booking as two unguarded statements lets two confirms both pass the check
  and both insert: a double booking.

Solution:
  1. initiate: check availability, price server-side, persist a `pending`
     Payment with the staged reservation, then open the gateway intent.
     Never creates a Booking.
  2. confirm: verify the gateway's terminal status and charged amount, then
     enter the critical section:

        hold locks on payment:<id>, venue:<id>, coach:<id>, equipment:<id>...
          re-read payment         (a racing confirm may have finished it)
          re-check availability   (time has passed since initiate)
          INSERT booking + UPDATE payment -> success   (one commit)

     Locks are keyed by the contended resources, so confirms for unrelated
     venues never wait on each other, and keys are taken in sorted order so
     overlapping key sets cannot deadlock.

  If the re-check finds a conflict after the customer was charged, the
  payment is marked failed with a note and PaidButUnbookable is raised. That
  error is never retried or swallowed: it needs a refund.

State machine (Payment):
  pending -> success   booking written
  pending -> failed    gateway failure, amount mismatch, post-payment
                       conflict, or TTL expiry
  success and failed are terminal. Confirming a success record again returns
  the same booking without side effects. Confirming a failed record whose
  intent nevertheless succeeded raises PaidButUnbookable, never a plain
  InvalidState: money moved and no booking exists.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.clock import Clock, SystemClock, as_utc, to_utc
from venue_booking.core.config import Settings, get_settings
from venue_booking.core.errors import (
    AmountMismatch,
    Forbidden,
    GatewayError,
    InvalidState,
    NotFound,
    PaidButUnbookable,
    SlotUnavailable,
    ValidationError,
)
from venue_booking.core.logging import get_logger, reservation_context
from venue_booking.core.metrics import (
    confirm_latency,
    expired_reservations,
    record_confirm,
    record_gateway_call,
    record_initiate,
)
from venue_booking.models.booking import Booking
from venue_booking.models.catalog import Venue
from venue_booking.models.payment import PAYMENT_STATUSES, Payment
from venue_booking.schemas.reservation import StagedDetails
from venue_booking.services import catalog_service
from venue_booking.services.availability_service import check_reservation, claims_for, validate_interval
from venue_booking.services.interfaces.payment_gateway import (
    INTENT_FAILED,
    INTENT_PENDING,
    INTENT_SUCCEEDED,
    PaymentGateway,
)
from venue_booking.services.interfaces.resource_lock import ResourceLockStrategy
from venue_booking.services.notification_service import NotificationDispatcher, dispatch_in_background
from venue_booking.services.pricing_service import quantize, price_reservation, venue_timezone

logger = get_logger(__name__)

PAID_BUT_UNBOOKABLE_MESSAGE = (
    "Payment successful, but the time slot became unavailable before your booking "
    "could be created. Please contact support for a refund."
)
PAID_AFTER_FAILURE_MESSAGE = (
    "Payment received, but this reservation had already been closed and no booking "
    "was created. Please contact support for a refund."
)
LATE_PAYMENT_NOTE = "Gateway reports a successful charge on this failed record; refund required."


@dataclass(frozen=True)
class InitiatedReservation:
    payment_id: int
    gateway_reference: str
    client_secret: str
    amount: Decimal


@dataclass(frozen=True)
class ConfirmedReservation:
    booking_id: int
    already_confirmed: bool = False


def payment_lock_key(payment_id: int) -> str:
    return f"payment:{payment_id}"


class ReservationCoordinator:
    """
    The only component allowed to create bookings.

    Bound to one session. Manages its own commits because failure states
    (failed payments, conflict notes) must persist even though an error is
    raised afterwards.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        notifier: NotificationDispatcher,
        locks: ResourceLockStrategy,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.notifier = notifier
        self.locks = locks
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Phase 1: initiate
    # ------------------------------------------------------------------

    async def initiate(
        self,
        customer_id: int,
        venue_id: int,
        start_time: datetime,
        end_time: datetime,
        coach_id: Optional[int] = None,
        equipment_ids: Iterable[int] = (),
        quoted_amount: Optional[Decimal] = None,
    ) -> InitiatedReservation:
        """
        Check availability, price the reservation and open a gateway intent.
        Raises SlotUnavailable without side effects if anything is taken.
        """
        start, end = validate_interval(start_time, end_time)
        equipment_ids = sorted(set(equipment_ids))

        await catalog_service.get_venue(self.db, venue_id)
        if coach_id is not None:
            await catalog_service.get_coach(self.db, coach_id)
        await catalog_service.get_equipment(self.db, equipment_ids, venue_id=venue_id)

        availability = await check_reservation(self.db, venue_id, start, end, coach_id, equipment_ids)
        if not availability:
            record_initiate("conflict")
            raise SlotUnavailable(
                availability.reason,
                axis=availability.axis.value,
                resource_id=availability.resource_id,
            )

        price = await price_reservation(self.db, venue_id, start, end, coach_id, equipment_ids)
        amount = price.total
        if amount <= 0:
            raise ValidationError("Calculated amount must be positive.", amount=str(amount))

        quote_drift = abs(quantize(Decimal(quoted_amount)) - amount) if quoted_amount is not None else None
        if quote_drift is not None and quote_drift > self.settings.AMOUNT_TOLERANCE:
            # Client figures are advisory; the charge always uses our price
            logger.warning(
                "reservation_quote_mismatch",
                customer_id=customer_id,
                venue_id=venue_id,
                quoted=str(quoted_amount),
                authoritative=str(amount),
            )

        staged = StagedDetails(
            venue_id=venue_id,
            start_time=start,
            end_time=end,
            coach_id=coach_id,
            equipment_ids=equipment_ids,
            amount=amount,
        )
        now = self.clock.now()
        payment = Payment(
            payer_id=customer_id,
            amount=amount,
            status="pending",
            payment_method="card",
            staged_details=staged.model_dump(mode="json"),
            created_at=now,
            updated_at=now,
        )
        self.db.add(payment)
        # Committed before the gateway call so the record survives a client disconnect
        await self.db.commit()

        intent = await self._open_intent(payment, venue_id)

        payment.gateway_reference = intent.reference
        payment.updated_at = self.clock.now()
        await self.db.commit()

        record_initiate("initiated")
        logger.info(
            "reservation_initiated",
            payment_id=payment.id,
            customer_id=customer_id,
            venue_id=venue_id,
            coach_id=coach_id,
            equipment_ids=equipment_ids,
            amount=str(amount),
            gateway_reference=intent.reference,
        )
        return InitiatedReservation(
            payment_id=payment.id,
            gateway_reference=intent.reference,
            client_secret=intent.client_secret,
            amount=amount,
        )

    async def _open_intent(self, payment: Payment, venue_id: int):
        """
        Open the gateway intent, retrying transient failures with exponential
        backoff. Safe to retry: nothing depends on the intent yet and the
        idempotency key stops the gateway from opening two.
        """
        max_attempts = max(1, self.settings.GATEWAY_MAX_RETRIES)
        metadata = {"payment_id": payment.id, "user_id": payment.payer_id, "venue_id": venue_id}

        for attempt in range(1, max_attempts + 1):
            try:
                return await self.gateway.create_intent(
                    Decimal(payment.amount),
                    self.settings.CURRENCY,
                    metadata,
                    idempotency_key=f"reservation-{payment.id}",
                )
            except GatewayError as e:
                if not e.retryable or attempt == max_attempts:
                    record_initiate("gateway_error")
                    # Left pending without a reference; the expiry sweep fails it
                    logger.error(
                        "reservation_gateway_open_failed",
                        payment_id=payment.id,
                        attempt=attempt,
                        error=str(e),
                    )
                    raise
                record_gateway_call("create_intent", "retry")
                logger.info("reservation_gateway_retry", payment_id=payment.id, attempt=attempt)
                await asyncio.sleep(self.settings.GATEWAY_RETRY_BACKOFF_SECONDS * (2 ** (attempt - 1)))

    # ------------------------------------------------------------------
    # Phase 2: confirm
    # ------------------------------------------------------------------

    async def confirm(self, customer_id: int, payment_id: int) -> ConfirmedReservation:
        """
        Verify the charge and turn the staged reservation into a booking.
        Idempotent for records that already succeeded.
        """
        with confirm_latency.time(), reservation_context(payment_id=payment_id):
            payment = await self._load_payment(payment_id)

            if payment.payer_id != customer_id:
                raise Forbidden("Not authorized to confirm this payment.", payment_id=payment_id)
            if payment.status == "success":
                record_confirm("replayed")
                return ConfirmedReservation(booking_id=payment.booking_id, already_confirmed=True)
            if payment.status == "failed" and payment.gateway_reference:
                await self._reject_failed(payment)
            if payment.status != "pending":
                raise InvalidState(
                    f"Payment cannot be confirmed (status: {payment.status}).",
                    payment_id=payment_id,
                    status=payment.status,
                )
            if not payment.gateway_reference:
                raise InvalidState(
                    "Payment was never opened with the gateway; start a new reservation.",
                    payment_id=payment_id,
                )
            if not payment.staged_details:
                raise InvalidState("Payment has no staged reservation.", payment_id=payment_id)

            staged = StagedDetails.model_validate(payment.staged_details)
            await self._verify_charge(payment, staged)
            result = await self._materialize(payment.id, staged)

        if not result.already_confirmed:
            # Background notification tasks inherit these ids
            with reservation_context(payment_id=payment_id, booking_id=result.booking_id):
                await self._announce(result.booking_id)
        return result

    async def _verify_charge(self, payment: Payment, staged: StagedDetails) -> None:
        try:
            intent = await self.gateway.get_intent_status(payment.gateway_reference)
        except GatewayError:
            record_confirm("gateway_unreachable")
            logger.warning("reservation_confirm_gateway_unreachable", payment_id=payment.id)
            raise

        if intent.status == INTENT_PENDING:
            record_confirm("gateway_pending")
            raise GatewayError(
                "Payment is still processing; retry confirmation shortly.",
                retryable=True,
                gateway_status=intent.raw_status or intent.status,
                payment_id=payment.id,
            )

        if intent.status != INTENT_SUCCEEDED:
            reported = intent.raw_status or intent.status
            await self._fail_pending(payment.id, f"Gateway reported payment {reported}.")
            record_confirm("gateway_failed")
            logger.warning("reservation_payment_failed", payment_id=payment.id, gateway_status=reported)
            raise GatewayError(
                f"Payment not successful according to the gateway (status: {reported}).",
                gateway_status=reported,
                payment_id=payment.id,
            )

        expected = Decimal(staged.amount)
        if abs(intent.charged_amount - expected) > self.settings.AMOUNT_TOLERANCE:
            await self._fail_pending(
                payment.id,
                f"Charged amount {intent.charged_amount} does not match expected {expected}.",
            )
            record_confirm("amount_mismatch")
            logger.critical(
                "reservation_amount_mismatch",
                payment_id=payment.id,
                gateway_reference=payment.gateway_reference,
                charged=str(intent.charged_amount),
                expected=str(expected),
            )
            raise AmountMismatch(
                "Payment amount mismatch detected.",
                payment_id=payment.id,
                charged=str(intent.charged_amount),
                expected=str(expected),
            )

    async def _materialize(self, payment_id: int, staged: StagedDetails) -> ConfirmedReservation:
        """Critical section: re-check and write booking + payment in one commit."""
        keys = [payment_lock_key(payment_id)]
        keys += [claim.lock_key for claim in claims_for(staged.venue_id, staged.coach_id, staged.equipment_ids)]

        # Close the read transaction so the re-check sees every committed booking
        await self.db.commit()

        async with self.locks.hold(keys):
            payment = await self._load_payment(payment_id, for_update=True)
            if payment.status == "success":
                record_confirm("replayed")
                return ConfirmedReservation(booking_id=payment.booking_id, already_confirmed=True)
            if payment.status == "failed":
                # Failed (e.g. expired) after we verified the charge
                raise await self._record_late_payment(payment)
            if payment.status != "pending":
                raise InvalidState(
                    f"Payment cannot be confirmed (status: {payment.status}).",
                    payment_id=payment_id,
                    status=payment.status,
                )

            availability = await check_reservation(
                self.db,
                staged.venue_id,
                staged.start_time,
                staged.end_time,
                staged.coach_id,
                staged.equipment_ids,
            )
            if not availability:
                raise await self._record_paid_but_unbookable(payment, availability)

            equipment = await catalog_service.get_equipment(self.db, staged.equipment_ids)
            booking = Booking(
                customer_id=payment.payer_id,
                venue_id=staged.venue_id,
                coach_id=staged.coach_id,
                start_time=to_utc(staged.start_time),
                end_time=to_utc(staged.end_time),
                total_amount=payment.amount,
                payment_status="paid",
                status="confirmed",
                equipment=equipment,
            )
            try:
                self.db.add(booking)
                await self.db.flush()
                payment.booking_id = booking.id
                payment.status = "success"
                payment.staged_details = None
                payment.updated_at = self.clock.now()
                await self.db.commit()
            except SQLAlchemyError as e:
                # Neither write survives; the payment stays pending and confirm can be retried
                await self.db.rollback()
                logger.critical(
                    "reservation_booking_write_failed",
                    payment_id=payment_id,
                    staged=staged.model_dump(mode="json"),
                    error=str(e),
                )
                raise

        record_confirm("booked")
        logger.info(
            "booking_created",
            booking_id=booking.id,
            payment_id=payment_id,
            customer_id=booking.customer_id,
            venue_id=booking.venue_id,
            coach_id=booking.coach_id,
            equipment_ids=staged.equipment_ids,
            amount=str(booking.total_amount),
        )
        return ConfirmedReservation(booking_id=booking.id)

    async def _record_paid_but_unbookable(self, payment: Payment, availability) -> PaidButUnbookable:
        staged_snapshot = dict(payment.staged_details or {})
        payment.status = "failed"
        payment.append_note(f"Payment succeeded but the slot became unavailable: {availability.reason}")
        payment.updated_at = self.clock.now()
        await self.db.commit()

        record_confirm("conflict")
        logger.critical(
            "reservation_paid_but_unbookable",
            payment_id=payment.id,
            payer_id=payment.payer_id,
            gateway_reference=payment.gateway_reference,
            amount=str(payment.amount),
            axis=availability.axis.value,
            resource_id=availability.resource_id,
            reason=availability.reason,
            staged=staged_snapshot,
        )
        return PaidButUnbookable(
            PAID_BUT_UNBOOKABLE_MESSAGE,
            axis=availability.axis.value,
            resource_id=availability.resource_id,
            payment_id=payment.id,
            reason=availability.reason,
        )

    async def _reject_failed(self, payment: Payment) -> None:
        """
        A failed record may still have been paid: its client secret works until
        the intent is cancelled. Money without a booking is PaidButUnbookable,
        never a plain InvalidState.
        """
        intent = await self.gateway.get_intent_status(payment.gateway_reference)
        if intent.status != INTENT_SUCCEEDED:
            return
        async with self.locks.hold([payment_lock_key(payment.id)]):
            payment = await self._load_payment(payment.id, for_update=True)
            raise await self._record_late_payment(payment)

    async def _record_late_payment(self, payment: Payment) -> PaidButUnbookable:
        """Caller holds the payment lock."""
        if LATE_PAYMENT_NOTE not in (payment.notes or ""):
            payment.append_note(LATE_PAYMENT_NOTE)
            payment.updated_at = self.clock.now()
            await self.db.commit()

        record_confirm("paid_after_failure")
        logger.critical(
            "reservation_paid_after_failure",
            payment_id=payment.id,
            payer_id=payment.payer_id,
            gateway_reference=payment.gateway_reference,
            amount=str(payment.amount),
            staged=dict(payment.staged_details or {}),
            notes=payment.notes,
        )
        return PaidButUnbookable(
            PAID_AFTER_FAILURE_MESSAGE,
            payment_id=payment.id,
            reason=LATE_PAYMENT_NOTE,
        )

    async def _fail_pending(self, payment_id: int, note: str) -> bool:
        """Move a pending payment to failed. No-op if another request already finalised it."""
        async with self.locks.hold([payment_lock_key(payment_id)]):
            payment = await self._load_payment(payment_id, for_update=True)
            if payment.status != "pending":
                return False
            payment.status = "failed"
            payment.append_note(note)
            payment.updated_at = self.clock.now()
            await self.db.commit()
            return True

    async def _load_payment(self, payment_id: int, for_update: bool = False) -> Payment:
        query = select(Payment).where(Payment.id == payment_id).execution_options(populate_existing=True)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFound("Payment initiation record not found.", payment_id=payment_id)
        return payment

    async def _announce(self, booking_id: int) -> None:
        """Tell the venue owner and the customer. Never fails the confirmation."""
        try:
            booking = await self.db.get(Booking, booking_id)
            venue = await self.db.get(Venue, booking.venue_id)
        except SQLAlchemyError as e:
            logger.error("booking_notification_lookup_failed", booking_id=booking_id, error=str(e))
            return

        venue_name = venue.name if venue else "Venue"
        when = as_utc(booking.start_time).astimezone(venue_timezone()).strftime("%b %d, %Y %H:%M")
        if venue:
            dispatch_in_background(
                self.notifier,
                {"user_id": venue.owner_id},
                f"New booking confirmed for {venue_name} on {when}",
                "success",
                f"/admin/bookings/{booking.id}",
            )
        dispatch_in_background(
            self.notifier,
            {"user_id": booking.customer_id},
            f"Your booking for {venue_name} on {when} is confirmed!",
            "booking_confirmed",
            "/my-bookings",
        )

    # ------------------------------------------------------------------
    # Expiry sweep
    # ------------------------------------------------------------------

    async def expire_stale_reservations(self) -> int:
        """
        Fail pending payments older than PENDING_TTL_MINUTES.

        The gateway intent is cancelled first so its client secret can no
        longer be used. A record whose intent already succeeded (or cannot be
        cancelled yet, e.g. still processing) is left pending so the
        customer's confirm can still book it.
        """
        ttl = self.settings.PENDING_TTL_MINUTES
        cutoff = self.clock.now() - timedelta(minutes=ttl)
        result = await self.db.execute(
            select(Payment.id, Payment.gateway_reference)
            .where(Payment.status == "pending", Payment.created_at < cutoff)
            .order_by(Payment.id)
        )
        stale = result.all()
        await self.db.commit()

        expired = 0
        for payment_id, reference in stale:
            if reference:
                try:
                    intent = await self.gateway.cancel_intent(reference)
                except GatewayError as e:
                    logger.warning("reservation_expiry_gateway_unreachable", payment_id=payment_id, error=str(e))
                    continue
                if intent.status == INTENT_SUCCEEDED:
                    logger.warning("reservation_paid_but_unconfirmed", payment_id=payment_id, gateway_reference=reference)
                    continue
                if intent.status != INTENT_FAILED:
                    logger.info("reservation_expiry_intent_still_open", payment_id=payment_id, gateway_status=intent.raw_status)
                    continue
            if await self._fail_pending(payment_id, f"Expired after {ttl} minutes without confirmation."):
                expired += 1
                expired_reservations.inc()

        if expired:
            logger.info("reservations_expired", count=expired, cutoff=cutoff.isoformat())
        return expired


async def get_user_payments(db: AsyncSession, payer_id: int) -> list[Payment]:
    """Get all payment records for a payer, newest first."""
    result = await db.execute(
        select(Payment).where(Payment.payer_id == payer_id).order_by(Payment.created_at.desc(), Payment.id.desc())
    )
    return list(result.scalars().all())


async def list_payments(db: AsyncSession, status: Optional[str] = None) -> list[Payment]:
    """All payment records, newest first, optionally narrowed to one status."""
    query = select(Payment)
    if status is not None:
        if status not in PAYMENT_STATUSES:
            raise ValidationError(f"Unknown payment status: {status}", status=status, allowed=list(PAYMENT_STATUSES))
        query = query.where(Payment.status == status)
    result = await db.execute(query.order_by(Payment.created_at.desc(), Payment.id.desc()))
    return list(result.scalars().all())


async def get_owner_payments(db: AsyncSession, owner_id: int) -> list[Payment]:
    """
    Payments for bookings at venues the caller owns, newest first.
    Only confirmed reservations link to a booking, so open or failed
    attempts are not shown to owners.
    """
    result = await db.execute(
        select(Payment)
        .join(Booking, Payment.booking_id == Booking.id)
        .join(Venue, Booking.venue_id == Venue.id)
        .where(Venue.owner_id == owner_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
    )
    return list(result.scalars().all())
