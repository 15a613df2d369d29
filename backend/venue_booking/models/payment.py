"""
Payment record that stages a reservation while the gateway charge is in flight.

Lifecycle:
- created `pending` by initiate, with `staged_details` holding the reservation
  the customer asked for and the authoritative amount
- `pending -> success` once the booking is written (staged_details cleared,
  booking_id set), or `pending -> failed` on gateway failure, amount mismatch,
  a post-payment conflict or TTL expiry (staged_details kept for forensics)
- never deleted; this table is the financial audit trail
"""

from sqlalchemy import Column, Integer, String, Numeric, Text, JSON, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from venue_booking.db.base import Base, TimestampMixin

PAYMENT_STATUSES = ("pending", "success", "failed", "refunded")


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    payer_id = Column(Integer, nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    payment_method = Column(String(20), nullable=False, default="card")
    gateway_reference = Column(String(255), nullable=True, index=True)
    staged_details = Column(JSON, nullable=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    notes = Column(Text, nullable=True)

    # Load explicitly (selectinload/joinedload); implicit IO is an error under asyncio
    booking = relationship("Booking", lazy="raise")

    __table_args__ = (
        # Expiry sweep scans pending records by age
        Index("ix_payments_status_created", "status", "created_at"),
        CheckConstraint("amount > 0", name="check_payment_amount_positive"),
        CheckConstraint(
            "status IN ('pending', 'success', 'failed', 'refunded')", name="check_payment_status"
        ),
    )

    def append_note(self, note: str) -> None:
        self.notes = f"{self.notes}\n{note}" if self.notes else note

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, payer={self.payer_id}, amount={self.amount}, status={self.status})>"
