"""
Booking model: a confirmed, paid reservation of a venue interval.

Key design decisions:
- Bookings are only ever inserted by the reservation coordinator, inside the
  same transaction that flips the payment to success
- Equipment claims live in an association table so equipment overlap can be
  checked with a single indexed join
- Status field allows cancellation without deleting records
- [start_time, end_time) is half-open; the CHECK keeps it non-empty
"""

from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, ForeignKey, Table, Index, CheckConstraint,
)
from sqlalchemy.orm import relationship

from venue_booking.db.base import Base, TimestampMixin

BOOKING_STATUSES = ("confirmed", "cancelled", "completed")
BOOKING_PAYMENT_STATUSES = ("paid", "refunded")

booking_equipment = Table(
    "booking_equipment",
    Base.metadata,
    Column("booking_id", Integer, ForeignKey("bookings.id", ondelete="CASCADE"), primary_key=True),
    Column("equipment_id", Integer, ForeignKey("equipment.id"), primary_key=True),
    Index("ix_booking_equipment_equipment_id", "equipment_id"),
)


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, nullable=False, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False)
    coach_id = Column(Integer, ForeignKey("coaches.id"), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    payment_status = Column(String(20), nullable=False, default="paid")
    status = Column(String(20), nullable=False, default="confirmed")

    equipment = relationship("Equipment", secondary=booking_equipment, lazy="selectin")

    __table_args__ = (
        # Overlap queries filter by resource then by time
        Index("ix_bookings_venue_start", "venue_id", "start_time"),
        Index("ix_bookings_coach_start", "coach_id", "start_time"),
        CheckConstraint("start_time < end_time", name="check_booking_interval"),
        CheckConstraint("total_amount > 0", name="check_booking_amount_positive"),
        CheckConstraint("payment_status IN ('paid', 'refunded')", name="check_booking_payment_status"),
        CheckConstraint(
            "status IN ('confirmed', 'cancelled', 'completed')", name="check_booking_status"
        ),
    )

    @property
    def equipment_ids(self) -> list[int]:
        return sorted(item.id for item in self.equipment)

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, venue={self.venue_id}, "
            f"{self.start_time}-{self.end_time}, status={self.status})>"
        )
