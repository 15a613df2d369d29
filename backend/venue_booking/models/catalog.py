"""
Catalog tables: venues, coaches, rental equipment and tariffs.

These rows are managed by the catalog service; this service only reads them
to price reservations and to validate requested resources.
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from venue_booking.db.base import Base, TimestampMixin

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class Venue(Base, TimestampMixin):
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    owner_id = Column(Integer, nullable=False, index=True)
    price_per_hour = Column(Numeric(10, 2), nullable=False)
    # Local venue time, "HH:MM"
    opening_start = Column(String(5), nullable=False, default="06:00")
    opening_end = Column(String(5), nullable=False, default="23:00")

    equipment = relationship("Equipment", back_populates="venue", lazy="selectin")
    # Queried through find_tariffs; never loaded implicitly
    tariffs = relationship("Tariff", back_populates="venue", lazy="raise")

    __table_args__ = (
        CheckConstraint("price_per_hour >= 0", name="check_venue_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Venue(id={self.id}, name={self.name}, price_per_hour={self.price_per_hour})>"


class Coach(Base, TimestampMixin):
    __tablename__ = "coaches"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    hourly_rate = Column(Numeric(10, 2), nullable=False)

    __table_args__ = (
        CheckConstraint("hourly_rate >= 0", name="check_coach_rate_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Coach(id={self.id}, hourly_rate={self.hourly_rate})>"


class Equipment(Base, TimestampMixin):
    __tablename__ = "equipment"

    id = Column(Integer, primary_key=True, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    # Flat per-booking add-on, not scaled by duration
    rental_price = Column(Numeric(10, 2), nullable=False, default=0)

    venue = relationship("Venue", back_populates="equipment")

    __table_args__ = (
        CheckConstraint("rental_price >= 0", name="check_equipment_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Equipment(id={self.id}, name={self.name}, rental_price={self.rental_price})>"


class Tariff(Base, TimestampMixin):
    """Hourly price override for a venue on one weekday within a local time window."""

    __tablename__ = "tariffs"

    id = Column(Integer, primary_key=True, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False)
    day = Column(String(10), nullable=False)
    time_start = Column(String(5), nullable=False)  # "06:00"
    time_end = Column(String(5), nullable=False)    # "10:00"
    price = Column(Numeric(10, 2), nullable=False)

    venue = relationship("Venue", back_populates="tariffs")

    __table_args__ = (
        Index("ix_tariffs_venue_day", "venue_id", "day"),
        CheckConstraint("price >= 0", name="check_tariff_price_non_negative"),
        CheckConstraint("time_start < time_end", name="check_tariff_window"),
    )

    def __repr__(self) -> str:
        return f"<Tariff(venue={self.venue_id}, {self.day} {self.time_start}-{self.time_end}, price={self.price})>"
