"""
Availability engine: overlap detection across venue, coach and equipment.

OVERLAP RULE
============

Intervals are half-open [start, end). An existing confirmed booking conflicts
with a candidate interval iff

    existing.start < candidate.end AND existing.end > candidate.start

so a booking ending at 10:00 and one starting at 10:00 do not conflict.
Cancelled and completed bookings never block.

RESOURCE AXES
=============

A reservation claims one venue, at most one coach and any number of equipment
items. Each claim is a `ResourceClaim(axis, resource_id)` and every check walks
the same list in the same order (venue, coach, equipment by id), so adding a new
resource type means adding an axis and its query, nothing else. The same claims
name the locks the coordinator holds while it re-checks and commits.

Nothing in this module writes. `check_reservation` is a pure function of the
confirmed bookings currently committed.
"""

import enum
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Iterable, Iterator, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.clock import as_utc, to_utc
from venue_booking.core.errors import ValidationError
from venue_booking.core.logging import get_logger
from venue_booking.models.booking import Booking, booking_equipment
from venue_booking.models.catalog import Venue, Tariff, Equipment, WEEKDAYS
from venue_booking.services import catalog_service
from venue_booking.services.pricing_service import quote_venue, venue_timezone

logger = get_logger(__name__)


class ResourceAxis(str, enum.Enum):
    VENUE = "venue"
    COACH = "coach"
    EQUIPMENT = "equipment"


@dataclass(frozen=True)
class ResourceClaim:
    axis: ResourceAxis
    resource_id: int

    @property
    def lock_key(self) -> str:
        return f"{self.axis.value}:{self.resource_id}"


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    axis: Optional[ResourceAxis] = None
    resource_id: Optional[int] = None
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.available


AVAILABLE = AvailabilityResult(available=True)


@dataclass(frozen=True)
class Slot:
    start_time: datetime
    end_time: datetime
    price: Decimal
    available: bool


def claims_for(
    venue_id: int,
    coach_id: Optional[int] = None,
    equipment_ids: Iterable[int] = (),
) -> list[ResourceClaim]:
    claims = [ResourceClaim(ResourceAxis.VENUE, venue_id)]
    if coach_id is not None:
        claims.append(ResourceClaim(ResourceAxis.COACH, coach_id))
    claims.extend(ResourceClaim(ResourceAxis.EQUIPMENT, eq_id) for eq_id in sorted(set(equipment_ids)))
    return claims


def validate_interval(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    """Normalise to UTC and reject naive, empty or inverted intervals."""
    try:
        start_utc, end_utc = to_utc(start), to_utc(end)
    except (AttributeError, ValueError) as exc:
        raise ValidationError(f"Invalid start or end time: {exc}")
    if start_utc >= end_utc:
        raise ValidationError(
            "Start time must be before end time",
            start_time=start_utc.isoformat(),
            end_time=end_utc.isoformat(),
        )
    return start_utc, end_utc


def _overlapping(start: datetime, end: datetime):
    return select(Booking.id).where(
        Booking.status == "confirmed",
        Booking.start_time < end,
        Booking.end_time > start,
    )


def _conflict_query(claim: ResourceClaim, start: datetime, end: datetime):
    query = _overlapping(start, end)
    if claim.axis is ResourceAxis.VENUE:
        return query.where(Booking.venue_id == claim.resource_id)
    if claim.axis is ResourceAxis.COACH:
        return query.where(Booking.coach_id == claim.resource_id)
    if claim.axis is ResourceAxis.EQUIPMENT:
        return query.join(booking_equipment, booking_equipment.c.booking_id == Booking.id).where(
            booking_equipment.c.equipment_id == claim.resource_id
        )
    raise ValueError(f"Unknown resource axis: {claim.axis}")


async def has_conflict(
    db: AsyncSession,
    axis: ResourceAxis,
    resource_id: int,
    start: datetime,
    end: datetime,
) -> bool:
    """True iff a confirmed booking on this axis/resource overlaps [start, end)."""
    start, end = validate_interval(start, end)
    query = _conflict_query(ResourceClaim(ResourceAxis(axis), resource_id), start, end).limit(1)
    result = await db.execute(query)
    return result.first() is not None


async def _describe(db: AsyncSession, claim: ResourceClaim) -> str:
    if claim.axis is ResourceAxis.VENUE:
        return "This time slot is unavailable for the selected venue."
    if claim.axis is ResourceAxis.COACH:
        return "The selected coach is unavailable during this time slot."
    result = await db.execute(select(Equipment.name).where(Equipment.id == claim.resource_id))
    name = result.scalar_one_or_none() or f"#{claim.resource_id}"
    return f"Equipment unavailable during this time slot: {name}"


async def check_reservation(
    db: AsyncSession,
    venue_id: int,
    start: datetime,
    end: datetime,
    coach_id: Optional[int] = None,
    equipment_ids: Iterable[int] = (),
) -> AvailabilityResult:
    """
    Check venue, then coach, then each equipment item.
    Returns the first conflicting claim, or AVAILABLE.
    """
    start, end = validate_interval(start, end)

    for claim in claims_for(venue_id, coach_id, equipment_ids):
        result = await db.execute(_conflict_query(claim, start, end).limit(1))
        if result.first() is not None:
            reason = await _describe(db, claim)
            logger.info(
                "reservation_conflict",
                axis=claim.axis.value,
                resource_id=claim.resource_id,
                start_time=start.isoformat(),
                end_time=end.isoformat(),
            )
            return AvailabilityResult(
                available=False,
                axis=claim.axis,
                resource_id=claim.resource_id,
                reason=reason,
            )
    return AVAILABLE


def parse_clock_time(value: str) -> time:
    hours, minutes = value.split(":", 1)
    return time(int(hours), int(minutes))


class SlotListing:
    """
    Lazy, restartable sequence of fixed-length slots for one venue day.

    Everything it needs (opening window, tariffs, booked intervals) is loaded
    up front; iterating only does arithmetic, so it can be iterated any number
    of times with identical results.
    """

    def __init__(
        self,
        venue: Venue,
        day: date,
        slot_minutes: int,
        tariffs: Sequence[Tariff],
        booked: Sequence[tuple[datetime, datetime]],
    ):
        self.venue = venue
        self.day = day
        self.slot_length = timedelta(minutes=slot_minutes)
        self.tariffs = tariffs
        self.booked = booked
        self.tz = venue_timezone()

    def _window(self) -> tuple[datetime, datetime]:
        opens = datetime.combine(self.day, parse_clock_time(self.venue.opening_start), tzinfo=self.tz)
        closes = datetime.combine(self.day, parse_clock_time(self.venue.opening_end), tzinfo=self.tz)
        return to_utc(opens), to_utc(closes)

    def __iter__(self) -> Iterator[Slot]:
        opens, closes = self._window()
        slot_start = opens
        # A trailing remainder shorter than a slot is dropped
        while slot_start + self.slot_length <= closes:
            slot_end = slot_start + self.slot_length
            taken = any(b_start < slot_end and b_end > slot_start for b_start, b_end in self.booked)
            yield Slot(
                start_time=slot_start,
                end_time=slot_end,
                price=quote_venue(self.venue, self.tariffs, slot_start, slot_end, self.tz),
                available=not taken,
            )
            slot_start = slot_end

    def __len__(self) -> int:
        opens, closes = self._window()
        if closes <= opens:
            return 0
        return (closes - opens) // self.slot_length


async def list_free_slots(
    db: AsyncSession,
    venue_id: int,
    day: date,
    slot_minutes: int = 60,
) -> SlotListing:
    """
    Slots for a venue day, each priced and flagged against confirmed venue
    bookings. Coach and equipment are not chosen yet at browse time, so only
    the venue axis is considered here.
    """
    if slot_minutes <= 0:
        raise ValidationError("Slot length must be positive", slot_minutes=slot_minutes)

    venue = await catalog_service.get_venue(db, venue_id)
    listing_tz = venue_timezone()
    day_start = to_utc(datetime.combine(day, time.min, tzinfo=listing_tz))
    day_end = to_utc(datetime.combine(day + timedelta(days=1), time.min, tzinfo=listing_tz))

    result = await db.execute(
        select(Booking.start_time, Booking.end_time).where(
            Booking.venue_id == venue_id,
            Booking.status == "confirmed",
            Booking.start_time < day_end,
            Booking.end_time > day_start,
        )
    )
    booked = [(as_utc(start), as_utc(end)) for start, end in result.all()]
    tariffs = await catalog_service.find_tariffs(db, venue_id, WEEKDAYS[day.weekday()])

    listing = SlotListing(venue, day, slot_minutes, tariffs, booked)
    logger.debug("slots_listed", venue_id=venue_id, day=day.isoformat(), slots=len(listing), booked=len(booked))
    return listing
