"""
Pricing resolver.

total = venue component + coach component + equipment component - discount

- Venue: hourly rate from the narrowest tariff whose local window contains the
  whole interval on that weekday, else the venue's flat price_per_hour; scaled
  by duration.
- Coach: hourly_rate scaled by duration.
- Equipment: each item's rental_price once per booking (not scaled).

Amounts are Decimals quantised to 2 places. Prices quoted by clients are never
used for charging; the coordinator always calls `price_reservation` itself.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.config import get_settings
from venue_booking.models.catalog import Venue, Tariff, WEEKDAYS
from venue_booking.services import catalog_service

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")
SECONDS_PER_HOUR = Decimal(3600)


@dataclass(frozen=True)
class PriceBreakdown:
    venue_cost: Decimal
    coach_fee: Decimal
    equipment_cost: Decimal
    discount: Decimal
    total: Decimal


def quantize(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


def venue_timezone() -> ZoneInfo:
    return ZoneInfo(get_settings().VENUE_TIMEZONE)


def duration_hours(start: datetime, end: datetime) -> Decimal:
    return Decimal((end - start) // timedelta(seconds=1)) / SECONDS_PER_HOUR


def local_window(start: datetime, end: datetime, tz: ZoneInfo) -> Optional[tuple[str, str, str]]:
    """(weekday, "HH:MM", "HH:MM") in venue time, or None if the interval spans days."""
    local_start = start.astimezone(tz)
    local_end = end.astimezone(tz)
    if local_start.date() != local_end.date():
        return None
    return WEEKDAYS[local_start.weekday()], local_start.strftime("%H:%M"), local_end.strftime("%H:%M")


def match_tariff(tariffs: Sequence[Tariff], window_start: str, window_end: str) -> Optional[Tariff]:
    # tariffs arrive narrowest-first from find_tariffs
    for tariff in tariffs:
        if tariff.time_start <= window_start and tariff.time_end >= window_end:
            return tariff
    return None


def quote_venue(
    venue: Venue,
    tariffs: Sequence[Tariff],
    start: datetime,
    end: datetime,
    tz: Optional[ZoneInfo] = None,
) -> Decimal:
    """
    Venue component only. Pure, so slot listings can price every slot of a
    day from one tariff query.
    """
    rate = Decimal(venue.price_per_hour or 0)
    window = local_window(start, end, tz or venue_timezone())
    if window is not None:
        weekday, window_start, window_end = window
        tariff = match_tariff([t for t in tariffs if t.day == weekday], window_start, window_end)
        if tariff is not None:
            rate = Decimal(tariff.price)
    return quantize(rate * duration_hours(start, end))


def calculate_discount(**_booking_details) -> Decimal:
    # Promotions are not modelled yet; kept so callers already subtract it
    return ZERO


async def price_reservation(
    db: AsyncSession,
    venue_id: int,
    start: datetime,
    end: datetime,
    coach_id: Optional[int] = None,
    equipment_ids: Iterable[int] = (),
) -> PriceBreakdown:
    """Authoritative price for a reservation request."""
    tz = venue_timezone()
    venue = await catalog_service.get_venue(db, venue_id)

    window = local_window(start, end, tz)
    tariffs = await catalog_service.find_tariffs(db, venue_id, window[0]) if window else []
    venue_cost = quote_venue(venue, tariffs, start, end, tz)

    coach_fee = ZERO
    if coach_id is not None:
        coach = await catalog_service.get_coach(db, coach_id)
        coach_fee = quantize(Decimal(coach.hourly_rate) * duration_hours(start, end))

    equipment = await catalog_service.get_equipment(db, equipment_ids)
    equipment_cost = quantize(sum((Decimal(item.rental_price or 0) for item in equipment), ZERO))

    discount = quantize(calculate_discount(venue_id=venue_id, start=start, end=end, coach_id=coach_id))
    total = venue_cost + coach_fee + equipment_cost - discount

    return PriceBreakdown(
        venue_cost=venue_cost,
        coach_fee=coach_fee,
        equipment_cost=equipment_cost,
        discount=discount,
        total=quantize(total),
    )
