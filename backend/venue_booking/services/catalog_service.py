"""
Read-only lookups against the venue catalog.
"""

from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.errors import NotFound, ValidationError
from venue_booking.models.catalog import Venue, Coach, Equipment, Tariff


async def get_venue(db: AsyncSession, venue_id: int) -> Venue:
    result = await db.execute(select(Venue).where(Venue.id == venue_id))
    venue = result.scalar_one_or_none()
    if not venue:
        raise NotFound(f"Venue {venue_id} not found", resource="venue", resource_id=venue_id)
    return venue


async def get_coach(db: AsyncSession, coach_id: int) -> Coach:
    result = await db.execute(select(Coach).where(Coach.id == coach_id))
    coach = result.scalar_one_or_none()
    if not coach:
        raise NotFound(f"Coach {coach_id} not found", resource="coach", resource_id=coach_id)
    return coach


async def get_equipment(
    db: AsyncSession,
    equipment_ids: Iterable[int],
    venue_id: Optional[int] = None,
) -> list[Equipment]:
    """
    Load the requested equipment items.
    When `venue_id` is given, every item must belong to that venue.
    """
    wanted = sorted(set(equipment_ids))
    if not wanted:
        return []

    result = await db.execute(select(Equipment).where(Equipment.id.in_(wanted)))
    items = list(result.scalars().all())

    found = {item.id for item in items}
    missing = [eq_id for eq_id in wanted if eq_id not in found]
    if missing:
        raise ValidationError(
            f"Unknown equipment IDs: {', '.join(map(str, missing))}",
            equipment_ids=missing,
        )

    if venue_id is not None:
        foreign = [item.id for item in items if item.venue_id != venue_id]
        if foreign:
            raise ValidationError(
                f"Requested equipment IDs are not valid for this venue: {', '.join(map(str, foreign))}",
                equipment_ids=foreign,
            )
    return sorted(items, key=lambda item: item.id)


async def find_tariffs(db: AsyncSession, venue_id: int, day: str) -> Sequence[Tariff]:
    """All tariffs for a venue on a weekday, narrowest window first."""
    result = await db.execute(
        select(Tariff)
        .where(Tariff.venue_id == venue_id, Tariff.day == day)
        .order_by(Tariff.time_start.desc(), Tariff.time_end.asc(), Tariff.id.asc())
    )
    return list(result.scalars().all())
