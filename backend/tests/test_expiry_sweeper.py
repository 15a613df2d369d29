"""
Tests for the background expiry loop.
"""

import asyncio
from datetime import timedelta

import pytest
from structlog.testing import capture_logs

from venue_booking.core.errors import ResourceBusy
from venue_booking.models import Payment
from venue_booking.services.expiry_service import run_expiry_sweeper
from tests.conftest import at


class FlakyCoordinator:
    """Fails the first sweep with a lock timeout, then delegates to the real coordinator."""

    def __init__(self, coordinator, rounds: list):
        self.coordinator = coordinator
        self.rounds = rounds

    async def expire_stale_reservations(self) -> int:
        self.rounds.append(len(self.rounds) + 1)
        if len(self.rounds) == 1:
            raise ResourceBusy("Resource is busy, please retry", lock_key="payment:1")
        return await self.coordinator.expire_stale_reservations()


async def wait_for(predicate, timeout: float = 5.0):
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


@pytest.mark.asyncio
async def test_sweeper_survives_a_failed_round(session_factory, make_coordinator):
    rounds: list[int] = []

    with capture_logs() as logs:
        task = asyncio.create_task(
            run_expiry_sweeper(
                session_factory,
                lambda session: FlakyCoordinator(make_coordinator(session), rounds),
                interval_seconds=0.01,
            )
        )
        try:
            await wait_for(lambda: len(rounds) >= 3)
            assert not task.done()
        finally:
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

    failures = [entry for entry in logs if entry["event"] == "expiry_sweep_failed"]
    assert len(failures) == 1
    assert "busy" in failures[0]["error"]


@pytest.mark.asyncio
async def test_sweeper_expires_stale_records(session_factory, make_coordinator, catalog, clock):
    async with session_factory() as session:
        initiated = await make_coordinator(session).initiate(1, catalog.arena.id, at(8), at(9))
    clock.advance(timedelta(minutes=31))

    async def expired() -> bool:
        async with session_factory() as session:
            return (await session.get(Payment, initiated.payment_id)).status == "failed"

    task = asyncio.create_task(run_expiry_sweeper(session_factory, make_coordinator, interval_seconds=0.01))
    try:
        for _ in range(500):
            if await expired():
                break
            await asyncio.sleep(0.01)
        assert await expired()
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
