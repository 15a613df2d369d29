"""
Booking outcome notifications.

Delivery is owned by the notification service; from the coordinator's side
notifications are fire-and-forget. `dispatch_in_background` schedules the
call and logs failures, so a broken dispatcher can never fail a booking.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from venue_booking.core.logging import get_logger

logger = get_logger(__name__)

# Strong references so scheduled notifications are not garbage collected mid-flight
_background_tasks: set[asyncio.Task] = set()


class NotificationDispatcher(ABC):
    @abstractmethod
    async def notify(self, target: dict, message: str, category: str, link: Optional[str] = None) -> None:
        """Deliver `message` to `target` (e.g. {"user_id": 7})."""


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Writes notifications to the structured log for the delivery pipeline to pick up."""

    async def notify(self, target: dict, message: str, category: str, link: Optional[str] = None) -> None:
        logger.info("notification_dispatched", target=target, message=message, category=category, link=link)


async def _deliver(dispatcher: NotificationDispatcher, target: dict, message: str, category: str, link: Optional[str]):
    try:
        await dispatcher.notify(target, message, category, link)
    except Exception as e:
        logger.error("notification_failed", target=target, category=category, error=str(e))


def dispatch_in_background(
    dispatcher: NotificationDispatcher,
    target: dict,
    message: str,
    category: str,
    link: Optional[str] = None,
) -> asyncio.Task:
    task = asyncio.create_task(_deliver(dispatcher, target, message, category, link))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def drain_notifications() -> None:
    """Wait for in-flight notifications (shutdown and tests)."""
    if _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)
