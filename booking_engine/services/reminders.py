"""
Post-booking feedback sweep.

Runs hourly.  Each run looks for bookings that ended roughly one hour
ago (feedback request) and roughly 24 hours ago (reminder).  The window
is ``interval + buffer`` wide so consecutive runs overlap slightly; the
notification table's unique (user, type, target) index drops the
duplicates the overlap produces.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from booking_engine import db
from booking_engine.config import REMINDER_BUFFER_MINUTES, REMINDER_INTERVAL
from booking_engine.services.background import BackgroundWorker
from booking_engine.services.notifications import (
    FEEDBACK_REMINDER,
    FEEDBACK_REQUEST,
    BookingNotifier,
    notifier as default_notifier,
)

logger = logging.getLogger(__name__)

INITIAL_NOTIFICATION_HOURS = 1
REMINDER_NOTIFICATION_HOURS = 24


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReminderSweeper(BackgroundWorker):
    def __init__(
        self,
        notifier: BookingNotifier = default_notifier,
        interval: float = REMINDER_INTERVAL,
        buffer_minutes: int = REMINDER_BUFFER_MINUTES,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        super().__init__(interval=interval, name="ReminderSweeper")
        self._notifier = notifier
        self._buffer = timedelta(minutes=buffer_minutes)
        self._now = now

    def window(self, hours_after_end: int, now: datetime) -> tuple[datetime, datetime]:
        """[start, end) range of booking end times due for a notification."""
        upper = now - timedelta(hours=hours_after_end)
        lower = upper - timedelta(seconds=self._interval) - self._buffer
        return lower, upper

    async def sweep(self, kind: str, hours_after_end: int) -> int:
        now = self._now()
        lower, upper = self.window(hours_after_end, now)
        candidates = await db.list_bookings_between_dates(
            (lower - timedelta(days=1)).date(), (upper + timedelta(days=1)).date()
        )

        sent = 0
        for booking in candidates:
            tz = db.facility_zone(booking["timezone"])
            ends_at = db.end_of_booking(booking["booking_date"], booking["end_time"]).replace(tzinfo=tz)
            if lower <= ends_at < upper and await self._notifier.feedback(booking, kind):
                sent += 1
        if sent:
            logger.info("Sent %d %s notification(s)", sent, kind)
        return sent

    async def _tick(self) -> None:
        await self.sweep(FEEDBACK_REQUEST, INITIAL_NOTIFICATION_HOURS)
        await self.sweep(FEEDBACK_REMINDER, REMINDER_NOTIFICATION_HOURS)
