"""
Booking validator.

Answers "may this slot be booked right now?" by running the checks in a
fixed order and raising on the first failure:

1. court status
2. exact match against the court's open slots
3. organization booking constraints (same-day, notice, advance window)
4. player block

Time-based rules are evaluated on the facility's local clock.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timezone

from booking_engine import db
from booking_engine.errors import (
    BookingValidationError,
    NotFoundError,
    PlayerBlockedError,
    SlotAlreadyBookedError,
)
from booking_engine.models import OpenSlot

logger = logging.getLogger(__name__)

_COURT_STATUS_MESSAGES = {
    "maintenance": "This court is currently under maintenance",
    "closed": "This court is closed",
    "reserved": "This court is reserved",
}
_DEFAULT_BLOCK_REASON = "You are blocked from booking at this organization"


@dataclass
class BookingCandidate:
    court_id: str
    booking_date: date
    start_time: str
    end_time: str
    player_id: str | None = None


@dataclass
class ValidatedSlot:
    court: dict
    organization_id: str
    slot: OpenSlot


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingValidator:
    def __init__(self, now: Callable[[], datetime] = _utcnow) -> None:
        self._now = now

    def local_now(self, tz_name: str | None) -> datetime:
        """Current facility-local time as a naive datetime."""
        now = self._now()
        if now.tzinfo is None:
            return now
        return now.astimezone(db.facility_zone(tz_name)).replace(tzinfo=None)

    async def validate(self, candidate: BookingCandidate) -> ValidatedSlot:
        court = await db.get_court(candidate.court_id)
        if court is None:
            raise NotFoundError("Court not found", court_id=candidate.court_id)

        self.check_court_status(court)
        slot = await self.check_slot_open(candidate)
        await self.check_constraints(court["organization_id"], candidate, court["timezone"])
        if candidate.player_id:
            await self.check_player_block(court["organization_id"], candidate.player_id)

        return ValidatedSlot(court=court, organization_id=court["organization_id"], slot=slot)

    # ── Individual checks ─────────────────────────────────────────────

    @staticmethod
    def check_court_status(court: dict) -> None:
        court_status = court.get("availability_status")
        if court_status and court_status != "available":
            raise BookingValidationError(
                _COURT_STATUS_MESSAGES.get(court_status, "This court is not available for booking"),
                court_status=court_status,
            )

    async def check_slot_open(self, candidate: BookingCandidate) -> OpenSlot:
        start = db.normalize_time(candidate.start_time)
        end = db.normalize_time(candidate.end_time)
        for slot in await db.get_available_slots(candidate.court_id, candidate.booking_date):
            if db.normalize_time(slot.start_time) == start and db.normalize_time(slot.end_time) == end:
                return slot

        competing = await db.find_overlapping_booking(candidate.court_id, candidate.booking_date, start, end)
        if competing is not None:
            raise SlotAlreadyBookedError(competing)
        raise BookingValidationError("The requested time slot is not available")

    async def check_constraints(
        self,
        organization_id: str,
        candidate: BookingCandidate,
        tz_name: str | None,
    ) -> None:
        settings = await db.get_organization_settings(organization_id)
        if settings is None:
            return

        now = self.local_now(tz_name)
        starts_at = datetime.combine(
            candidate.booking_date,
            datetime.strptime(db.normalize_time(candidate.start_time), "%H:%M:%S").time(),
        )
        hours_until = (starts_at - now).total_seconds() / 3600

        if candidate.booking_date == now.date() and not settings["allow_same_day_booking"]:
            raise BookingValidationError("Same-day bookings are not allowed")

        notice = settings["min_booking_notice_hours"]
        if notice is not None and hours_until < notice:
            raise BookingValidationError(f"Bookings require at least {_fmt(notice)} hours notice")

        max_days = settings["max_advance_booking_days"]
        if max_days is not None and math.ceil(hours_until / 24) > max_days:
            raise BookingValidationError(f"Bookings can only be made up to {max_days} days in advance")

    async def check_player_block(self, organization_id: str, player_id: str) -> None:
        block = await db.get_active_player_block(organization_id, player_id)
        if block is None:
            return
        if block["blocked_until"]:
            until = datetime.fromisoformat(block["blocked_until"])
            if until.tzinfo is None:
                until = until.replace(tzinfo=timezone.utc)
            now = self._now()
            if now.tzinfo is None:
                now = now.replace(tzinfo=timezone.utc)
            if until < now:
                return
        logger.info("Player %s is blocked at organization %s", player_id, organization_id)
        raise PlayerBlockedError(block["reason"] or _DEFAULT_BLOCK_REASON)
