"""
Schedule conflict detection for staff-created availability blocks.

Before a block is stored, both existing blocks and existing bookings on
the same date are checked.  A block with no court applies to every court
of the facility; a block with no start/end covers the whole day.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from booking_engine import db
from booking_engine.errors import (
    BlockConflictError,
    BookingValidationError,
    NotFoundError,
    PermissionDeniedError,
)
from booking_engine.models import AvailabilityBlock, BlockCreate

logger = logging.getLogger(__name__)

STAFF_ROLES = ("owner", "admin", "staff")
ORG_ADMIN_ROLES = ("owner", "admin")


@dataclass
class BlockProposal:
    block_date: date
    court_id: str | None = None
    start_time: str | None = None
    end_time: str | None = None

    @property
    def all_day(self) -> bool:
        return self.start_time is None or self.end_time is None


@dataclass
class ConflictReport:
    overlapping_blocks: list[dict[str, Any]] = field(default_factory=list)
    conflicting_bookings: list[dict[str, Any]] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.overlapping_blocks or self.conflicting_bookings)


def _norm(value: str | None) -> str | None:
    return db.normalize_time(value) if value else None


def courts_overlap(court_a: str | None, court_b: str | None) -> bool:
    return court_a is None or court_b is None or court_a == court_b


def times_overlap(
    start_a: str | None,
    end_a: str | None,
    start_b: str | None,
    end_b: str | None,
) -> bool:
    """Half-open interval overlap; a missing start or end means all day."""
    if None in (start_a, end_a, start_b, end_b):
        return True
    return _norm(start_a) < _norm(end_b) and _norm(start_b) < _norm(end_a)


class ScheduleConflictDetector:
    async def find_overlapping_blocks(self, facility_id: str, proposal: BlockProposal) -> list[dict[str, Any]]:
        return [
            block
            for block in await db.list_blocks(facility_id, proposal.block_date)
            if courts_overlap(proposal.court_id, block["court_id"])
            and times_overlap(proposal.start_time, proposal.end_time, block["start_time"], block["end_time"])
        ]

    async def find_conflicting_bookings(self, facility_id: str, proposal: BlockProposal) -> list[dict[str, Any]]:
        court_ids = [proposal.court_id] if proposal.court_id else await db.list_facility_court_ids(facility_id)
        bookings = await db.list_bookings_on_courts(court_ids, proposal.block_date)
        if proposal.all_day:
            return bookings
        return [
            b
            for b in bookings
            if times_overlap(proposal.start_time, proposal.end_time, b["start_time"], b["end_time"])
        ]

    async def check(self, facility_id: str, proposal: BlockProposal) -> ConflictReport:
        """Run both checks; neither short-circuits the other."""
        return ConflictReport(
            overlapping_blocks=await self.find_overlapping_blocks(facility_id, proposal),
            conflicting_bookings=await self.find_conflicting_bookings(facility_id, proposal),
        )


class BlockService:
    def __init__(self, detector: ScheduleConflictDetector | None = None) -> None:
        self._detector = detector or ScheduleConflictDetector()

    async def _facility_org(self, facility_id: str) -> str:
        facility = await db.get_facility(facility_id)
        if facility is None:
            raise NotFoundError("Facility not found", facility_id=facility_id)
        return facility["organization_id"]

    async def _staff_role(self, facility_id: str, user_id: str) -> str:
        organization_id = await self._facility_org(facility_id)
        role = await db.get_member_role(organization_id, user_id)
        if role not in STAFF_ROLES:
            raise PermissionDeniedError("Only organization staff can manage availability blocks")
        return role

    async def check_conflicts(self, facility_id: str, proposal: BlockProposal, user_id: str) -> ConflictReport:
        await self._staff_role(facility_id, user_id)
        proposal.start_time, proposal.end_time = _norm(proposal.start_time), _norm(proposal.end_time)
        return await self._detector.check(facility_id, proposal)

    async def create_block(self, facility_id: str, request: BlockCreate, user_id: str) -> AvailabilityBlock:
        role = await self._staff_role(facility_id, user_id)
        if request.force and role not in ORG_ADMIN_ROLES:
            raise PermissionDeniedError("Only organization admins can override block conflicts")

        if (request.start_time is None) != (request.end_time is None):
            raise BookingValidationError("Provide both start_time and end_time, or neither for an all-day block")
        start, end = _norm(request.start_time), _norm(request.end_time)
        if start is not None and end is not None and start >= end:
            raise BookingValidationError("Block end time must be after its start time")

        if request.court_id is not None:
            court = await db.get_court(request.court_id)
            if court is None or court["facility_id"] != facility_id:
                raise BookingValidationError("Court does not belong to this facility")

        proposal = BlockProposal(block_date=request.block_date, court_id=request.court_id, start_time=start, end_time=end)
        report = await self._detector.check(facility_id, proposal)
        if report.has_conflicts:
            if not request.force:
                raise BlockConflictError(report)
            logger.warning(
                "Block on facility %s forced through %d block and %d booking conflicts by %s",
                facility_id,
                len(report.overlapping_blocks),
                len(report.conflicting_bookings),
                user_id,
            )

        return await db.insert_block(
            facility_id,
            request.block_date,
            court_id=request.court_id,
            start_time=start,
            end_time=end,
            block_type=request.block_type.value,
            reason=request.reason,
            created_by=user_id,
        )
