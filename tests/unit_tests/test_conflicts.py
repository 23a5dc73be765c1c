"""Tests for block conflict detection and block creation."""

from datetime import date

import pytest

from booking_engine import db
from booking_engine.errors import BlockConflictError, BookingValidationError, NotFoundError, PermissionDeniedError
from booking_engine.models import BlockCreate, BlockType
from booking_engine.services.conflicts import BlockProposal, BlockService, courts_overlap, times_overlap
from tests.mocks.models import ADMIN_ID, COURT_2_ID, COURT_ID, FACILITY_ID, OTHER_COURT_ID, PLAYER_ID, STAFF_ID
from tests.mocks.seed import add_booking, seed_block, seed_organization, seed_other_facility, seed_weekly_slots

D = date(2030, 6, 3)
D2 = date(2030, 6, 4)


@pytest.fixture()
async def org(database):
    await seed_organization()
    await seed_weekly_slots()


class TestOverlapHelpers:
    def test_courts(self):
        assert courts_overlap(None, COURT_ID) is True
        assert courts_overlap(COURT_ID, None) is True
        assert courts_overlap(COURT_ID, COURT_ID) is True
        assert courts_overlap(COURT_ID, COURT_2_ID) is False

    def test_times_half_open(self):
        assert times_overlap("10:00", "11:00", "10:30", "11:30") is True
        assert times_overlap("10:00", "11:00", "11:00", "12:00") is False
        assert times_overlap("10:00:00", "11:00:00", "09:00", "10:00") is False

    def test_all_day_overlaps_everything(self):
        assert times_overlap(None, None, "10:00", "11:00") is True
        assert times_overlap("10:00", "11:00", None, None) is True


class TestCheckConflicts:
    async def test_booking_on_same_date(self, org):
        booking = await add_booking(D, "10:00:00", "11:00:00")
        report = await BlockService().check_conflicts(
            FACILITY_ID, BlockProposal(block_date=D, court_id=COURT_ID, start_time="09:00", end_time="12:00"), STAFF_ID
        )
        assert report.has_conflicts is True
        assert [b["id"] for b in report.conflicting_bookings] == [booking.id]
        assert report.overlapping_blocks == []

    async def test_booking_on_other_date_is_no_conflict(self, org):
        await add_booking(D2, "10:00:00", "11:00:00")
        report = await BlockService().check_conflicts(FACILITY_ID, BlockProposal(block_date=D), STAFF_ID)
        assert report.has_conflicts is False

    async def test_other_court_is_no_conflict(self, org):
        await add_booking(D, "10:00:00", "11:00:00", court_id=COURT_2_ID)
        report = await BlockService().check_conflicts(
            FACILITY_ID, BlockProposal(block_date=D, court_id=COURT_ID), STAFF_ID
        )
        assert report.has_conflicts is False

    async def test_facility_wide_block_sees_every_court(self, org):
        await add_booking(D, "10:00:00", "11:00:00", court_id=COURT_2_ID)
        report = await BlockService().check_conflicts(
            FACILITY_ID, BlockProposal(block_date=D, start_time="10:30", end_time="12:00"), STAFF_ID
        )
        assert len(report.conflicting_bookings) == 1

    async def test_cancelled_bookings_ignored(self, org):
        await add_booking(D, "10:00:00", "11:00:00", status="cancelled")
        report = await BlockService().check_conflicts(FACILITY_ID, BlockProposal(block_date=D), STAFF_ID)
        assert report.conflicting_bookings == []

    async def test_existing_blocks(self, org):
        await seed_block(D, court_id=COURT_ID, start_time="08:00", end_time="09:00")
        await seed_block(D)
        report = await BlockService().check_conflicts(
            FACILITY_ID, BlockProposal(block_date=D, court_id=COURT_ID, start_time="08:30", end_time="08:45"), STAFF_ID
        )
        assert len(report.overlapping_blocks) == 2

    async def test_players_cannot_check(self, org):
        with pytest.raises(PermissionDeniedError):
            await BlockService().check_conflicts(FACILITY_ID, BlockProposal(block_date=D), PLAYER_ID)


class TestCreateBlock:
    async def test_creates_and_hides_slots(self, org):
        block = await BlockService().create_block(
            FACILITY_ID,
            BlockCreate(court_id=COURT_ID, block_date=D, start_time="10:00", end_time="12:00", reason="Lessons"),
            STAFF_ID,
        )
        assert block.start_time == "10:00:00"
        assert block.created_by == STAFF_ID
        assert block.block_type == BlockType.manual

        starts = [s.start_time for s in await db.get_available_slots(COURT_ID, D)]
        assert "10:00:00" not in starts
        assert "11:00:00" not in starts
        assert "12:00:00" in starts

    async def test_all_day_block_empties_the_day(self, org):
        await BlockService().create_block(FACILITY_ID, BlockCreate(block_date=D), ADMIN_ID)
        assert await db.get_available_slots(COURT_ID, D) == []
        assert await db.get_available_slots(COURT_2_ID, D) == []
        assert await db.get_available_slots(COURT_ID, D2) != []

    async def test_conflict_blocks_creation(self, org):
        booking = await add_booking(D, "10:00:00", "11:00:00")
        with pytest.raises(BlockConflictError) as exc_info:
            await BlockService().create_block(
                FACILITY_ID, BlockCreate(block_date=D, start_time="10:00", end_time="11:00"), STAFF_ID
            )
        assert exc_info.value.code == "booking_conflict"
        assert [b["id"] for b in exc_info.value.details["conflicting_bookings"]] == [booking.id]
        assert await db.list_blocks(FACILITY_ID, D) == []

    async def test_block_overlap_code(self, org):
        await seed_block(D)
        with pytest.raises(BlockConflictError) as exc_info:
            await BlockService().create_block(FACILITY_ID, BlockCreate(block_date=D, court_id=COURT_ID), STAFF_ID)
        assert exc_info.value.code == "block_overlap"
        [overlap] = exc_info.value.details["overlapping_blocks"]
        assert overlap["block_date"] == D.isoformat()
        assert overlap["block_type"] == "maintenance"
        assert overlap["reason"] == "Resurfacing"

    async def test_admin_force_overrides(self, org):
        await add_booking(D, "10:00:00", "11:00:00")
        block = await BlockService().create_block(FACILITY_ID, BlockCreate(block_date=D, force=True), ADMIN_ID)
        assert block.start_time is None
        assert len(await db.list_blocks(FACILITY_ID, D)) == 1

    async def test_staff_cannot_force(self, org):
        with pytest.raises(PermissionDeniedError):
            await BlockService().create_block(FACILITY_ID, BlockCreate(block_date=D, force=True), STAFF_ID)

    async def test_half_open_time_range_rejected(self, org):
        with pytest.raises(BookingValidationError, match="both start_time and end_time"):
            await BlockService().create_block(FACILITY_ID, BlockCreate(block_date=D, start_time="10:00"), STAFF_ID)

    async def test_inverted_range_rejected(self, org):
        with pytest.raises(BookingValidationError, match="after its start"):
            await BlockService().create_block(
                FACILITY_ID, BlockCreate(block_date=D, start_time="12:00", end_time="10:00"), STAFF_ID
            )

    async def test_court_from_another_facility(self, org):
        await seed_other_facility()
        with pytest.raises(BookingValidationError, match="does not belong"):
            await BlockService().create_block(
                FACILITY_ID, BlockCreate(block_date=D, court_id=OTHER_COURT_ID), STAFF_ID
            )

    async def test_unknown_facility(self, org):
        with pytest.raises(NotFoundError):
            await BlockService().create_block("nowhere", BlockCreate(block_date=D), ADMIN_ID)
