"""Tests for the booking validator (temp SQLite database)."""

from datetime import date, datetime, timedelta, timezone

import pytest

from booking_engine import db
from booking_engine.errors import (
    BookingValidationError,
    NotFoundError,
    PlayerBlockedError,
    SlotAlreadyBookedError,
)
from booking_engine.services.bookings.validator import BookingCandidate, BookingValidator
from tests.mocks.models import COURT_ID, PLAYER_ID
from tests.mocks.seed import (
    add_booking,
    seed_organization,
    seed_player_block,
    seed_settings,
    seed_weekly_slots,
)

# Monday; Toronto is on EDT (UTC-4) in June.
DAY = date(2030, 6, 3)
SIX_AM_LOCAL = datetime(2030, 6, 3, 10, 0, tzinfo=timezone.utc)


def _candidate(start="10:00", end="11:00", day=DAY, player_id=PLAYER_ID) -> BookingCandidate:
    return BookingCandidate(court_id=COURT_ID, booking_date=day, start_time=start, end_time=end, player_id=player_id)


@pytest.fixture()
async def seeded(database):
    await seed_organization()
    await seed_weekly_slots(price_cents=2500)


async def _set_court_status(value: str) -> None:
    conn = db.get_db()
    await conn.execute("UPDATE court SET availability_status = ? WHERE id = ?", (value, COURT_ID))
    await conn.commit()


class TestSlotChecks:
    async def test_exact_match_returns_open_slot(self, seeded):
        validated = await BookingValidator(now=lambda: SIX_AM_LOCAL).validate(_candidate())
        assert validated.slot.start_time == "10:00:00"
        assert validated.slot.price_cents == 2500
        assert validated.organization_id == "org-1"

    async def test_partial_overlap_rejected(self, seeded):
        with pytest.raises(BookingValidationError, match="The requested time slot is not available"):
            await BookingValidator().validate(_candidate("10:30", "11:30"))

    async def test_unknown_court(self, seeded):
        candidate = _candidate()
        candidate.court_id = "missing"
        with pytest.raises(NotFoundError):
            await BookingValidator().validate(candidate)

    async def test_booked_slot_reports_competitor(self, seeded):
        existing = await add_booking(DAY, "10:00:00", "11:00:00")
        with pytest.raises(SlotAlreadyBookedError) as exc_info:
            await BookingValidator().validate(_candidate())
        assert exc_info.value.details["competing_booking_id"] == existing.id
        competing = exc_info.value.details["competing_booking"]
        assert competing["booking_date"] == DAY.isoformat()
        assert (competing["start_time"], competing["end_time"]) == ("10:00:00", "11:00:00")
        assert competing["status"] == "confirmed"

    async def test_cancelled_booking_frees_slot(self, seeded):
        await add_booking(DAY, "10:00:00", "11:00:00", status="cancelled")
        validated = await BookingValidator(now=lambda: SIX_AM_LOCAL).validate(_candidate())
        assert validated.slot.end_time == "11:00:00"

    @pytest.mark.parametrize(
        ("court_status", "message"),
        [
            ("maintenance", "This court is currently under maintenance"),
            ("closed", "This court is closed"),
            ("reserved", "This court is reserved"),
        ],
    )
    async def test_court_status(self, seeded, court_status, message):
        await _set_court_status(court_status)
        with pytest.raises(BookingValidationError) as exc_info:
            await BookingValidator().validate(_candidate())
        assert exc_info.value.reason == message


class TestOrganizationConstraints:
    async def test_notice_satisfied_at_six_am(self, seeded):
        await seed_settings(min_booking_notice_hours=2)
        validated = await BookingValidator(now=lambda: SIX_AM_LOCAL).validate(_candidate())
        assert validated.slot.start_time == "10:00:00"

    async def test_notice_too_short(self, seeded):
        await seed_settings(min_booking_notice_hours=5)
        with pytest.raises(BookingValidationError, match="Bookings require at least 5 hours notice"):
            await BookingValidator(now=lambda: SIX_AM_LOCAL).validate(_candidate())

    async def test_fractional_notice_in_message(self, seeded):
        await seed_settings(min_booking_notice_hours=4.5)
        with pytest.raises(BookingValidationError, match="at least 4.5 hours notice"):
            await BookingValidator(now=lambda: SIX_AM_LOCAL).validate(_candidate())

    async def test_same_day_disabled(self, seeded):
        await seed_settings(allow_same_day_booking=0)
        with pytest.raises(BookingValidationError, match="Same-day bookings are not allowed"):
            await BookingValidator(now=lambda: SIX_AM_LOCAL).validate(_candidate())

    async def test_same_day_uses_facility_clock(self, seeded):
        # 02:00 UTC on the 4th is still the 3rd in Toronto.
        await seed_settings(allow_same_day_booking=0)
        late_evening = datetime(2030, 6, 4, 2, 0, tzinfo=timezone.utc)
        with pytest.raises(BookingValidationError, match="Same-day"):
            await BookingValidator(now=lambda: late_evening).validate(_candidate("21:00", "22:00"))

    async def test_advance_window(self, seeded):
        await seed_settings(max_advance_booking_days=7)
        far = DAY + timedelta(days=10)
        with pytest.raises(BookingValidationError, match="up to 7 days in advance"):
            await BookingValidator(now=lambda: SIX_AM_LOCAL).validate(_candidate(day=far))

    async def test_inside_advance_window(self, seeded):
        await seed_settings(max_advance_booking_days=7)
        near = DAY + timedelta(days=6)
        validated = await BookingValidator(now=lambda: SIX_AM_LOCAL).validate(_candidate(day=near))
        assert validated.slot.start_time == "10:00:00"


class TestPlayerBlock:
    async def test_active_block(self, seeded):
        await seed_player_block(PLAYER_ID, reason="Unpaid fees")
        with pytest.raises(PlayerBlockedError) as exc_info:
            await BookingValidator(now=lambda: SIX_AM_LOCAL).validate(_candidate())
        assert exc_info.value.reason == "Unpaid fees"
        assert exc_info.value.status_code == 403

    async def test_default_reason(self, seeded):
        await seed_player_block(PLAYER_ID, blocked_until=SIX_AM_LOCAL + timedelta(days=1))
        with pytest.raises(PlayerBlockedError, match="blocked from booking"):
            await BookingValidator(now=lambda: SIX_AM_LOCAL).validate(_candidate())

    async def test_expired_block_ignored(self, seeded):
        await seed_player_block(PLAYER_ID, blocked_until=SIX_AM_LOCAL - timedelta(days=1))
        validated = await BookingValidator(now=lambda: SIX_AM_LOCAL).validate(_candidate())
        assert validated.slot is not None

    async def test_inactive_block_ignored(self, seeded):
        await seed_player_block(PLAYER_ID, is_active=False)
        validated = await BookingValidator(now=lambda: SIX_AM_LOCAL).validate(_candidate())
        assert validated.slot is not None

    async def test_guest_booking_skips_block_check(self, seeded):
        await seed_player_block(PLAYER_ID)
        validated = await BookingValidator(now=lambda: SIX_AM_LOCAL).validate(_candidate(player_id=None))
        assert validated.slot is not None


class TestInputShapes:
    async def test_malformed_time(self, seeded):
        with pytest.raises(BookingValidationError, match="Invalid time format"):
            await BookingValidator().validate(_candidate("10am", "11:00"))

    @pytest.mark.parametrize("value", ["25:00", "10:75", "", "ten:00"])
    def test_normalize_time_rejects(self, value):
        with pytest.raises(BookingValidationError):
            db.normalize_time(value)

    def test_normalize_time_pads(self):
        assert db.normalize_time("9:05") == "09:05:00"

    def test_unknown_facility_zone_falls_back_to_utc(self):
        validator = BookingValidator(now=lambda: SIX_AM_LOCAL)
        assert validator.local_now("Mars/Olympus") == datetime(2030, 6, 3, 10, 0)
        assert db.facility_zone("Mars/Olympus") is timezone.utc
