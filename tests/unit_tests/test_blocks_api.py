"""Tests for the availability block endpoints."""

from booking_engine import db
from tests.mocks.models import ADMIN, COURT_ID, FACILITY_ID, STAFF, future_date
from tests.mocks.seed import add_booking, seed_organization, seed_weekly_slots

BLOCKS = f"/api/facilities/{FACILITY_ID}/blocks"


class TestCreateBlock:
    def test_staff_creates_block(self, client, run, as_user):
        run(seed_organization)
        run(seed_weekly_slots)
        day = future_date()
        as_user(STAFF)

        resp = client.post(
            BLOCKS,
            json={
                "court_id": COURT_ID,
                "block_date": day.isoformat(),
                "start_time": "06:00",
                "end_time": "08:00",
                "block_type": "maintenance",
            },
        )
        assert resp.status_code == 201
        assert resp.json()["block_type"] == "maintenance"

        slots = client.get(f"/api/courts/{COURT_ID}/available-slots", params={"date": day.isoformat()}).json()
        assert slots[0]["start_time"] == "08:00:00"

    def test_conflict_response(self, client, run, as_user):
        run(seed_organization)
        day = future_date()
        booking = run(add_booking, day)
        as_user(STAFF)

        resp = client.post(BLOCKS, json={"block_date": day.isoformat()})
        assert resp.status_code == 409

        data = resp.json()
        assert data["error"] == "booking_conflict"
        [conflict] = data["details"]["conflicting_bookings"]
        assert conflict["id"] == booking.id
        assert conflict["booking_date"] == day.isoformat()
        assert (conflict["start_time"], conflict["end_time"]) == (booking.start_time, booking.end_time)

    def test_admin_force(self, client, run, as_user):
        run(seed_organization)
        day = future_date()
        run(add_booking, day)
        as_user(ADMIN)
        assert client.post(BLOCKS, json={"block_date": day.isoformat(), "force": True}).status_code == 201

    def test_malformed_time_rejected(self, client, run, as_user):
        run(seed_organization)
        as_user(STAFF)
        resp = client.post(
            BLOCKS,
            json={"block_date": future_date().isoformat(), "start_time": "6am", "end_time": "08:00"},
        )
        assert resp.status_code == 422
        assert run(db.list_blocks, FACILITY_ID, future_date()) == []

    def test_player_forbidden(self, client, run):
        run(seed_organization)
        assert client.post(BLOCKS, json={"block_date": future_date().isoformat()}).status_code == 403

    def test_unknown_facility(self, client, as_user):
        as_user(STAFF)
        resp = client.post("/api/facilities/nowhere/blocks", json={"block_date": future_date().isoformat()})
        assert resp.status_code == 404


class TestCheckConflicts:
    def test_preview(self, client, run, as_user):
        run(seed_organization)
        day = future_date()
        booking = run(add_booking, day, "10:00:00", "11:00:00")
        as_user(STAFF)

        resp = client.get(
            f"{BLOCKS}/check-conflicts",
            params={"block_date": day.isoformat(), "start_time": "10:30", "end_time": "12:00"},
        )
        assert resp.status_code == 200

        data = resp.json()
        assert data["has_conflicts"] is True
        assert [b["id"] for b in data["conflicting_bookings"]] == [booking.id]

        resp = client.get(
            f"{BLOCKS}/check-conflicts",
            params={"block_date": day.isoformat(), "start_time": "11:00", "end_time": "12:00"},
        )
        assert resp.json()["has_conflicts"] is False

    def test_player_forbidden(self, client, run):
        run(seed_organization)
        resp = client.get(f"{BLOCKS}/check-conflicts", params={"block_date": future_date().isoformat()})
        assert resp.status_code == 403
