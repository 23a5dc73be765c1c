"""Tests for slot filtering, grouping and date sections."""

from datetime import date, datetime, timedelta, timezone

from booking_engine.services.availability.aggregator import (
    build_display_slots,
    filter_future_slots,
    format_date_label,
    group_slots_by_date,
    group_slots_by_time,
)
from booking_engine.services.availability.parser import parse_availability
from tests.mocks.models import make_slot

MONTREAL = "America/Montreal"


class TestFilterFutureSlots:
    def test_drops_past_slots_by_timestamp(self):
        now = datetime(2024, 1, 4, 12, 0, tzinfo=timezone.utc)
        slots = [make_slot(now - timedelta(hours=1)), make_slot(now + timedelta(hours=1))]
        assert filter_future_slots(slots, now=now) == [slots[1]]

    def test_naive_slots_compared_in_facility_time(self):
        # 12:00 UTC is 07:00 in Montreal (EST)
        now = datetime(2024, 1, 4, 12, 0, tzinfo=timezone.utc)
        slots = [make_slot(datetime(2024, 1, 4, 6, 0)), make_slot(datetime(2024, 1, 4, 8, 0))]
        kept = filter_future_slots(slots, MONTREAL, now=now)
        assert [s.start.hour for s in kept] == [8]

    def test_aware_slots_converted_to_facility_time(self):
        now = datetime(2024, 1, 4, 12, 0, tzinfo=timezone.utc)
        slot = make_slot(datetime(2024, 1, 4, 12, 30, tzinfo=timezone.utc))
        assert filter_future_slots([slot], MONTREAL, now=now) == [slot]

    def test_unknown_zone_compares_timestamps(self):
        now = datetime(2024, 1, 4, 12, 0, tzinfo=timezone.utc)
        slots = [make_slot(now - timedelta(minutes=30)), make_slot(now + timedelta(minutes=30))]
        assert filter_future_slots(slots, "Mars/Olympus", now=now) == [slots[1]]


class TestGroupSlotsByTime:
    def test_merges_identical_ranges(self):
        start = datetime(2024, 1, 4, 9, 0)
        slots = [
            make_slot(start, schedule_id="s1", name="Court 1", link="https://x/1"),
            make_slot(start, schedule_id="s2", name="Court 2", link="https://x/2"),
            make_slot(start + timedelta(hours=1), schedule_id="s3", name="Court 1"),
        ]
        grouped = group_slots_by_time(slots)
        assert len(grouped) == 2
        first = grouped[0]
        assert first.court_count == 2
        assert [o.display_name for o in first.court_options] == ["Court 1", "Court 2"]
        assert first.action_link == "https://x/1"

    def test_same_start_different_end_stay_separate(self):
        start = datetime(2024, 1, 4, 9, 0)
        slots = [
            make_slot(start, schedule_id="s1"),
            make_slot(start, end=start + timedelta(minutes=90), schedule_id="s2"),
        ]
        assert len(group_slots_by_time(slots)) == 2

    def test_duplicate_schedule_ids_counted_once(self):
        start = datetime(2024, 1, 4, 9, 0)
        slots = [make_slot(start, schedule_id="s1"), make_slot(start, schedule_id="s1")]
        grouped = group_slots_by_time(slots)
        assert grouped[0].court_count == 1
        assert len(grouped[0].court_options) == 1

    def test_slots_without_identifiers_count_as_one(self):
        start = datetime(2024, 1, 4, 9, 0)
        grouped = group_slots_by_time([make_slot(start), make_slot(start)])
        assert grouped[0].court_count == 1
        assert grouped[0].court_options == []

    def test_first_link_backfilled(self):
        start = datetime(2024, 1, 4, 9, 0)
        grouped = group_slots_by_time(
            [make_slot(start, schedule_id="s1"), make_slot(start, schedule_id="s2", link="https://x/2")]
        )
        assert grouped[0].action_link == "https://x/2"

    def test_option_cap_keeps_full_count(self):
        start = datetime(2024, 1, 4, 9, 0)
        slots = [make_slot(start, schedule_id=f"s{i}") for i in range(5)]
        grouped = group_slots_by_time(slots, max_court_options=2)
        assert grouped[0].court_count == 5
        assert len(grouped[0].court_options) == 2


class TestBuildDisplaySlots:
    def test_sorted_future_and_capped(self):
        now = datetime(2024, 1, 4, 12, 0, tzinfo=timezone.utc)
        starts = [now + timedelta(hours=h) for h in (5, -1, 2, 3, 1)]
        slots = [make_slot(s, schedule_id=f"s{i}") for i, s in enumerate(starts)]
        display = build_display_slots(slots, max_slots=3, now=now)
        assert [g.start for g in display] == [now + timedelta(hours=h) for h in (1, 2, 3)]

    def test_parser_counts_survive_grouping(self):
        now = datetime(2030, 1, 4, 8, 0, tzinfo=timezone.utc)
        ten, eleven = "2030-01-04T10:00:00Z", "2030-01-04T11:00:00Z"
        parsed = parse_availability([ten, ten, ten, eleven])

        display = build_display_slots(parsed.slots, now=now)
        assert [(g.start.hour, g.court_count) for g in display] == [(10, 3), (11, 1)]


class TestDateSections:
    def test_labels(self):
        today = date(2024, 1, 4)
        assert format_date_label(today, today) == "Today"
        assert format_date_label(date(2024, 1, 5), today) == "Tomorrow"
        assert format_date_label(date(2024, 1, 8), today) == "Mon, Jan 8"

    def test_groups_in_date_order(self):
        today = date(2024, 1, 4)
        grouped = group_slots_by_time(
            [
                make_slot(datetime(2024, 1, 5, 9, 0), schedule_id="a"),
                make_slot(datetime(2024, 1, 4, 18, 0), schedule_id="b"),
                make_slot(datetime(2024, 1, 4, 20, 0), schedule_id="c"),
            ]
        )
        sections = group_slots_by_date(grouped, today)
        assert [(s.date_key, s.label, len(s.slots)) for s in sections] == [
            ("2024-01-04", "Today", 2),
            ("2024-01-05", "Tomorrow", 1),
        ]
