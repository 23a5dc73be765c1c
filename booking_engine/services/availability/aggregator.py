"""
Slot aggregation for display.

Providers return one slot per court.  For display, slots sharing the same
``(start, end)`` are merged into a single ``GroupedSlot`` listing each
distinct court once, past slots are dropped relative to the facility's
own clock, and the result is sectioned by date.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from booking_engine.models import AvailabilitySlot, CourtOption, DateGroup, GroupedSlot

logger = logging.getLogger(__name__)

_CIVIL_FORMAT = "%Y-%m-%d %H:%M:%S"


# ── Filtering ─────────────────────────────────────────────────────────────


def _civil_string(value: datetime, tz: ZoneInfo) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(tz)
    return value.strftime(_CIVIL_FORMAT)


def _zone(name: str | None) -> ZoneInfo | None:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, comparing slots by timestamp", name)
        return None


def filter_future_slots(
    slots: list[AvailabilitySlot],
    timezone: str | None = None,
    now: datetime | None = None,
) -> list[AvailabilitySlot]:
    """
    Keep slots starting after "now".

    With a facility timezone the comparison is made on facility-local
    civil time strings (naive slot datetimes are taken as already local),
    so a viewer in another zone sees the same answer as someone on site.
    An unknown zone falls back to the timestamp comparison.
    """
    tz = _zone(timezone)
    if tz is not None:
        current = now.astimezone(tz) if now and now.tzinfo else (now or datetime.now(tz))
        now_str = current.strftime(_CIVIL_FORMAT)
        return [s for s in slots if _civil_string(s.start, tz) > now_str]

    current = now or datetime.now().astimezone()
    now_ts = current.timestamp()
    return [s for s in slots if s.start.timestamp() > now_ts]


# ── Grouping ──────────────────────────────────────────────────────────────


def _court_option(slot: AvailabilitySlot) -> CourtOption | None:
    if not slot.external_schedule_id and not slot.action_link:
        return None
    return CourtOption(
        external_resource_id=slot.external_resource_id,
        external_schedule_id=slot.external_schedule_id,
        display_name=slot.short_name or slot.display_name or f"Court {slot.external_schedule_id}",
        short_name=slot.short_name,
        court_number=slot.court_number,
        action_link=slot.action_link,
        price=slot.price,
    )


def group_slots_by_time(
    slots: list[AvailabilitySlot],
    max_court_options: int | None = None,
) -> list[GroupedSlot]:
    """
    Merge slots with identical (start, end).

    Court options are deduplicated by schedule id; ``court_count`` is the
    number of distinct options.  When no slot carried an option the
    largest source ``court_count`` is kept, so counts from a grouping
    parser survive.
    """
    groups: dict[tuple[float, float | None], dict] = {}

    for slot in slots:
        key = (slot.start.timestamp(), slot.end.timestamp() if slot.end else None)
        option = _court_option(slot)
        entry = groups.get(key)
        if entry is None:
            entry = {"first": slot, "options": {}, "action_link": slot.action_link, "source_count": 1}
            groups[key] = entry
        elif not entry["action_link"] and slot.action_link:
            entry["action_link"] = slot.action_link
        entry["source_count"] = max(entry["source_count"], slot.court_count)

        if option is not None:
            option_key = option.external_schedule_id or option.action_link
            entry["options"].setdefault(option_key, option)

    result = []
    for entry in groups.values():
        first: AvailabilitySlot = entry["first"]
        options = list(entry["options"].values())
        court_count = len(options) or entry["source_count"]
        if max_court_options is not None:
            options = options[:max_court_options]
        result.append(
            GroupedSlot(
                start=first.start,
                end=first.end,
                court_count=court_count,
                court_options=options,
                action_link=entry["action_link"],
                price=first.price,
                currency=first.currency,
            )
        )
    return result


def build_display_slots(
    slots: list[AvailabilitySlot],
    timezone: str | None = None,
    max_slots: int = 3,
    now: datetime | None = None,
    max_court_options: int | None = None,
) -> list[GroupedSlot]:
    """Future slots, merged by time, earliest first, capped at ``max_slots``."""
    future = sorted(filter_future_slots(slots, timezone, now), key=lambda s: s.start.timestamp())
    grouped = group_slots_by_time(future, max_court_options=max_court_options)
    grouped.sort(key=lambda g: g.start.timestamp())
    return grouped[:max_slots]


# ── Date sections ─────────────────────────────────────────────────────────


def format_date_label(day: date, today: date | None = None) -> str:
    today = today or date.today()
    if day == today:
        return "Today"
    if day == today + timedelta(days=1):
        return "Tomorrow"
    return f"{day.strftime('%a, %b')} {day.day}"


def group_slots_by_date(grouped: list[GroupedSlot], today: date | None = None) -> list[DateGroup]:
    sections: dict[str, list[GroupedSlot]] = {}
    for slot in grouped:
        sections.setdefault(slot.start.date().isoformat(), []).append(slot)

    return [
        DateGroup(
            date_key=key,
            label=format_date_label(date.fromisoformat(key), today),
            slots=items,
        )
        for key, items in sorted(sections.items())
    ]
