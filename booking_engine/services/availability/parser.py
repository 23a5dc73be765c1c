"""
Availability parser.

Turns availability payloads of unknown shape (whatever an external
provider happens to return) into a sorted list of ``AvailabilitySlot``.

Supported shapes, tried in this order (first one producing a slot wins):

1. Array of slot objects with a datetime-like and a count-like field::

       [{"time": "2024-01-04T09:00:00", "courts": 3}, ...]
       [{"date": "2024-01-04", "slot_time": "09:00", "court_count": 1}]

2. Object nested by date, then by time::

       {"2024-01-04": {"09:00": 3, "13:00": 2}}

3. Flat array of datetime strings, one entry per available court::

       ["2024-01-04T09:00:00", "2024-01-04T09:00:00", "2024-01-04T10:00:00"]

4. Array of objects with a start (and optional end)::

       [{"start": "2024-01-04T09:00:00", "end": "...", "courts_available": 2}]

Parsing never raises.  Unparseable entries are skipped; a payload no
strategy understands yields ``success=False`` with an error message.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from booking_engine.models import AvailabilitySlot

logger = logging.getLogger(__name__)

_DATE_FIELDS = (
    "time",
    "datetime",
    "date_time",
    "dateTime",
    "timestamp",
    "slot_time",
    "slotTime",
    "start",
    "start_time",
    "startTime",
    "begins_at",
)
_DATE_PART_FIELDS = ("date", "slot_date", "slotDate")
_TIME_PART_FIELDS = ("time", "slot_time", "slotTime")
_START_FIELDS = ("start", "start_time", "startTime", "begins_at")
_END_FIELDS = ("end", "end_time", "endTime", "ends_at")

_COUNT_FIELDS = (
    "courts",
    "court_count",
    "courtCount",
    "available",
    "available_courts",
    "availableCourts",
    "count",
    "quantity",
    "spots",
    "slots",
    "courts_available",
    "courtsAvailable",
)

_DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_KEY_RE = re.compile(r"^\d{1,2}:\d{2}$")
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")

# Numeric timestamps above this are milliseconds, otherwise seconds.
_MS_THRESHOLD = 1e12

# Share of entries in a flat string array that must be valid datetimes.
_DATETIME_ARRAY_MIN_VALID = 0.8


@dataclass
class ParsedAvailability:
    slots: list[AvailabilitySlot] = field(default_factory=list)
    success: bool = False
    error: str | None = None


# ── Value helpers ─────────────────────────────────────────────────────────


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO string, a datetime or a unix timestamp (s or ms); None if invalid."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        seconds = value / 1000 if value > _MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def _to_count(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    match = _LEADING_INT_RE.match(str(value))
    return int(match.group(1)) if match else None


def extract_court_count(obj: dict[str, Any]) -> int:
    """First usable count-like field, defaulting to 1 when none is present."""
    for name in _COUNT_FIELDS:
        value = obj.get(name)
        if value is None:
            continue
        count = _to_count(value)
        if count is not None:
            return count
    return 1


def extract_datetime(obj: dict[str, Any]) -> datetime | None:
    date_value = _first_truthy(obj, _DATE_PART_FIELDS)
    time_value = _first_truthy(obj, _TIME_PART_FIELDS)
    if date_value and time_value:
        combined = parse_datetime(f"{date_value}T{time_value}")
        if combined is not None:
            return combined

    for name in _DATE_FIELDS:
        if obj.get(name):
            parsed = parse_datetime(obj[name])
            if parsed is not None:
                return parsed
    return None


def _extract_end(obj: dict[str, Any]) -> datetime | None:
    end_value = _first_truthy(obj, _END_FIELDS)
    return parse_datetime(end_value) if end_value else None


def _first_truthy(obj: dict[str, Any], names: tuple[str, ...]) -> Any:
    for name in names:
        if obj.get(name):
            return obj[name]
    return None


# ── Strategies ────────────────────────────────────────────────────────────


def _parse_slot_array(data: Any) -> list[AvailabilitySlot]:
    if not isinstance(data, list):
        return []
    slots = []
    for item in data:
        if not isinstance(item, dict):
            continue
        start = extract_datetime(item)
        if start is None:
            continue
        count = extract_court_count(item)
        if count <= 0:
            continue
        slots.append(AvailabilitySlot(start=start, end=_extract_end(item), court_count=count))
    return slots


def _parse_nested_by_date(data: Any) -> list[AvailabilitySlot]:
    if not isinstance(data, dict):
        return []
    slots = []
    for date_key, times in data.items():
        if not isinstance(date_key, str) or not _DATE_KEY_RE.match(date_key):
            continue
        if not isinstance(times, dict):
            continue
        for time_key, raw_count in times.items():
            if not isinstance(time_key, str) or not _TIME_KEY_RE.match(time_key):
                continue
            count = _to_count(raw_count)
            if count is None or count <= 0:
                continue
            start = parse_datetime(f"{date_key}T{time_key.zfill(5)}:00")
            if start is None:
                continue
            slots.append(AvailabilitySlot(start=start, court_count=count))
    return slots


def _parse_datetime_array(data: Any) -> list[AvailabilitySlot]:
    if not isinstance(data, list) or not data:
        return []
    valid = [dt for dt in (parse_datetime(i) for i in data if isinstance(i, str)) if dt is not None]
    if not valid or len(valid) < len(data) * _DATETIME_ARRAY_MIN_VALID:
        return []

    counts: dict[datetime, int] = {}
    for dt in valid:
        counts[dt] = counts.get(dt, 0) + 1
    return [AvailabilitySlot(start=dt, court_count=n) for dt, n in counts.items()]


def _parse_start_end(data: Any) -> list[AvailabilitySlot]:
    if not isinstance(data, list):
        return []
    slots = []
    for item in data:
        if not isinstance(item, dict):
            continue
        start_value = _first_truthy(item, _START_FIELDS)
        if not start_value:
            continue
        start = parse_datetime(start_value)
        if start is None:
            continue
        count = extract_court_count(item)
        if count <= 0:
            continue
        slots.append(AvailabilitySlot(start=start, end=_extract_end(item), court_count=count))
    return slots


STRATEGIES: tuple[Callable[[Any], list[AvailabilitySlot]], ...] = (
    _parse_slot_array,
    _parse_nested_by_date,
    _parse_datetime_array,
    _parse_start_end,
)


def _sort_key(slot: AvailabilitySlot) -> float:
    return slot.start.timestamp()


def parse_availability(data: Any) -> ParsedAvailability:
    """Normalize an availability payload; see the module docstring for shapes."""
    if not data:
        return ParsedAvailability(error="No data provided")

    for strategy in STRATEGIES:
        try:
            slots = strategy(data)
        except Exception:
            logger.debug("Availability strategy %s failed", strategy.__name__, exc_info=True)
            continue
        if slots:
            slots.sort(key=_sort_key)
            return ParsedAvailability(slots=slots, success=True)

    return ParsedAvailability(error="Could not parse availability format")


# ── Display helpers ───────────────────────────────────────────────────────


def get_next_available_slots(
    slots: list[AvailabilitySlot],
    count: int = 3,
    now: datetime | None = None,
) -> list[AvailabilitySlot]:
    now_ts = (now or datetime.now(timezone.utc)).timestamp()
    return [s for s in slots if s.start.timestamp() > now_ts][:count]


def is_today(value: datetime, today: datetime | None = None) -> bool:
    today = today or datetime.now(value.tzinfo)
    return value.date() == today.date()


def format_slot_time(value: datetime) -> str:
    """'9:00 AM' style label."""
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"
