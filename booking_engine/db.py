"""
SQLite database layer using aiosqlite.

Stores organizations' booking configuration, courts and their slot
templates, bookings with their payments, availability blocks, provider
configurations and notifications.  Tables are created automatically on
first connect.

The no-overlap rule for active bookings is enforced by the store itself
(``booking_no_overlap_*`` triggers) so concurrent creations cannot both
succeed; the losing insert surfaces as ``SlotAlreadyBookedError``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime, timedelta, timezone, tzinfo
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import uuid4
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import aiosqlite

from booking_engine.config import DB_PATH
from booking_engine.errors import BookingNotFoundError, BookingValidationError, SlotAlreadyBookedError
from booking_engine.models import (
    DEFAULT_CANCELLATION_POLICY,
    AvailabilityBlock,
    Booking,
    CancellationPolicy,
    OpenSlot,
    ProviderConfig,
    ProviderConfigUpdate,
)

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("pending", "awaiting_approval", "confirmed")

_OVERLAP_MARKER = "booking_no_overlap"

# ── Module-level connection ───────────────────────────────────────────────

_db: aiosqlite.Connection | None = None


async def init_db() -> None:
    """Open the database and create tables if they don't exist."""
    global _db
    db_path = Path(DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    _db = await aiosqlite.connect(str(db_path))
    _db.row_factory = aiosqlite.Row  # dict-like rows
    await _db.execute("PRAGMA journal_mode=WAL")
    await _db.execute("PRAGMA foreign_keys=ON")

    await _db.executescript(_SCHEMA)
    await _db.commit()
    logger.info("Database initialized at %s", db_path)


async def close_db() -> None:
    """Close the database connection."""
    global _db
    if _db is not None:
        await _db.close()
        _db = None
        logger.info("Database connection closed")


def get_db() -> aiosqlite.Connection:
    """Return the active database connection (must call init_db first)."""
    assert _db is not None, "Database not initialized, call init_db() first"
    return _db


# ── Schema ────────────────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS organization_settings (
    organization_id             TEXT PRIMARY KEY,
    allow_same_day_booking      INTEGER NOT NULL DEFAULT 1,
    min_booking_notice_hours    REAL,
    max_advance_booking_days    INTEGER,
    require_booking_approval    INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS organization_member (
    organization_id TEXT NOT NULL,
    user_id         TEXT NOT NULL,
    role            TEXT NOT NULL,      -- owner | admin | staff | member
    PRIMARY KEY (organization_id, user_id)
);

CREATE TABLE IF NOT EXISTS organization_stripe_account (
    organization_id     TEXT PRIMARY KEY,
    stripe_account_id   TEXT NOT NULL,
    charges_enabled     INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS organization_player_block (
    id              TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    player_id       TEXT NOT NULL,
    is_active       INTEGER NOT NULL DEFAULT 1,
    blocked_until   TEXT,               -- ISO datetime, NULL = indefinite
    reason          TEXT
);

CREATE INDEX IF NOT EXISTS idx_player_block ON organization_player_block(organization_id, player_id);

CREATE TABLE IF NOT EXISTS cancellation_policy (
    organization_id         TEXT PRIMARY KEY,
    free_cancellation_hours REAL NOT NULL DEFAULT 24,
    partial_refund_hours    REAL NOT NULL DEFAULT 12,
    partial_refund_percent  REAL NOT NULL DEFAULT 50,
    no_refund_hours         REAL NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS data_provider (
    id              TEXT PRIMARY KEY,
    name            TEXT,
    provider_type   TEXT NOT NULL,
    base_url        TEXT NOT NULL,
    api_config      TEXT,               -- JSON object
    link_template   TEXT,
    is_active       INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS facility (
    id                      TEXT PRIMARY KEY,
    organization_id         TEXT NOT NULL,
    name                    TEXT NOT NULL,
    timezone                TEXT,
    data_provider_id        TEXT REFERENCES data_provider(id),
    external_provider_id    TEXT
);

CREATE TABLE IF NOT EXISTS court (
    id                  TEXT PRIMARY KEY,
    facility_id         TEXT NOT NULL REFERENCES facility(id),
    name                TEXT,
    court_number        INTEGER,
    availability_status TEXT DEFAULT 'available'
);

CREATE INDEX IF NOT EXISTS idx_court_facility ON court(facility_id);

CREATE TABLE IF NOT EXISTS court_slot (
    id                      TEXT PRIMARY KEY,
    facility_id             TEXT NOT NULL,
    court_id                TEXT,       -- NULL = every court of the facility
    day_of_week             TEXT NOT NULL,  -- monday .. sunday
    start_time              TEXT NOT NULL,
    end_time                TEXT NOT NULL,
    slot_duration_minutes   INTEGER NOT NULL DEFAULT 60,
    price_cents             INTEGER NOT NULL DEFAULT 0,
    is_available            INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS court_one_time_availability (
    id                      TEXT PRIMARY KEY,
    facility_id             TEXT NOT NULL,
    court_id                TEXT,
    availability_date       TEXT NOT NULL,
    start_time              TEXT NOT NULL,
    end_time                TEXT NOT NULL,
    slot_duration_minutes   INTEGER NOT NULL DEFAULT 60,
    price_cents             INTEGER NOT NULL DEFAULT 0,
    is_available            INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS booking (
    id                          TEXT PRIMARY KEY,
    organization_id             TEXT NOT NULL,
    court_id                    TEXT NOT NULL REFERENCES court(id),
    player_id                   TEXT,
    booking_date                TEXT NOT NULL,
    start_time                  TEXT NOT NULL,  -- HH:MM:SS
    end_time                    TEXT NOT NULL,
    status                      TEXT NOT NULL,
    booking_type                TEXT NOT NULL DEFAULT 'player',
    price_cents                 INTEGER NOT NULL DEFAULT 0,
    currency                    TEXT NOT NULL DEFAULT 'CAD',
    stripe_payment_intent_id    TEXT,
    stripe_charge_id            TEXT,
    requires_approval           INTEGER NOT NULL DEFAULT 0,
    notes                       TEXT,
    guest_name                  TEXT,
    refund_amount_cents         INTEGER,
    refund_status               TEXT,
    cancelled_at                TEXT,
    cancelled_by                TEXT,
    cancellation_reason         TEXT,
    created_at                  TEXT NOT NULL,
    updated_at                  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_booking_court_date ON booking(court_id, booking_date);
CREATE INDEX IF NOT EXISTS idx_booking_org ON booking(organization_id, booking_date);
CREATE INDEX IF NOT EXISTS idx_booking_player ON booking(player_id, booking_date);
CREATE INDEX IF NOT EXISTS idx_booking_intent ON booking(stripe_payment_intent_id);

CREATE TRIGGER IF NOT EXISTS booking_no_overlap_insert
BEFORE INSERT ON booking
WHEN NEW.status IN ('pending', 'awaiting_approval', 'confirmed')
BEGIN
    SELECT RAISE(ABORT, 'booking_no_overlap')
    WHERE EXISTS (
        SELECT 1 FROM booking b
        WHERE b.court_id = NEW.court_id
          AND b.booking_date = NEW.booking_date
          AND b.status IN ('pending', 'awaiting_approval', 'confirmed')
          AND b.start_time < NEW.end_time
          AND NEW.start_time < b.end_time
    );
END;

CREATE TRIGGER IF NOT EXISTS booking_no_overlap_update
BEFORE UPDATE OF status, court_id, booking_date, start_time, end_time ON booking
WHEN NEW.status IN ('pending', 'awaiting_approval', 'confirmed')
BEGIN
    SELECT RAISE(ABORT, 'booking_no_overlap')
    WHERE EXISTS (
        SELECT 1 FROM booking b
        WHERE b.id != NEW.id
          AND b.court_id = NEW.court_id
          AND b.booking_date = NEW.booking_date
          AND b.status IN ('pending', 'awaiting_approval', 'confirmed')
          AND b.start_time < NEW.end_time
          AND NEW.start_time < b.end_time
    );
END;

CREATE TABLE IF NOT EXISTS booking_payment (
    id                          TEXT PRIMARY KEY,
    booking_id                  TEXT NOT NULL REFERENCES booking(id) ON DELETE CASCADE,
    installment_number          INTEGER NOT NULL,
    amount_cents                INTEGER NOT NULL,
    status                      TEXT NOT NULL DEFAULT 'pending',
    stripe_payment_intent_id    TEXT,
    refund_amount_cents         INTEGER,
    refunded_at                 TEXT
);

CREATE INDEX IF NOT EXISTS idx_payment_booking ON booking_payment(booking_id, installment_number);

CREATE TABLE IF NOT EXISTS availability_block (
    id          TEXT PRIMARY KEY,
    facility_id TEXT NOT NULL,
    court_id    TEXT,               -- NULL = every court
    block_date  TEXT NOT NULL,
    start_time  TEXT,               -- NULL (with end_time) = all day
    end_time    TEXT,
    block_type  TEXT NOT NULL DEFAULT 'manual',
    reason      TEXT,
    created_by  TEXT,
    created_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_block_facility_date ON availability_block(facility_id, block_date);

CREATE TABLE IF NOT EXISTS notification (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    type        TEXT NOT NULL,
    target_id   TEXT NOT NULL,
    title       TEXT NOT NULL,
    body        TEXT,
    payload     TEXT,               -- JSON object
    created_at  TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_notification_once ON notification(user_id, type, target_id);
"""


# ── Helpers ───────────────────────────────────────────────────────────────


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_time(value: str) -> str:
    """Normalize 'H:MM', 'HH:MM' or 'HH:MM:SS' to 'HH:MM:SS'."""
    parts = value.strip().split(":")
    try:
        hours = int(parts[0])
        minutes = int(parts[1]) if len(parts) > 1 else 0
        seconds = int(parts[2][:2]) if len(parts) > 2 else 0
    except ValueError:
        raise BookingValidationError("Invalid time format", value=value) from None
    if not (0 <= hours <= 24 and 0 <= minutes < 60 and 0 <= seconds < 60):
        raise BookingValidationError("Invalid time format", value=value)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def facility_zone(name: str | None) -> tzinfo:
    """The facility's IANA zone; UTC when unset or unknown."""
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown facility timezone %r, using UTC", name)
        return timezone.utc


def _to_minutes(value: str) -> int:
    h, m, _ = normalize_time(value).split(":")
    return int(h) * 60 + int(m)


def _from_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}:00"


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def end_of_booking(booking_date: str, end_time: str) -> datetime:
    """Naive local datetime at which a booking ends."""
    d = date.fromisoformat(booking_date)
    return datetime(d.year, d.month, d.day) + timedelta(minutes=_to_minutes(end_time))


def _is_overlap_violation(exc: sqlite3.IntegrityError) -> bool:
    return _OVERLAP_MARKER in str(exc)


def _row_to_booking(row: aiosqlite.Row) -> Booking:
    return Booking.model_validate(dict(row))


# ── Organizations ─────────────────────────────────────────────────────────


async def get_organization_settings(organization_id: str) -> dict[str, Any] | None:
    db = get_db()
    cursor = await db.execute(
        "SELECT * FROM organization_settings WHERE organization_id = ?", (organization_id,)
    )
    row = await cursor.fetchone()
    return dict(row) if row else None


async def get_member_role(organization_id: str, user_id: str) -> str | None:
    db = get_db()
    cursor = await db.execute(
        "SELECT role FROM organization_member WHERE organization_id = ? AND user_id = ?",
        (organization_id, user_id),
    )
    row = await cursor.fetchone()
    return row["role"] if row else None


async def list_member_ids(organization_id: str, roles: tuple[str, ...]) -> list[str]:
    db = get_db()
    placeholders = ",".join("?" for _ in roles)
    cursor = await db.execute(
        f"SELECT user_id FROM organization_member WHERE organization_id = ? AND role IN ({placeholders})",
        (organization_id, *roles),
    )
    return [row["user_id"] for row in await cursor.fetchall()]


async def get_stripe_account(organization_id: str) -> dict[str, Any] | None:
    db = get_db()
    cursor = await db.execute(
        "SELECT * FROM organization_stripe_account WHERE organization_id = ?", (organization_id,)
    )
    row = await cursor.fetchone()
    return dict(row) if row else None


async def get_active_player_block(organization_id: str, player_id: str) -> dict[str, Any] | None:
    db = get_db()
    cursor = await db.execute(
        """SELECT * FROM organization_player_block
           WHERE organization_id = ? AND player_id = ? AND is_active = 1
           LIMIT 1""",
        (organization_id, player_id),
    )
    row = await cursor.fetchone()
    return dict(row) if row else None


async def get_cancellation_policy(organization_id: str) -> CancellationPolicy:
    """Return the organization's policy, or the 24/12/50/0 default."""
    db = get_db()
    cursor = await db.execute(
        "SELECT * FROM cancellation_policy WHERE organization_id = ?", (organization_id,)
    )
    row = await cursor.fetchone()
    if row is None:
        return DEFAULT_CANCELLATION_POLICY
    return CancellationPolicy.model_validate(dict(row))


# ── Facilities & courts ───────────────────────────────────────────────────


async def get_facility(facility_id: str) -> dict[str, Any] | None:
    db = get_db()
    cursor = await db.execute("SELECT * FROM facility WHERE id = ?", (facility_id,))
    row = await cursor.fetchone()
    return dict(row) if row else None


async def get_court(court_id: str) -> dict[str, Any] | None:
    """Court row joined with its facility's organization and timezone."""
    db = get_db()
    cursor = await db.execute(
        """SELECT c.*, f.organization_id, f.timezone, f.name AS facility_name
           FROM court c JOIN facility f ON f.id = c.facility_id
           WHERE c.id = ?""",
        (court_id,),
    )
    row = await cursor.fetchone()
    return dict(row) if row else None


async def list_facility_courts(facility_id: str) -> list[dict[str, Any]]:
    db = get_db()
    cursor = await db.execute(
        "SELECT * FROM court WHERE facility_id = ? ORDER BY court_number, name", (facility_id,)
    )
    return [dict(r) for r in await cursor.fetchall()]


async def list_facility_court_ids(facility_id: str) -> list[str]:
    return [court["id"] for court in await list_facility_courts(facility_id)]


async def facility_has_local_templates(facility_id: str) -> bool:
    """True when the facility defines its own slot templates (recurring or one-time)."""
    db = get_db()
    cursor = await db.execute(
        """SELECT EXISTS (SELECT 1 FROM court_slot WHERE facility_id = ?)
               OR EXISTS (SELECT 1 FROM court_one_time_availability WHERE facility_id = ?) AS found""",
        (facility_id, facility_id),
    )
    row = await cursor.fetchone()
    return bool(row["found"])


async def get_available_slots(court_id: str, booking_date: date) -> list[OpenSlot]:
    """
    Open slots for a court on a date.

    Templates (one-time entries for the date plus recurring ``court_slot``
    rows for the weekday, court-specific ones replacing facility-wide ones)
    are cut into ``slot_duration_minutes`` pieces; pieces overlapping an
    active booking, a block or a one-time unavailability are removed.
    """
    court = await get_court(court_id)
    if court is None:
        return []
    if court["availability_status"] is not None and court["availability_status"] != "available":
        return []

    db = get_db()
    facility_id = court["facility_id"]
    date_str = booking_date.isoformat()
    weekday = booking_date.strftime("%A").lower()

    cursor = await db.execute(
        """SELECT * FROM court_one_time_availability
           WHERE availability_date = ?
             AND (court_id = ? OR (court_id IS NULL AND facility_id = ?))""",
        (date_str, court_id, facility_id),
    )
    one_time = [dict(r) for r in await cursor.fetchall()]

    cursor = await db.execute(
        """SELECT * FROM court_slot
           WHERE day_of_week = ? AND is_available = 1
             AND (court_id = ? OR (court_id IS NULL AND facility_id = ?))""",
        (weekday, court_id, facility_id),
    )
    recurring = [dict(r) for r in await cursor.fetchall()]
    court_specific = [t for t in recurring if t["court_id"] == court_id]
    if court_specific:
        recurring = court_specific

    # One-time entries win over recurring ones producing the same interval.
    generated: dict[tuple[int, int], int] = {}
    templates = [(t, False) for t in recurring] + [(t, True) for t in one_time if t["is_available"]]
    for template, override in templates:
        start = _to_minutes(template["start_time"])
        end = _to_minutes(template["end_time"])
        step = template["slot_duration_minutes"]
        if step <= 0:
            continue
        cur = start
        while cur + step <= end:
            key = (cur, cur + step)
            if override or key not in generated:
                generated[key] = template["price_cents"]
            cur += step

    busy: list[tuple[int, int]] = []
    cursor = await db.execute(
        """SELECT start_time, end_time FROM booking
           WHERE court_id = ? AND booking_date = ? AND status != 'cancelled'""",
        (court_id, date_str),
    )
    busy.extend((_to_minutes(r["start_time"]), _to_minutes(r["end_time"])) for r in await cursor.fetchall())

    cursor = await db.execute(
        """SELECT start_time, end_time FROM availability_block
           WHERE block_date = ?
             AND (court_id = ? OR (court_id IS NULL AND facility_id = ?))""",
        (date_str, court_id, facility_id),
    )
    for r in await cursor.fetchall():
        if r["start_time"] is None or r["end_time"] is None:
            return []
        busy.append((_to_minutes(r["start_time"]), _to_minutes(r["end_time"])))

    busy.extend(
        (_to_minutes(t["start_time"]), _to_minutes(t["end_time"])) for t in one_time if not t["is_available"]
    )

    slots = [
        OpenSlot(start_time=_from_minutes(s), end_time=_from_minutes(e), price_cents=price)
        for (s, e), price in sorted(generated.items())
        if not any(s < b_end and b_start < e for b_start, b_end in busy)
    ]
    return slots


# ── Bookings ──────────────────────────────────────────────────────────────


async def insert_booking(values: dict[str, Any]) -> Booking:
    """Insert a booking; overlapping active bookings raise SlotAlreadyBookedError."""
    db = get_db()
    now = _now_iso()
    record = {
        "id": str(uuid4()),
        "created_at": now,
        "updated_at": now,
        **values,
    }
    record = {k: _plain(v) for k, v in record.items()}
    record["booking_date"] = str(record["booking_date"])
    columns = ", ".join(record)
    placeholders = ", ".join("?" for _ in record)
    try:
        await db.execute(f"INSERT INTO booking ({columns}) VALUES ({placeholders})", tuple(record.values()))
        await db.commit()
    except sqlite3.IntegrityError as exc:
        # ABORT undoes only the failed statement; the shared connection may hold
        # another coroutine's uncommitted write.
        if not _is_overlap_violation(exc):
            raise
        competing = await find_overlapping_booking(
            record["court_id"], record["booking_date"], record["start_time"], record["end_time"]
        )
        raise SlotAlreadyBookedError(competing) from exc
    booking = await get_booking(record["id"])
    if booking is None:
        raise BookingNotFoundError(record["id"])
    return booking


async def get_booking(booking_id: str) -> Booking | None:
    db = get_db()
    cursor = await db.execute("SELECT * FROM booking WHERE id = ?", (booking_id,))
    row = await cursor.fetchone()
    return _row_to_booking(row) if row else None


async def get_booking_by_payment_intent(payment_intent_id: str) -> Booking | None:
    db = get_db()
    cursor = await db.execute(
        "SELECT * FROM booking WHERE stripe_payment_intent_id = ?", (payment_intent_id,)
    )
    row = await cursor.fetchone()
    return _row_to_booking(row) if row else None


async def update_booking(booking_id: str, **fields: Any) -> Booking | None:
    db = get_db()
    fields["updated_at"] = _now_iso()
    assignments = ", ".join(f"{k} = ?" for k in fields)
    values = [_plain(v) for v in fields.values()]
    try:
        await db.execute(f"UPDATE booking SET {assignments} WHERE id = ?", (*values, booking_id))
        await db.commit()
    except sqlite3.IntegrityError as exc:
        # ABORT undoes only the failed statement; the shared connection may hold
        # another coroutine's uncommitted write.
        if not _is_overlap_violation(exc):
            raise
        raise SlotAlreadyBookedError() from exc
    return await get_booking(booking_id)


async def find_overlapping_booking(
    court_id: str,
    booking_date: date | str,
    start_time: str,
    end_time: str,
) -> dict[str, Any] | None:
    """First active booking on the court/date whose interval overlaps [start, end)."""
    db = get_db()
    cursor = await db.execute(
        f"""SELECT * FROM booking
            WHERE court_id = ? AND booking_date = ?
              AND status IN ({",".join("?" for _ in ACTIVE_STATUSES)})
              AND start_time < ? AND ? < end_time
            ORDER BY created_at LIMIT 1""",
        (court_id, str(booking_date), *ACTIVE_STATUSES, normalize_time(end_time), normalize_time(start_time)),
    )
    row = await cursor.fetchone()
    return dict(row) if row else None


async def list_bookings(
    organization_id: str,
    *,
    date_from: date | None = None,
    date_to: date | None = None,
    statuses: list[str] | None = None,
    booking_type: str | None = None,
    court_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Booking], int]:
    """Filtered page of an organization's bookings plus the total match count."""
    clauses = ["organization_id = ?"]
    params: list[Any] = [organization_id]
    if date_from is not None:
        clauses.append("booking_date >= ?")
        params.append(date_from.isoformat())
    if date_to is not None:
        clauses.append("booking_date <= ?")
        params.append(date_to.isoformat())
    if statuses:
        clauses.append(f"status IN ({','.join('?' for _ in statuses)})")
        params.extend(statuses)
    if booking_type is not None:
        clauses.append("booking_type = ?")
        params.append(booking_type)
    if court_id is not None:
        clauses.append("court_id = ?")
        params.append(court_id)
    where = " AND ".join(clauses)

    db = get_db()
    cursor = await db.execute(f"SELECT COUNT(*) AS n FROM booking WHERE {where}", params)
    total = (await cursor.fetchone())["n"]
    cursor = await db.execute(
        f"""SELECT * FROM booking WHERE {where}
            ORDER BY booking_date DESC, start_time DESC
            LIMIT ? OFFSET ?""",
        (*params, limit, offset),
    )
    return [_row_to_booking(r) for r in await cursor.fetchall()], total


async def list_player_bookings(
    player_id: str,
    *,
    upcoming: bool,
    today: date,
    limit: int,
    offset: int,
) -> list[Booking]:
    """A player's bookings; upcoming ascending from today, past descending."""
    db = get_db()
    if upcoming:
        sql = """SELECT * FROM booking WHERE player_id = ? AND booking_date >= ?
                 ORDER BY booking_date ASC, start_time ASC LIMIT ? OFFSET ?"""
    else:
        sql = """SELECT * FROM booking WHERE player_id = ? AND booking_date < ?
                 ORDER BY booking_date DESC, start_time DESC LIMIT ? OFFSET ?"""
    cursor = await db.execute(sql, (player_id, today.isoformat(), limit, offset))
    return [_row_to_booking(r) for r in await cursor.fetchall()]


async def list_bookings_on_courts(court_ids: list[str], booking_date: date) -> list[dict[str, Any]]:
    """Non-cancelled bookings on any of the courts for a date."""
    if not court_ids:
        return []
    db = get_db()
    cursor = await db.execute(
        f"""SELECT * FROM booking
            WHERE court_id IN ({",".join("?" for _ in court_ids)})
              AND booking_date = ? AND status != 'cancelled'
            ORDER BY start_time""",
        (*court_ids, booking_date.isoformat()),
    )
    return [dict(r) for r in await cursor.fetchall()]


async def list_bookings_between_dates(
    date_from: date,
    date_to: date,
    statuses: tuple[str, ...] = ("confirmed", "completed"),
) -> list[dict[str, Any]]:
    """Player bookings in a date range joined with their facility timezone."""
    db = get_db()
    cursor = await db.execute(
        f"""SELECT b.*, f.timezone
            FROM booking b
            JOIN court c ON c.id = b.court_id
            JOIN facility f ON f.id = c.facility_id
            WHERE b.booking_date BETWEEN ? AND ?
              AND b.player_id IS NOT NULL
              AND b.status IN ({",".join("?" for _ in statuses)})""",
        (date_from.isoformat(), date_to.isoformat(), *statuses),
    )
    return [dict(r) for r in await cursor.fetchall()]


# ── Booking payments (installments) ───────────────────────────────────────


async def insert_booking_payment(
    booking_id: str,
    installment_number: int,
    amount_cents: int,
    status: str = "pending",
    stripe_payment_intent_id: str | None = None,
) -> str:
    db = get_db()
    payment_id = str(uuid4())
    await db.execute(
        """INSERT INTO booking_payment
           (id, booking_id, installment_number, amount_cents, status, stripe_payment_intent_id)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (payment_id, booking_id, installment_number, amount_cents, status, stripe_payment_intent_id),
    )
    await db.commit()
    return payment_id


async def list_booking_payments(booking_id: str) -> list[dict[str, Any]]:
    db = get_db()
    cursor = await db.execute(
        "SELECT * FROM booking_payment WHERE booking_id = ? ORDER BY installment_number",
        (booking_id,),
    )
    return [dict(r) for r in await cursor.fetchall()]


async def update_booking_payment(payment_id: str, **fields: Any) -> None:
    db = get_db()
    assignments = ", ".join(f"{k} = ?" for k in fields)
    await db.execute(
        f"UPDATE booking_payment SET {assignments} WHERE id = ?", (*fields.values(), payment_id)
    )
    await db.commit()


# ── Availability blocks ───────────────────────────────────────────────────


async def list_blocks(facility_id: str, block_date: date) -> list[dict[str, Any]]:
    db = get_db()
    cursor = await db.execute(
        "SELECT * FROM availability_block WHERE facility_id = ? AND block_date = ? ORDER BY start_time",
        (facility_id, block_date.isoformat()),
    )
    return [dict(r) for r in await cursor.fetchall()]


async def insert_block(
    facility_id: str,
    block_date: date,
    *,
    court_id: str | None,
    start_time: str | None,
    end_time: str | None,
    block_type: str,
    reason: str | None,
    created_by: str | None,
) -> AvailabilityBlock:
    db = get_db()
    block_id = str(uuid4())
    await db.execute(
        """INSERT INTO availability_block
           (id, facility_id, court_id, block_date, start_time, end_time,
            block_type, reason, created_by, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            block_id,
            facility_id,
            court_id,
            block_date.isoformat(),
            start_time,
            end_time,
            block_type,
            reason,
            created_by,
            _now_iso(),
        ),
    )
    await db.commit()
    logger.info("Created %s block %s on facility %s for %s", block_type, block_id, facility_id, block_date)
    return AvailabilityBlock(
        id=block_id,
        facility_id=facility_id,
        court_id=court_id,
        block_date=block_date,
        start_time=start_time,
        end_time=end_time,
        block_type=block_type,
        reason=reason,
        created_by=created_by,
    )


# ── Data providers ────────────────────────────────────────────────────────


def _row_to_provider(row: aiosqlite.Row) -> ProviderConfig:
    data = dict(row)
    data["api_config"] = json.loads(data["api_config"]) if data.get("api_config") else {}
    return ProviderConfig.model_validate(data)


async def get_data_provider(provider_id: str) -> ProviderConfig | None:
    db = get_db()
    cursor = await db.execute("SELECT * FROM data_provider WHERE id = ?", (provider_id,))
    row = await cursor.fetchone()
    return _row_to_provider(row) if row else None


async def update_data_provider(provider_id: str, update: ProviderConfigUpdate) -> ProviderConfig | None:
    fields = update.model_dump(exclude_unset=True)
    if not fields:
        return await get_data_provider(provider_id)
    if "api_config" in fields:
        fields["api_config"] = json.dumps(fields["api_config"] or {})
    db = get_db()
    assignments = ", ".join(f"{k} = ?" for k in fields)
    await db.execute(f"UPDATE data_provider SET {assignments} WHERE id = ?", (*fields.values(), provider_id))
    await db.commit()
    return await get_data_provider(provider_id)


# ── Notifications ─────────────────────────────────────────────────────────


async def insert_notification(
    user_id: str,
    type: str,
    target_id: str,
    title: str,
    body: str | None = None,
    payload: dict[str, Any] | None = None,
) -> bool:
    """Insert a notification once per (user, type, target). True when a row was written."""
    db = get_db()
    cursor = await db.execute(
        """INSERT OR IGNORE INTO notification
           (id, user_id, type, target_id, title, body, payload, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            str(uuid4()),
            user_id,
            type,
            target_id,
            title,
            body,
            json.dumps(payload) if payload is not None else None,
            _now_iso(),
        ),
    )
    await db.commit()
    return cursor.rowcount > 0


async def list_notifications(user_id: str) -> list[dict[str, Any]]:
    db = get_db()
    cursor = await db.execute(
        "SELECT * FROM notification WHERE user_id = ? ORDER BY created_at", (user_id,)
    )
    rows = [dict(r) for r in await cursor.fetchall()]
    for row in rows:
        row["payload"] = json.loads(row["payload"]) if row["payload"] else None
    return rows
