"""
Booking state machine.

    pending ──────────────┬──> confirmed ──┬──> completed
      │                   │        │       ├──> no_show
      └──> awaiting_approval ──────┘       └──> cancelled
      └──> cancelled      └──> cancelled

``completed``, ``cancelled`` and ``no_show`` are terminal.
"""

from __future__ import annotations

import logging

from booking_engine.errors import InvalidTransitionError
from booking_engine.models import BookingStatus

logger = logging.getLogger(__name__)

TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.pending: frozenset(
        {BookingStatus.confirmed, BookingStatus.cancelled, BookingStatus.awaiting_approval}
    ),
    BookingStatus.awaiting_approval: frozenset({BookingStatus.confirmed, BookingStatus.cancelled}),
    BookingStatus.confirmed: frozenset(
        {BookingStatus.completed, BookingStatus.cancelled, BookingStatus.no_show}
    ),
    BookingStatus.completed: frozenset(),
    BookingStatus.cancelled: frozenset(),
    BookingStatus.no_show: frozenset(),
}

TERMINAL_STATES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


def can_transition(current: BookingStatus, requested: BookingStatus) -> bool:
    return requested in TRANSITIONS[BookingStatus(current)]


def transition(current: BookingStatus, requested: BookingStatus) -> BookingStatus:
    """Return ``requested`` if reachable from ``current``, else raise InvalidTransitionError."""
    current = BookingStatus(current)
    requested = BookingStatus(requested)
    if not can_transition(current, requested):
        raise InvalidTransitionError(current.value, requested.value)
    return requested


def initial_status(skip_payment: bool, requires_approval: bool) -> BookingStatus:
    if skip_payment:
        return BookingStatus.confirmed
    if requires_approval:
        return BookingStatus.awaiting_approval
    return BookingStatus.pending


def apply_payment_result(current: BookingStatus, succeeded: bool) -> BookingStatus | None:
    """
    Status a payment callback should move the booking to, or None for a no-op.

    Only ``pending`` bookings react; a repeated or late callback for a
    booking that already moved on changes nothing.
    """
    if BookingStatus(current) != BookingStatus.pending:
        return None
    return BookingStatus.confirmed if succeeded else BookingStatus.cancelled
