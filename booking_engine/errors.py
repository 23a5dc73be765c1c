"""
Typed error hierarchy for the booking engine.

Services raise these; the API layer turns them into JSON responses via
``register_exception_handlers`` so routes stay thin.  Every class carries
an HTTP status and a machine-readable ``code``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from booking_engine.models import Error

logger = logging.getLogger(__name__)


class BookingEngineError(Exception):
    """Base class for every error the engine reports to callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"

    def __init__(self, reason: str, **details: Any) -> None:
        super().__init__(reason)
        self.reason = reason
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return Error(error=self.code, message=self.reason, details=self.details or None).model_dump()


# ── 400 ───────────────────────────────────────────────────────────────────


class BookingValidationError(BookingEngineError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class InvalidTransitionError(BookingValidationError):
    code = "invalid_transition"

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(
            f"Cannot transition booking from '{current}' to '{requested}'",
            current=current,
            requested=requested,
        )
        self.current = current
        self.requested = requested


class PlayerBlockedError(BookingValidationError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "player_blocked"


class UnknownProviderError(BookingEngineError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "unknown_provider"

    def __init__(self, provider_type: str) -> None:
        super().__init__(f"Provider type not supported: {provider_type}", provider_type=provider_type)
        self.provider_type = provider_type


class PaymentSetupError(BookingEngineError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "payment_not_configured"


# ── 403 / 404 ─────────────────────────────────────────────────────────────


class PermissionDeniedError(BookingEngineError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFoundError(BookingEngineError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class BookingNotFoundError(NotFoundError):
    def __init__(self, booking_id: str) -> None:
        super().__init__("Booking not found", booking_id=booking_id)


# ── 409 ───────────────────────────────────────────────────────────────────


class ConflictError(BookingEngineError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


_BOOKING_SUMMARY_FIELDS = ("id", "court_id", "booking_date", "start_time", "end_time", "status")
_BLOCK_SUMMARY_FIELDS = ("id", "court_id", "block_date", "start_time", "end_time", "block_type", "reason")


def _summarize(record: dict[str, Any], fields: tuple[str, ...]) -> dict[str, Any]:
    return {name: record.get(name) for name in fields}


class SlotAlreadyBookedError(ConflictError):
    """Another active booking already holds (part of) the requested interval."""

    code = "slot_already_booked"

    def __init__(self, competing: dict[str, Any] | None = None) -> None:
        details: dict[str, Any] = {}
        if competing:
            details["competing_booking_id"] = competing.get("id")
            details["competing_booking"] = _summarize(competing, _BOOKING_SUMMARY_FIELDS)
        super().__init__("This time slot has already been booked", **details)
        self.competing = competing


class BlockConflictError(ConflictError):
    def __init__(self, report: Any) -> None:
        if report.overlapping_blocks:
            code, reason = "block_overlap", "This block overlaps with existing blocks"
        else:
            code, reason = "booking_conflict", "This block conflicts with existing bookings"
        super().__init__(
            reason,
            overlapping_blocks=[_summarize(b, _BLOCK_SUMMARY_FIELDS) for b in report.overlapping_blocks],
            conflicting_bookings=[_summarize(b, _BOOKING_SUMMARY_FIELDS) for b in report.conflicting_bookings],
        )
        self.code = code
        self.report = report


# ── Internal (never rendered) ─────────────────────────────────────────────


class ProviderRequestError(Exception):
    """An external availability provider call failed (timeout, non-2xx, bad body)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# ── FastAPI integration ───────────────────────────────────────────────────


async def _engine_error_handler(request: Request, exc: BookingEngineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.exception("Unhandled engine error on %s", request.url.path, exc_info=exc)
    else:
        logger.info("%s on %s: %s", exc.code, request.url.path, exc.reason)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingEngineError, _engine_error_handler)  # type: ignore[arg-type]
