"""
Availability endpoints backed by local court templates.

``/api/courts/{id}/available-slots`` lists bookable windows for one court;
``/api/facilities/{id}/availability`` merges local and external sources
into the same grouped display shape the provider endpoint returns.
"""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from booking_engine import db
from booking_engine.dependencies import get_availability_service
from booking_engine.errors import BookingValidationError, NotFoundError
from booking_engine.models import AvailabilityResponse, OpenSlot
from booking_engine.services.availability.aggregator import build_display_slots, group_slots_by_date
from booking_engine.services.availability.service import AvailabilityService

router = APIRouter(prefix="/api", tags=["availability"])


@router.get(
    "/courts/{court_id}/available-slots",
    response_model=list[OpenSlot],
    operation_id="listCourtAvailableSlots",
    summary="Open slots for a court on a date",
)
async def list_court_available_slots(
    court_id: str,
    day: Annotated[date, Query(alias="date", description="Date to check (YYYY-MM-DD)")],
) -> list[OpenSlot]:
    if await db.get_court(court_id) is None:
        raise NotFoundError("Court not found", court_id=court_id)
    return await db.get_available_slots(court_id, day)


@router.get(
    "/facilities/{facility_id}/availability",
    response_model=AvailabilityResponse,
    operation_id="getFacilityAvailability",
    summary="Local-first availability for a facility, grouped for display",
)
async def get_facility_availability(
    facility_id: str,
    dates: Annotated[list[date], Query(description="Dates to search (repeatable)")],
    search: Annotated[str | None, Query(description="Free-text search")] = None,
    max_slots: Annotated[int, Query(ge=1, le=50, description="Time slots to keep")] = 3,
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    result = await service.fetch_unified(facility_id, [d.isoformat() for d in dates], search)
    if not result.success:
        if result.error == "Facility not found":
            raise NotFoundError(result.error, facility_id=facility_id)
        raise BookingValidationError(result.error or "Availability fetch failed", facility_id=facility_id)

    facility = await db.get_facility(facility_id)
    tz_name = facility["timezone"] if facility else None
    grouped = build_display_slots(result.slots, tz_name, max_slots=max_slots)
    return AvailabilityResponse(
        provider_id=result.source,
        total_count=result.total_count,
        groups=group_slots_by_date(grouped),
    )
