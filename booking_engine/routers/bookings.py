"""
Booking endpoints (authenticated).

Creation and cancellation are rate limited per client IP; everything
else falls under the default tier.
"""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status

from booking_engine.dependencies import (
    CurrentUser,
    PaginationParams,
    get_booking_service,
    get_cancellation_service,
)
from booking_engine.models import (
    Booking,
    BookingCancelRequest,
    BookingCreate,
    BookingCreateResponse,
    BookingListResponse,
    BookingStatus,
    BookingType,
    CancellationResult,
    PlayerBookingsPage,
    StatusUpdateRequest,
)
from booking_engine.rate_limit import BOOKING, limiter
from booking_engine.services.bookings.cancellation import CancellationService
from booking_engine.services.bookings.service import BookingService

router = APIRouter(prefix="/api", tags=["bookings"])


# ── Lifecycle ─────────────────────────────────────────────────────────────


@router.post(
    "/bookings",
    response_model=BookingCreateResponse,
    status_code=status.HTTP_201_CREATED,
    operation_id="createBooking",
    summary="Book a court slot",
)
@limiter.limit(BOOKING)
async def create_booking(
    request: Request,
    body: BookingCreate,
    current_user: CurrentUser,
    service: BookingService = Depends(get_booking_service),
) -> BookingCreateResponse:
    created = await service.create(body, current_user.id)
    return BookingCreateResponse(booking=created.booking, client_secret=created.client_secret)


@router.get(
    "/bookings/{booking_id}",
    response_model=Booking,
    operation_id="getBooking",
    summary="Get a booking (owner or organization staff)",
)
async def get_booking(
    booking_id: str,
    current_user: CurrentUser,
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    return await service.get_for_user(booking_id, current_user.id)


@router.post(
    "/bookings/{booking_id}/cancel",
    response_model=CancellationResult,
    operation_id="cancelBooking",
    summary="Cancel a booking and refund according to the organization's policy",
)
@limiter.limit(BOOKING)
async def cancel_booking(
    request: Request,
    booking_id: str,
    body: BookingCancelRequest,
    current_user: CurrentUser,
    service: CancellationService = Depends(get_cancellation_service),
) -> CancellationResult:
    return await service.cancel(booking_id, current_user.id, reason=body.reason, force=body.force)


@router.post(
    "/bookings/{booking_id}/status",
    response_model=Booking,
    operation_id="updateBookingStatus",
    summary="Approve, complete or mark a booking as no-show (staff)",
)
async def update_booking_status(
    booking_id: str,
    body: StatusUpdateRequest,
    current_user: CurrentUser,
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    return await service.update_status(booking_id, body.status, current_user.id)


# ── Listings ──────────────────────────────────────────────────────────────


@router.get(
    "/organizations/{organization_id}/bookings",
    response_model=BookingListResponse,
    operation_id="listOrganizationBookings",
    summary="List an organization's bookings (staff)",
)
async def list_organization_bookings(
    organization_id: str,
    current_user: CurrentUser,
    pagination: PaginationParams = Depends(PaginationParams),
    date_from: Annotated[date | None, Query(description="Earliest booking date")] = None,
    date_to: Annotated[date | None, Query(description="Latest booking date")] = None,
    status_filter: Annotated[
        list[BookingStatus] | None, Query(alias="status", description="Filter by status (repeatable)")
    ] = None,
    booking_type: Annotated[BookingType | None, Query(description="Filter by booking type")] = None,
    court_id: Annotated[str | None, Query(description="Filter by court")] = None,
    service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    items, total = await service.list_for_organization(
        organization_id,
        current_user.id,
        date_from=date_from,
        date_to=date_to,
        statuses=[s.value for s in status_filter] if status_filter else None,
        booking_type=booking_type.value if booking_type else None,
        court_id=court_id,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return BookingListResponse(items=items, total=total, limit=pagination.limit, offset=pagination.offset)


@router.get(
    "/players/me/bookings",
    response_model=PlayerBookingsPage,
    operation_id="listMyBookings",
    summary="The authenticated player's upcoming or past bookings",
)
async def list_my_bookings(
    current_user: CurrentUser,
    upcoming: Annotated[bool, Query(description="Upcoming (true) or past (false) bookings")] = True,
    limit: Annotated[int, Query(ge=1, le=100, description="Page size")] = 20,
    offset: Annotated[int, Query(ge=0, description="Items to skip")] = 0,
    service: BookingService = Depends(get_booking_service),
) -> PlayerBookingsPage:
    items, has_more = await service.list_for_player(
        current_user.id, upcoming=upcoming, today=date.today(), limit=limit, offset=offset
    )
    return PlayerBookingsPage(
        items=items,
        has_more=has_more,
        next_offset=offset + limit if has_more else None,
    )
