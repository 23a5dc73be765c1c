"""
Staff availability blocks (maintenance, events, manual closures).
"""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from booking_engine.dependencies import CurrentUser, get_block_service
from booking_engine.models import TIME_PATTERN, AvailabilityBlock, BlockCreate, ConflictCheckResponse
from booking_engine.services.conflicts import BlockProposal, BlockService

router = APIRouter(prefix="/api/facilities", tags=["blocks"])


@router.post(
    "/{facility_id}/blocks",
    response_model=AvailabilityBlock,
    status_code=status.HTTP_201_CREATED,
    operation_id="createBlock",
    summary="Block courts for a date or time range",
)
async def create_block(
    facility_id: str,
    body: BlockCreate,
    current_user: CurrentUser,
    service: BlockService = Depends(get_block_service),
) -> AvailabilityBlock:
    return await service.create_block(facility_id, body, current_user.id)


@router.get(
    "/{facility_id}/blocks/check-conflicts",
    response_model=ConflictCheckResponse,
    operation_id="checkBlockConflicts",
    summary="Preview blocks and bookings a proposed block would collide with",
)
async def check_block_conflicts(
    facility_id: str,
    current_user: CurrentUser,
    block_date: Annotated[date, Query(description="Date of the proposed block")],
    court_id: Annotated[str | None, Query(description="Court (omit for every court)")] = None,
    start_time: Annotated[str | None, Query(pattern=TIME_PATTERN, description="HH:MM (omit for all day)")] = None,
    end_time: Annotated[str | None, Query(pattern=TIME_PATTERN, description="HH:MM (omit for all day)")] = None,
    service: BlockService = Depends(get_block_service),
) -> ConflictCheckResponse:
    proposal = BlockProposal(
        block_date=block_date,
        court_id=court_id,
        start_time=start_time,
        end_time=end_time,
    )
    report = await service.check_conflicts(facility_id, proposal, current_user.id)
    return ConflictCheckResponse(
        has_conflicts=report.has_conflicts,
        overlapping_blocks=report.overlapping_blocks,
        conflicting_bookings=report.conflicting_bookings,
    )
