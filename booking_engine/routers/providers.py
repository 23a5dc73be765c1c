"""
Data provider endpoints: supported types, admin updates and raw
availability from one external provider.
"""

import logging
from datetime import date
from typing import Annotated
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, Query

from booking_engine import db
from booking_engine.config import ADMIN_USER_IDS
from booking_engine.dependencies import (
    CurrentUser,
    get_availability_service,
    get_config_cache,
)
from booking_engine.errors import BookingValidationError, NotFoundError, PermissionDeniedError
from booking_engine.models import (
    AvailabilityResponse,
    FetchParams,
    ProviderConfig,
    ProviderConfigUpdate,
)
from booking_engine.services.availability.aggregator import build_display_slots, group_slots_by_date
from booking_engine.services.availability.config_cache import ProviderConfigCache
from booking_engine.services.availability.service import AvailabilityService
from booking_engine.services.providers.registry import provider_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/providers", tags=["providers"])


@router.get(
    "/types",
    response_model=list[str],
    operation_id="listProviderTypes",
    summary="List registered provider adapter types",
)
async def list_provider_types() -> list[str]:
    return provider_registry.list_types()


@router.put(
    "/{provider_id}",
    response_model=ProviderConfig,
    operation_id="updateProvider",
    summary="Update a data provider configuration",
)
async def update_provider(
    provider_id: str,
    body: ProviderConfigUpdate,
    current_user: CurrentUser,
    cache: ProviderConfigCache = Depends(get_config_cache),
) -> ProviderConfig:
    if current_user.id not in ADMIN_USER_IDS:
        raise PermissionDeniedError("Only platform admins can edit data providers")

    updated = await db.update_data_provider(provider_id, body)
    if updated is None:
        raise NotFoundError("Provider not found", provider_id=provider_id)
    cache.invalidate(provider_id)
    logger.info("Provider %s updated by %s", provider_id, current_user.id)
    return updated


@router.get(
    "/{provider_id}/availability",
    response_model=AvailabilityResponse,
    operation_id="getProviderAvailability",
    summary="Fetch, group and label availability from an external provider",
)
async def get_provider_availability(
    provider_id: str,
    dates: Annotated[list[date], Query(description="Dates to search (repeatable)")],
    site_id: Annotated[str | None, Query(description="Provider site filter")] = None,
    search: Annotated[str | None, Query(description="Free-text search")] = None,
    max_slots: Annotated[int, Query(ge=1, le=50, description="Time slots to keep")] = 3,
    timezone: Annotated[str | None, Query(description="IANA zone used to drop past slots")] = None,
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    if timezone:
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise BookingValidationError("Unknown timezone", timezone=timezone) from None
    params = FetchParams(
        dates=[d.isoformat() for d in dates],
        site_id=site_id,
        search_string=search,
    )
    result = await service.fetch_availability(provider_id, params)
    if not result.success:
        raise BookingValidationError(result.error or "Availability fetch failed", provider_id=provider_id)

    grouped = build_display_slots(result.slots, timezone, max_slots=max_slots)
    return AvailabilityResponse(
        provider_id=provider_id,
        total_count=result.total_count,
        groups=group_slots_by_date(grouped),
    )
