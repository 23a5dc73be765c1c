"""
Availability read path.

Resolves a provider configuration through the cache, picks the adapter
from the registry and runs the fetch.  Facilities that define their own
slot templates are served from the local store first; only facilities
without templates fall back to their external provider.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

import httpx

from booking_engine import db
from booking_engine.config import DEFAULT_CURRENCY
from booking_engine.errors import UnknownProviderError
from booking_engine.models import AvailabilitySlot, FetchParams
from booking_engine.services.availability.config_cache import ProviderConfigCache
from booking_engine.services.providers.registry import ProviderRegistry, provider_registry

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    slots: list[AvailabilitySlot] = field(default_factory=list)
    success: bool = False
    total_count: int = 0
    error: str | None = None
    source: str = "none"    # local | external | none


class AvailabilityService:
    def __init__(
        self,
        config_cache: ProviderConfigCache,
        registry: ProviderRegistry = provider_registry,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._cache = config_cache
        self._registry = registry
        self._client = client

    # ── External providers ────────────────────────────────────────────

    async def fetch_availability(self, provider_id: str, params: FetchParams) -> FetchResult:
        config = await self._cache.get(provider_id)
        if config is None:
            return FetchResult(error="Provider configuration not found")

        try:
            adapter = self._registry.get_adapter(config, client=self._client)
        except UnknownProviderError as exc:
            logger.warning("Provider %s: %s", provider_id, exc.reason)
            return FetchResult(error=exc.reason)

        try:
            slots = await adapter.fetch(params)
        except Exception as exc:
            logger.exception("Availability fetch crashed for provider %s", provider_id)
            return FetchResult(error=str(exc))
        finally:
            await adapter.close()

        logger.info("Provider %s returned %d slots for %s", provider_id, len(slots), params.dates)
        return FetchResult(slots=slots, success=True, total_count=len(slots), source="external")

    async def fetch_many(self, requests: list[tuple[str, FetchParams]]) -> list[FetchResult]:
        """Fetch several providers concurrently; one slow provider doesn't hold up the rest."""
        return list(await asyncio.gather(*(self.fetch_availability(pid, p) for pid, p in requests)))

    # ── Local-first ───────────────────────────────────────────────────

    async def fetch_local(self, facility_id: str, dates: list[str]) -> list[AvailabilitySlot]:
        slots: list[AvailabilitySlot] = []
        courts = await db.list_facility_courts(facility_id)
        for date_str in dates:
            day = date.fromisoformat(date_str)
            for court in courts:
                for open_slot in await db.get_available_slots(court["id"], day):
                    start = datetime.combine(day, datetime.strptime(open_slot.start_time, "%H:%M:%S").time())
                    end = datetime.combine(day, datetime.strptime(open_slot.end_time, "%H:%M:%S").time())
                    if end <= start:
                        end += timedelta(days=1)
                    slots.append(
                        AvailabilitySlot(
                            start=start,
                            end=end,
                            court_count=1,
                            external_resource_id=court["id"],
                            external_schedule_id=f"{court['id']}@{date_str}T{open_slot.start_time}",
                            display_name=court["name"],
                            short_name=court["name"],
                            court_number=court["court_number"],
                            price=open_slot.price_cents / 100,
                            currency=DEFAULT_CURRENCY,
                        )
                    )
        return slots

    async def fetch_unified(
        self,
        facility_id: str,
        dates: list[str],
        search_string: str | None = None,
    ) -> FetchResult:
        """Local templates first, then the facility's external provider, else nothing."""
        facility = await db.get_facility(facility_id)
        if facility is None:
            return FetchResult(error="Facility not found")

        if await db.facility_has_local_templates(facility_id):
            slots = await self.fetch_local(facility_id, dates)
            return FetchResult(slots=slots, success=True, total_count=len(slots), source="local")

        if facility["data_provider_id"]:
            params = FetchParams(
                dates=dates,
                site_id=facility["external_provider_id"],
                search_string=search_string,
            )
            return await self.fetch_availability(facility["data_provider_id"], params)

        return FetchResult(success=True)
