"""
Loisir Montreal adapter – queries the IC3 public search API.

Each search result is one bookable court for one time range, so every
slot carries ``court_count=1``; merging happens in the aggregator.
"""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timezone
from typing import Any

from booking_engine.errors import ProviderRequestError
from booking_engine.models import AvailabilitySlot, FetchParams
from booking_engine.services.availability.parser import parse_datetime
from booking_engine.services.providers.base import BaseProviderAdapter
from booking_engine.services.providers.loisir_montreal.config import (
    CURRENCY,
    DATE_SUFFIX,
    DEFAULT_HEADERS,
    DEFAULT_LIMIT,
    DEFAULT_SEARCH_PATH,
    PROVIDER_TYPE,
    REQUEST_TIMEOUT,
    SORT_COLUMN,
)

logger = logging.getLogger(__name__)

_NAME_PREFIX_RE = re.compile(r"^#a", re.IGNORECASE)
_COURT_NUMBER_RE = re.compile(r"(?:terrain|court)\s*(?:\w+\s+)?(\d+)", re.IGNORECASE)
_TRAILING_NUMBER_RE = re.compile(r"(\d+)\s*$")


def clean_name(name: str | None) -> str | None:
    """Strip the internal '#a' prefix: '#aTennis - Terrain 2' -> 'Tennis - Terrain 2'."""
    if not name:
        return None
    return _NAME_PREFIX_RE.sub("", name).strip()


def extract_court_number(name: str | None) -> int | None:
    """'Terrain 2' -> 2, 'Terrain pickleball 1' -> 1, 'Court 3' -> 3."""
    if not name:
        return None
    match = _COURT_NUMBER_RE.search(name) or _TRAILING_NUMBER_RE.search(name)
    return int(match.group(1)) if match else None


class LoisirMontrealAdapter(BaseProviderAdapter):
    provider_type = PROVIDER_TYPE

    def build_search_body(self, params: FetchParams) -> dict[str, Any]:
        dates = [d if "T" in d else f"{d}{DATE_SUFFIX}" for d in params.dates]
        return {
            "dates": dates,
            "siteId": params.site_id,
            "startTime": params.start_time,
            "endTime": params.end_time,
            "boroughIds": None,
            "facilityTypeIds": None,
            "searchString": params.search_string,
            "limit": params.limit if params.limit is not None else self.get_config_value("defaultLimit", DEFAULT_LIMIT),
            "offset": params.offset or 0,
            "sortColumn": SORT_COLUMN,
            "isSortOrderAsc": True,
        }

    async def fetch(self, params: FetchParams) -> list[AvailabilitySlot]:
        search_path = self.get_config_value("searchPath", DEFAULT_SEARCH_PATH)
        # Cache-busting timestamp, as the site's own client sends.
        url = f"{self.config.base_url}{search_path}?_={int(time.time() * 1000)}"

        try:
            payload = await self.make_request(
                url,
                method="POST",
                body=self.build_search_body(params),
                headers=DEFAULT_HEADERS,
                timeout=REQUEST_TIMEOUT,
            )
        except ProviderRequestError as exc:
            logger.error("Loisir Montreal availability fetch failed (provider %s): %s", self.config.id, exc)
            return []

        return self.parse_response(payload)

    def parse_response(self, payload: Any) -> list[AvailabilitySlot]:
        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            return []

        slots = []
        for item in results:
            if not isinstance(item, dict):
                continue
            try:
                slot = self._parse_item(item)
            except (TypeError, ValueError, AttributeError):
                logger.warning("Skipping malformed Loisir Montreal result: %r", item, exc_info=True)
                continue
            if slot is not None:
                slots.append(slot.model_copy(update={"action_link": self.build_action_link(slot)}))
        return slots

    def _parse_item(self, item: dict[str, Any]) -> AvailabilitySlot | None:
        if not item.get("startDateTime") or not item.get("endDateTime") or not item.get("facilityScheduleId"):
            return None
        can_reserve = item.get("canReserve")
        if isinstance(can_reserve, dict) and not can_reserve.get("value"):
            return None

        start = parse_datetime(item["startDateTime"])
        end = parse_datetime(item["endDateTime"])
        if start is None or end is None:
            return None

        facility = item.get("facility") or {}
        site = facility.get("site") or {}
        schedule_id = str(item["facilityScheduleId"])
        short_name = clean_name(facility.get("name"))
        site_name = clean_name(site.get("name"))
        price = item.get("totalPrice")

        return AvailabilitySlot(
            start=start,
            end=end,
            court_count=1,
            external_resource_id=str(facility["id"]) if facility.get("id") else schedule_id,
            external_schedule_id=schedule_id,
            display_name=f"{site_name} - {short_name}" if site_name else short_name,
            short_name=short_name,
            court_number=extract_court_number(facility.get("name")),
            price=price if isinstance(price, (int, float)) and not isinstance(price, bool) else None,
            currency=CURRENCY,
        )

    def format_link_datetime(self, value: datetime) -> str:
        """UTC, second precision, 'Z' suffix: 2024-01-20T09:00:00Z."""
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.replace(microsecond=0, tzinfo=None).isoformat() + "Z"
