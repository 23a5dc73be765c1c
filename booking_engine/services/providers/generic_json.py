"""
Generic JSON adapter – for providers without a dedicated integration.

Fetches ``base_url + path`` and feeds the body through the heuristic
availability parser.  Supported ``api_config`` keys:

* ``path`` – appended to the base URL (default ``""``)
* ``method`` – HTTP method (default ``GET``)
* ``date_param`` – query parameter carrying the date, one request per date
* ``data_key`` – dotted path to the availability payload inside the body
* ``slot_duration_minutes`` – used to derive slot ends (default 60)
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any
from urllib.parse import urlencode

from booking_engine.errors import ProviderRequestError
from booking_engine.models import AvailabilitySlot, FetchParams
from booking_engine.services.availability.parser import parse_availability
from booking_engine.services.providers.base import BaseProviderAdapter

logger = logging.getLogger(__name__)


def _dig(payload: Any, dotted: str | None) -> Any:
    if not dotted:
        return payload
    for part in dotted.split("."):
        if not isinstance(payload, dict):
            return None
        payload = payload.get(part)
    return payload


class GenericJsonAdapter(BaseProviderAdapter):
    provider_type = "generic_json"

    def _urls(self, params: FetchParams) -> list[str]:
        base = f"{self.config.base_url}{self.get_config_value('path', '')}"
        date_param = self.get_config_value("date_param")
        if not date_param:
            return [base]
        sep = "&" if "?" in base else "?"
        return [f"{base}{sep}{urlencode({date_param: d})}" for d in params.dates]

    async def _fetch_one(self, url: str) -> list[AvailabilitySlot]:
        try:
            body = await self.make_request(url, method=self.get_config_value("method", "GET"))
        except ProviderRequestError as exc:
            logger.error("Availability fetch failed for provider %s (%s): %s", self.config.id, url, exc)
            return []

        parsed = parse_availability(_dig(body, self.get_config_value("data_key")))
        if not parsed.success:
            logger.warning("Provider %s returned unparseable availability: %s", self.config.id, parsed.error)
            return []
        return parsed.slots

    async def fetch(self, params: FetchParams) -> list[AvailabilitySlot]:
        batches = await asyncio.gather(*(self._fetch_one(url) for url in self._urls(params)))
        duration = timedelta(minutes=int(self.get_config_value("slot_duration_minutes", 60)))
        wanted = set(params.dates)

        slots = []
        for slot in (s for batch in batches for s in batch):
            if wanted and slot.start.date().isoformat() not in wanted:
                continue
            slot = slot.model_copy(update={"end": slot.end or slot.start + duration})
            slots.append(slot.model_copy(update={"action_link": self.build_action_link(slot)}))
        return slots
