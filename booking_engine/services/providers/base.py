"""
Base class for external availability providers.

A provider adapter knows how to query one external booking system and
translate its response into ``AvailabilitySlot`` objects.  Adapters
degrade gracefully: any request failure is logged and yields an empty
list rather than an exception.
"""

from __future__ import annotations

import abc
import logging
from datetime import datetime
from typing import Any

import httpx

from booking_engine.config import PROVIDER_REQUEST_TIMEOUT
from booking_engine.errors import ProviderRequestError
from booking_engine.models import AvailabilitySlot, FetchParams, ProviderConfig

logger = logging.getLogger(__name__)

_DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


class BaseProviderAdapter(abc.ABC):
    """Shared plumbing for provider adapters: config access, HTTP, deep links."""

    provider_type: str = ""

    def __init__(self, config: ProviderConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._client = client
        self._owns_client = client is None

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @abc.abstractmethod
    async def fetch(self, params: FetchParams) -> list[AvailabilitySlot]:
        """Fetch availability for the given dates; never raises for request failures."""

    # ── Config ────────────────────────────────────────────────────────

    def get_config_value(self, key: str, default: Any = None) -> Any:
        value = self.config.api_config.get(key)
        return default if value is None else value

    # ── HTTP ──────────────────────────────────────────────────────────

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True)
            self._owns_client = True
        return self._client

    async def make_request(
        self,
        url: str,
        *,
        method: str = "GET",
        body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """
        Perform a JSON request and return the decoded body.

        Raises ProviderRequestError on timeout, transport failure, a
        non-2xx status or a body that is not JSON.
        """
        client = self._get_client()
        merged = {**_DEFAULT_HEADERS, **(headers or {})}
        effective_timeout = timeout if timeout is not None else PROVIDER_REQUEST_TIMEOUT
        logger.debug("%s %s (%s)", method, url, self.provider_type)
        try:
            resp = await client.request(
                method,
                url,
                json=body if method.upper() != "GET" else None,
                headers=merged,
                timeout=effective_timeout,
            )
        except httpx.TimeoutException as exc:
            raise ProviderRequestError(f"Request timed out after {effective_timeout}s") from exc
        except httpx.HTTPError as exc:
            raise ProviderRequestError(f"Request failed: {exc}") from exc

        if not resp.is_success:
            raise ProviderRequestError(
                f"HTTP {resp.status_code}: {resp.reason_phrase}", status_code=resp.status_code
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise ProviderRequestError("Response body is not valid JSON") from exc

    # ── Deep links ────────────────────────────────────────────────────

    def format_link_datetime(self, value: datetime) -> str:
        return value.isoformat()

    def build_action_link(self, slot: AvailabilitySlot) -> str | None:
        """Fill the config's link template for a slot; None without template or schedule id."""
        template = self.config.link_template
        if not template or not slot.external_schedule_id:
            return None
        end = slot.end or slot.start
        return (
            template.replace("{facilityId}", slot.external_resource_id or "")
            .replace("{startDateTime}", self.format_link_datetime(slot.start))
            .replace("{endDateTime}", self.format_link_datetime(end))
            .replace("{facilityScheduleId}", slot.external_schedule_id)
        )
