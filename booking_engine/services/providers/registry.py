"""
Provider registry – maps a provider type string to an adapter factory.

The default registry is populated with the built-in adapters at import
time; additional adapters can be registered at startup.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import httpx

from booking_engine.errors import UnknownProviderError
from booking_engine.models import ProviderConfig
from booking_engine.services.providers.base import BaseProviderAdapter
from booking_engine.services.providers.generic_json import GenericJsonAdapter
from booking_engine.services.providers.loisir_montreal.adapter import LoisirMontrealAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[..., BaseProviderAdapter]


class ProviderRegistry:
    """Registry of provider adapter factories keyed by provider type."""

    def __init__(self) -> None:
        self._factories: dict[str, AdapterFactory] = {}

    def register(self, provider_type: str, factory: AdapterFactory) -> None:
        if provider_type in self._factories:
            logger.warning("Replacing provider adapter for type %r", provider_type)
        self._factories[provider_type] = factory

    def is_registered(self, provider_type: str) -> bool:
        return provider_type in self._factories

    def list_types(self) -> list[str]:
        return sorted(self._factories)

    def get_adapter(
        self,
        config: ProviderConfig,
        client: httpx.AsyncClient | None = None,
    ) -> BaseProviderAdapter:
        """Instantiate the adapter for ``config.provider_type``."""
        factory = self._factories.get(config.provider_type)
        if factory is None:
            raise UnknownProviderError(config.provider_type)
        return factory(config, client=client)


def build_default_registry() -> ProviderRegistry:
    reg = ProviderRegistry()
    reg.register(LoisirMontrealAdapter.provider_type, LoisirMontrealAdapter)
    reg.register(GenericJsonAdapter.provider_type, GenericJsonAdapter)
    return reg


# ── Singleton instance ────────────────────────────────────────────────────
provider_registry = build_default_registry()
