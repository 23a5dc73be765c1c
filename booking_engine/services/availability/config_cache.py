"""
In-memory cache of provider configurations.

Each entry lives for ``ttl`` seconds on a monotonic clock.  Admin
updates must call ``invalidate`` so the next read goes to the store.
Missing configurations are not cached.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from booking_engine import db
from booking_engine.config import PROVIDER_CONFIG_TTL
from booking_engine.models import ProviderConfig

logger = logging.getLogger(__name__)

ConfigLoader = Callable[[str], Awaitable[ProviderConfig | None]]


@dataclass
class _Entry:
    config: ProviderConfig
    loaded_at: float


class ProviderConfigCache:
    def __init__(
        self,
        loader: ConfigLoader | None = None,
        ttl: float = PROVIDER_CONFIG_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader or db.get_data_provider
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    async def get(self, provider_id: str) -> ProviderConfig | None:
        entry = self._entries.get(provider_id)
        if entry is not None and self._clock() - entry.loaded_at < self._ttl:
            return entry.config

        config = await self._loader(provider_id)
        if config is None:
            self._entries.pop(provider_id, None)
            return None
        self._entries[provider_id] = _Entry(config=config, loaded_at=self._clock())
        logger.debug("Loaded provider config %s (%s)", provider_id, config.provider_type)
        return config

    def invalidate(self, provider_id: str) -> None:
        self._entries.pop(provider_id, None)

    def invalidate_all(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
