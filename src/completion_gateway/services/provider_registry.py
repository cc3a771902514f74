"""Provider registry — fixed, read-only mapping from provider id to adapter.

Built once at application start and injected into the request handlers.
There is no registration API; the set of adapters does not
change while requests are in flight.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Mapping

from completion_gateway.domain.entities import ProviderId
from completion_gateway.domain.exceptions import (
    RegistryConfigurationError,
    UnknownProviderError,
)
from completion_gateway.domain.ports.provider_adapter import ProviderAdapter

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Total lookup table over :class:`ProviderId`."""

    def __init__(self, adapters: Mapping[ProviderId, ProviderAdapter]) -> None:
        missing = [p.value for p in ProviderId if adapters.get(p) is None]
        if missing:
            raise RegistryConfigurationError(
                f"No adapter configured for provider(s): {', '.join(missing)}"
            )
        self._adapters: Mapping[ProviderId, ProviderAdapter] = MappingProxyType(
            {p: adapters[p] for p in ProviderId}
        )
        logger.info("Provider registry ready: %s", ", ".join(self.provider_ids()))

    def get(self, provider_id: ProviderId | str) -> ProviderAdapter | None:
        """Return the adapter for *provider_id*, or ``None`` if there is none."""
        try:
            key = ProviderId(provider_id)
        except ValueError:
            return None
        return self._adapters.get(key)

    def lookup(self, provider_id: ProviderId | str) -> ProviderAdapter:
        """Return the adapter for *provider_id* or raise :class:`UnknownProviderError`."""
        adapter = self.get(provider_id)
        if adapter is None:
            name = provider_id.value if isinstance(provider_id, ProviderId) else provider_id
            raise UnknownProviderError(f"Provider {name} not supported yet")
        return adapter

    def provider_ids(self) -> list[str]:
        return [p.value for p in self._adapters]

    def __contains__(self, provider_id: object) -> bool:
        return isinstance(provider_id, (str, ProviderId)) and self.get(provider_id) is not None

    def __len__(self) -> int:
        return len(self._adapters)
