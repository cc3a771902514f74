"""Static model catalog used for provider discovery.

These are the models each backend is known to serve.  Live discovery asks
the backend itself and falls back to this list when it cannot.  Neither is
consulted when dispatching: any model string is forwarded as-is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from completion_gateway.domain.entities import ModelInfo, ProviderId
from completion_gateway.domain.exceptions import ProviderError
from completion_gateway.domain.ports.provider_adapter import ProviderAdapter
from completion_gateway.domain.value_objects import Credential

logger = logging.getLogger(__name__)

LIVE = "live"
CATALOG = "catalog"

_CATALOG: dict[ProviderId, tuple[ModelInfo, ...]] = {
    ProviderId.OPENAI: (
        ModelInfo("gpt-4o", "GPT-4o", ProviderId.OPENAI, 128_000, 0.0025, 0.01),
        ModelInfo("gpt-4o-mini", "GPT-4o Mini", ProviderId.OPENAI, 128_000, 0.00015, 0.0006),
        ModelInfo("gpt-4-turbo", "GPT-4 Turbo", ProviderId.OPENAI, 128_000, 0.01, 0.03),
        ModelInfo("gpt-3.5-turbo", "GPT-3.5 Turbo", ProviderId.OPENAI, 16_385, 0.0005, 0.0015),
    ),
    ProviderId.ANTHROPIC: (
        ModelInfo(
            "claude-3-5-sonnet-20241022",
            "Claude 3.5 Sonnet (Latest)",
            ProviderId.ANTHROPIC,
            200_000,
            0.003,
            0.015,
        ),
        ModelInfo(
            "claude-3-5-haiku-20241022", "Claude 3.5 Haiku", ProviderId.ANTHROPIC, 200_000, 0.001, 0.005
        ),
        ModelInfo(
            "claude-3-opus-20240229", "Claude 3 Opus", ProviderId.ANTHROPIC, 200_000, 0.015, 0.075
        ),
        ModelInfo(
            "claude-3-haiku-20240307", "Claude 3 Haiku", ProviderId.ANTHROPIC, 200_000, 0.00025, 0.00125
        ),
    ),
    ProviderId.GEMINI: (
        ModelInfo("gemini-1.5-pro-latest", "Gemini 1.5 Pro", ProviderId.GEMINI, 2_097_152, 0.00125, 0.005),
        ModelInfo("gemini-1.5-flash", "Gemini 1.5 Flash", ProviderId.GEMINI, 1_048_576, 0.000075, 0.0003),
        ModelInfo(
            "gemini-1.5-flash-8b", "Gemini 1.5 Flash 8B", ProviderId.GEMINI, 1_048_576, 0.0000375, 0.00015
        ),
        ModelInfo("gemini-pro", "Gemini Pro", ProviderId.GEMINI, 32_768, 0.0005, 0.0015),
    ),
    ProviderId.OPENROUTER: (
        ModelInfo(
            "meta-llama/llama-3.2-3b-instruct:free",
            "Llama 3.2 3B (FREE)",
            ProviderId.OPENROUTER,
            131_072,
        ),
        ModelInfo("google/gemma-2-9b-it:free", "Gemma 2 9B (FREE)", ProviderId.OPENROUTER, 8_192),
        ModelInfo("openai/gpt-4o-mini", "GPT-4o Mini", ProviderId.OPENROUTER, 128_000, 0.00015, 0.0006),
        ModelInfo(
            "anthropic/claude-3-haiku", "Claude 3 Haiku", ProviderId.OPENROUTER, 200_000, 0.00025, 0.00125
        ),
    ),
}


def models_for(provider_id: ProviderId) -> list[ModelInfo]:
    """Return the known models of *provider_id*, free models first."""
    models = list(_CATALOG.get(provider_id, ()))
    models.sort(key=lambda m: (not m.is_free, m.name))
    return models


def humanize_model_id(model_id: str) -> str:
    """Readable label for a bare model id: ``gpt-4o-mini`` -> ``Gpt 4o Mini``."""
    words = model_id.removeprefix("models/").replace("-", " ").split()
    return " ".join(w[:1].upper() + w[1:] for w in words)


@dataclass(frozen=True, slots=True)
class ModelListing:
    """Models of one provider and where they came from (``live`` or ``catalog``)."""

    provider: ProviderId
    source: str
    models: list[ModelInfo]


async def discover_models(
    adapter: ProviderAdapter, provider_id: ProviderId, credential: Credential
) -> ModelListing:
    """Ask *adapter* for the models *credential* can use.

    An upstream failure or an empty answer yields the static catalog
    instead, so callers always get a usable list.
    """
    try:
        models = await adapter.list_models(credential)
    except ProviderError as exc:
        logger.warning(
            "Live model listing failed for %s (upstream status %s), using catalog: %s",
            provider_id.value,
            exc.upstream_status,
            exc.message,
        )
        return ModelListing(provider_id, CATALOG, models_for(provider_id))

    if not models:
        logger.info("%s listed no models, using catalog", provider_id.value)
        return ModelListing(provider_id, CATALOG, models_for(provider_id))

    models = sorted(models, key=lambda m: (not m.is_free, m.name))
    return ModelListing(provider_id, LIVE, models)
