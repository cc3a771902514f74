"""FastAPI dependency injection wiring.

Shared resources (the upstream ``httpx.AsyncClient`` and the provider
registry) are created once in the application lifespan and stored on
``app.state``; request handlers receive them through ``Depends``.
"""

from __future__ import annotations

import httpx
from fastapi import Request

from completion_gateway.domain.entities import ProviderId
from completion_gateway.infrastructure.anthropic_adapter import AnthropicAdapter
from completion_gateway.infrastructure.config import Settings
from completion_gateway.infrastructure.gemini_adapter import GeminiAdapter
from completion_gateway.infrastructure.http_support import GenerationDefaults
from completion_gateway.infrastructure.openai_adapter import OpenAIAdapter
from completion_gateway.infrastructure.openrouter_adapter import OpenRouterAdapter
from completion_gateway.services.dispatcher import ResponseDispatcher
from completion_gateway.services.provider_registry import ProviderRegistry


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(settings.request_timeout_seconds))


def build_registry(settings: Settings, client: httpx.AsyncClient) -> ProviderRegistry:
    """Construct one adapter per provider around the shared HTTP client."""
    defaults = GenerationDefaults(
        temperature=settings.default_temperature,
        max_tokens=settings.default_max_tokens,
    )
    return ProviderRegistry(
        {
            ProviderId.OPENAI: OpenAIAdapter(
                client,
                base_url=settings.openai_base_url,
                max_retries=settings.provider_max_retries,
                defaults=defaults,
            ),
            ProviderId.ANTHROPIC: AnthropicAdapter(
                client,
                base_url=settings.anthropic_base_url,
                api_version=settings.anthropic_version,
                defaults=defaults,
            ),
            ProviderId.GEMINI: GeminiAdapter(
                client,
                base_url=settings.gemini_base_url,
                defaults=defaults,
            ),
            ProviderId.OPENROUTER: OpenRouterAdapter(
                client,
                base_url=settings.openrouter_base_url,
                app_url=settings.openrouter_app_url,
                app_title=settings.openrouter_app_title,
                max_retries=settings.provider_max_retries,
                defaults=defaults,
            ),
        }
    )


def get_registry(request: Request) -> ProviderRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise RuntimeError("Provider registry not initialized")
    return registry


def get_dispatcher(request: Request) -> ResponseDispatcher:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise RuntimeError("Dispatcher not initialized")
    return dispatcher
