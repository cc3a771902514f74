"""OpenRouter adapter — OpenAI-compatible API behind a different base URL."""

from __future__ import annotations

from typing import Any

import httpx

from completion_gateway.domain.entities import ModelInfo, ProviderId
from completion_gateway.infrastructure.http_support import GenerationDefaults
from completion_gateway.infrastructure.openai_adapter import OpenAIAdapter

_DEFAULT_CONTEXT_LENGTH = 4096


class OpenRouterAdapter(OpenAIAdapter):
    """``ProviderAdapter`` for OpenRouter, which speaks the OpenAI wire format.

    Its ``/models`` listing carries pricing (USD per token, as strings) and a
    display name as extra fields on each entry.
    """

    provider_id = ProviderId.OPENROUTER
    display_name = "OpenRouter"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        base_url: str = "https://openrouter.ai/api/v1",
        app_url: str | None = None,
        app_title: str | None = None,
        max_retries: int = 2,
        defaults: GenerationDefaults | None = None,
    ) -> None:
        headers: dict[str, str] = {}
        if app_url:
            headers["HTTP-Referer"] = app_url
        if app_title:
            headers["X-Title"] = app_title
        super().__init__(
            http_client,
            base_url=base_url,
            max_retries=max_retries,
            defaults=defaults,
            default_headers=headers or None,
        )

    def _is_chat_model(self, model_id: str) -> bool:
        return True

    def _to_model_info(self, model: Any) -> ModelInfo:
        extra = model.model_extra or {}
        pricing = extra.get("pricing") or {}
        free = model.id.endswith(":free") or _per_1k(pricing.get("prompt")) == 0
        name = extra.get("name") or model.id
        if free and "free" not in name.lower():
            name = f"{name} (FREE)"
        return ModelInfo(
            id=model.id,
            name=name,
            provider=self.provider_id,
            context_length=extra.get("context_length") or _DEFAULT_CONTEXT_LENGTH,
            input_cost=0.0 if free else _per_1k(pricing.get("prompt")),
            output_cost=0.0 if free else _per_1k(pricing.get("completion")),
        )


def _per_1k(per_token: str | float | None) -> float:
    try:
        return float(per_token or 0) * 1000
    except (TypeError, ValueError):
        return 0.0
