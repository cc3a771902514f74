"""Anthropic Messages API adapter — implements the ProviderAdapter port over httpx."""

from __future__ import annotations

import logging
import uuid
from typing import Any, AsyncIterator

import httpx

from completion_gateway.domain.entities import (
    CompletionRequest,
    CompletionResult,
    Message,
    ModelInfo,
    ProviderId,
    Role,
    StreamChunk,
    TokenUsage,
)
from completion_gateway.domain.exceptions import ProviderError
from completion_gateway.domain.value_objects import Credential
from completion_gateway.infrastructure.http_support import (
    GenerationDefaults,
    get_json,
    post_json,
    stream_sse_json,
)
from completion_gateway.services.usage import calculate_cost, price_for

logger = logging.getLogger(__name__)

_PROVIDER = "Anthropic"
_CONTEXT_LENGTH = 200_000


class AnthropicAdapter:
    """Concrete ``ProviderAdapter`` backed by ``POST /v1/messages``."""

    provider_id = ProviderId.ANTHROPIC

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str = "https://api.anthropic.com",
        api_version: str = "2023-06-01",
        defaults: GenerationDefaults | None = None,
    ) -> None:
        self._client = client
        self._url = f"{base_url.rstrip('/')}/v1/messages"
        self._models_url = f"{base_url.rstrip('/')}/v1/models"
        self._api_version = api_version
        self._defaults = defaults or GenerationDefaults()

    async def complete(
        self, request: CompletionRequest, credential: Credential
    ) -> CompletionResult:
        data = await post_json(
            self._client,
            _PROVIDER,
            self._url,
            headers=self._headers(credential),
            payload=self._build_payload(request, stream=False),
        )

        content = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        raw_usage = data.get("usage") or {}
        usage = TokenUsage(
            input=raw_usage.get("input_tokens", 0),
            output=raw_usage.get("output_tokens", 0),
        )
        return CompletionResult(
            id=data.get("id") or str(uuid.uuid4()),
            content=content,
            model=request.model,
            provider=self.provider_id,
            usage=usage,
            cost=calculate_cost(usage, request.model),
            finish_reason=data.get("stop_reason"),
        )

    async def stream(
        self, request: CompletionRequest, credential: Credential
    ) -> AsyncIterator[StreamChunk]:
        message_id = str(uuid.uuid4())
        events = stream_sse_json(
            self._client,
            _PROVIDER,
            self._url,
            headers=self._headers(credential),
            payload=self._build_payload(request, stream=True),
        )
        try:
            async for event in events:
                kind = event.get("type")
                if kind == "message_start":
                    message_id = event.get("message", {}).get("id") or message_id
                elif kind == "content_block_delta":
                    text = event.get("delta", {}).get("text")
                    if text:
                        yield StreamChunk(id=message_id, content=text, done=False)
                elif kind == "message_stop":
                    yield StreamChunk(id=message_id, content="", done=True)
                    return
                elif kind == "error":
                    error = event.get("error", {})
                    logger.warning("%s stream error event: %s", _PROVIDER, error)
                    raise ProviderError(
                        f"{_PROVIDER} stream error: {error.get('message', 'unknown error')}",
                        provider=self.provider_id.value,
                        status_code=529 if error.get("type") == "overloaded_error" else 502,
                    )
        finally:
            await events.aclose()

    async def list_models(self, credential: Credential) -> list[ModelInfo]:
        """Models the key can use, from ``GET /v1/models``."""
        data = await get_json(
            self._client,
            _PROVIDER,
            self._models_url,
            headers=self._headers(credential),
            params={"limit": 1000},
        )
        models = []
        for entry in data.get("data") or []:
            model_id = entry.get("id")
            if not model_id:
                continue
            input_cost, output_cost = price_for(model_id)
            models.append(
                ModelInfo(
                    id=model_id,
                    name=entry.get("display_name") or model_id,
                    provider=self.provider_id,
                    context_length=_CONTEXT_LENGTH,
                    input_cost=input_cost,
                    output_cost=output_cost,
                )
            )
        return models

    # ── Helpers ─────────────────────────────────────────────────────────

    def _headers(self, credential: Credential) -> dict[str, str]:
        return {
            "x-api-key": credential.value,
            "anthropic-version": self._api_version,
            "content-type": "application/json",
        }

    def _build_payload(self, request: CompletionRequest, *, stream: bool) -> dict[str, Any]:
        temperature = request.temperature
        if temperature is None:
            temperature = self._defaults.temperature
        payload: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens or self._defaults.max_tokens,
            "temperature": temperature,
            "messages": [
                _to_anthropic_message(m) for m in request.messages if m.role is not Role.SYSTEM
            ],
            "stream": stream,
        }
        system = "\n\n".join(
            m.content for m in request.messages if m.role is Role.SYSTEM and m.content
        )
        if system:
            payload["system"] = system
        return payload


def _to_anthropic_message(message: Message) -> dict[str, Any]:
    images = [a for a in message.attachments if a.is_image]
    if not images:
        return {"role": message.role.value, "content": message.content}

    parts: list[dict[str, Any]] = [
        {
            "type": "image",
            "source": {"type": "base64", "media_type": a.mime_type, "data": a.data},
        }
        for a in images
    ]
    if message.content:
        parts.append({"type": "text", "text": message.content})
    return {"role": message.role.value, "content": parts}
