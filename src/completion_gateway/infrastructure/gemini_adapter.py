"""Google Gemini adapter — implements the ProviderAdapter port over httpx."""

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
from completion_gateway.services.model_catalog import humanize_model_id
from completion_gateway.services.usage import calculate_cost, estimate_usage, price_for

logger = logging.getLogger(__name__)

_PROVIDER = "Gemini"
_DEFAULT_CONTEXT_LENGTH = 32_768


class GeminiAdapter:
    """Concrete ``ProviderAdapter`` backed by the Generative Language API."""

    provider_id = ProviderId.GEMINI

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str = "https://generativelanguage.googleapis.com",
        defaults: GenerationDefaults | None = None,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._defaults = defaults or GenerationDefaults()

    async def complete(
        self, request: CompletionRequest, credential: Credential
    ) -> CompletionResult:
        data = await post_json(
            self._client,
            _PROVIDER,
            f"{self._model_url(request.model)}:generateContent",
            headers=self._headers(credential),
            payload=self._build_payload(request),
        )

        candidates = data.get("candidates") or []
        if not candidates:
            logger.warning(
                "%s returned no candidates (promptFeedback=%s)",
                _PROVIDER,
                data.get("promptFeedback"),
            )
            raise ProviderError(
                "No response from Gemini API",
                provider=self.provider_id.value,
                status_code=502,
            )

        candidate = candidates[0]
        content = _candidate_text(candidate)
        usage = _usage_from(data.get("usageMetadata"))
        if usage is None:
            prompt = " ".join(m.content for m in request.messages)
            usage = estimate_usage(prompt, content)

        return CompletionResult(
            id=data.get("responseId") or str(uuid.uuid4()),
            content=content,
            model=request.model,
            provider=self.provider_id,
            usage=usage,
            cost=calculate_cost(usage, request.model),
            finish_reason=candidate.get("finishReason", "stop"),
        )

    async def stream(
        self, request: CompletionRequest, credential: Credential
    ) -> AsyncIterator[StreamChunk]:
        events = stream_sse_json(
            self._client,
            _PROVIDER,
            f"{self._model_url(request.model)}:streamGenerateContent?alt=sse",
            headers=self._headers(credential),
            payload=self._build_payload(request),
        )
        try:
            async for event in events:
                candidates = event.get("candidates") or []
                if not candidates:
                    continue
                chunk_id = event.get("responseId") or str(uuid.uuid4())
                candidate = candidates[0]
                text = _candidate_text(candidate)
                if text:
                    yield StreamChunk(id=chunk_id, content=text, done=False)
                if candidate.get("finishReason"):
                    yield StreamChunk(id=chunk_id, content="", done=True)
                    return
        finally:
            await events.aclose()

    async def list_models(self, credential: Credential) -> list[ModelInfo]:
        """Models that support ``generateContent``, from ``GET /v1beta/models``."""
        data = await get_json(
            self._client,
            _PROVIDER,
            f"{self._base_url}/v1beta/models",
            headers=self._headers(credential),
            params={"pageSize": 1000},
        )
        models = []
        for entry in data.get("models") or []:
            if "generateContent" not in (entry.get("supportedGenerationMethods") or []):
                continue
            model_id = entry.get("name", "").removeprefix("models/")
            if not model_id:
                continue
            input_cost, output_cost = price_for(model_id)
            models.append(
                ModelInfo(
                    id=model_id,
                    name=entry.get("displayName") or humanize_model_id(model_id),
                    provider=self.provider_id,
                    context_length=entry.get("inputTokenLimit") or _DEFAULT_CONTEXT_LENGTH,
                    input_cost=input_cost,
                    output_cost=output_cost,
                )
            )
        return models

    # ── Helpers ─────────────────────────────────────────────────────────

    def _model_url(self, model: str) -> str:
        name = model if model.startswith("models/") else f"models/{model}"
        return f"{self._base_url}/v1beta/{name}"

    def _headers(self, credential: Credential) -> dict[str, str]:
        return {"x-goog-api-key": credential.value, "content-type": "application/json"}

    def _build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        temperature = request.temperature
        if temperature is None:
            temperature = self._defaults.temperature
        payload: dict[str, Any] = {
            "contents": [
                _to_gemini_content(m) for m in request.messages if m.role is not Role.SYSTEM
            ],
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": request.max_tokens or self._defaults.max_tokens,
            },
        }
        system = [m.content for m in request.messages if m.role is Role.SYSTEM and m.content]
        if system:
            payload["systemInstruction"] = {"parts": [{"text": s} for s in system]}
        return payload


def _to_gemini_content(message: Message) -> dict[str, Any]:
    parts: list[dict[str, Any]] = []
    if message.content:
        parts.append({"text": message.content})
    for attachment in message.attachments:
        if attachment.is_image:
            parts.append(
                {"inlineData": {"mimeType": attachment.mime_type, "data": attachment.data}}
            )
    return {
        "role": "model" if message.role is Role.ASSISTANT else "user",
        "parts": parts or [{"text": ""}],
    }


def _candidate_text(candidate: dict[str, Any]) -> str:
    parts = (candidate.get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts)


def _usage_from(metadata: dict[str, Any] | None) -> TokenUsage | None:
    if not metadata:
        return None
    return TokenUsage(
        input=metadata.get("promptTokenCount", 0),
        output=metadata.get("candidatesTokenCount", 0),
    )
