"""OpenAI adapter — implements the ProviderAdapter port."""

from __future__ import annotations

import logging
import uuid
from typing import Any, AsyncIterator

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    OpenAIError,
    RateLimitError,
)

from completion_gateway.domain.entities import (
    CompletionRequest,
    CompletionResult,
    Message,
    ModelInfo,
    ProviderId,
    StreamChunk,
    TokenUsage,
)
from completion_gateway.domain.exceptions import ProviderError
from completion_gateway.domain.value_objects import Credential
from completion_gateway.infrastructure.http_support import (
    GenerationDefaults,
    friendly_status_message,
)
from completion_gateway.services.model_catalog import humanize_model_id
from completion_gateway.services.usage import calculate_cost, price_for

logger = logging.getLogger(__name__)

_DEFAULT_CONTEXT_LENGTH = 4096
_CONTEXT_LENGTHS: dict[str, int] = {
    "gpt-4o": 128_000,
    "gpt-4o-mini": 128_000,
    "gpt-4-turbo": 128_000,
    "gpt-4-turbo-preview": 128_000,
    "gpt-4": 8192,
    "gpt-3.5-turbo": 16_385,
    "gpt-3.5-turbo-16k": 16_385,
}


class OpenAIAdapter:
    """Concrete ``ProviderAdapter`` backed by the OpenAI chat-completions API.

    A lightweight ``AsyncOpenAI`` client is built per request around the
    shared ``httpx.AsyncClient`` so that each call uses the caller's own key.
    """

    provider_id = ProviderId.OPENAI
    display_name = "OpenAI"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        base_url: str | None = None,
        max_retries: int = 2,
        defaults: GenerationDefaults | None = None,
        default_headers: dict[str, str] | None = None,
    ) -> None:
        self._http = http_client
        self._base_url = base_url
        self._max_retries = max_retries
        self._defaults = defaults or GenerationDefaults()
        self._default_headers = default_headers

    # ── Port implementation ─────────────────────────────────────────────

    async def complete(
        self, request: CompletionRequest, credential: Credential
    ) -> CompletionResult:
        """Send the conversation and return the full completion."""
        client = self._client(credential)
        try:
            response = await client.chat.completions.create(
                **self._build_kwargs(request), stream=False
            )
        except OpenAIError as exc:
            raise self._translate(exc) from exc

        if not response.choices:
            raise ProviderError(
                f"{self.display_name} returned an empty response.",
                provider=self.provider_id.value,
                status_code=502,
            )

        choice = response.choices[0]
        usage = None
        if response.usage is not None:
            usage = TokenUsage(
                input=response.usage.prompt_tokens or 0,
                output=response.usage.completion_tokens or 0,
            )

        return CompletionResult(
            id=response.id,
            content=choice.message.content or "",
            model=request.model,
            provider=self.provider_id,
            usage=usage,
            cost=calculate_cost(usage, request.model) if usage else None,
            finish_reason=choice.finish_reason,
        )

    async def stream(
        self, request: CompletionRequest, credential: Credential
    ) -> AsyncIterator[StreamChunk]:
        """Yield content deltas, then a final ``done`` chunk."""
        client = self._client(credential)
        try:
            events = await client.chat.completions.create(
                **self._build_kwargs(request), stream=True
            )
        except OpenAIError as exc:
            raise self._translate(exc) from exc

        try:
            async for event in events:
                if not event.choices:
                    continue
                delta = event.choices[0].delta.content
                if delta:
                    yield StreamChunk(id=event.id, content=delta, done=False)
        except OpenAIError as exc:
            raise self._translate(exc) from exc
        finally:
            await events.close()

        yield StreamChunk(id=str(uuid.uuid4()), content="", done=True)

    async def list_models(self, credential: Credential) -> list[ModelInfo]:
        """Chat models visible to the caller's key, from ``GET /models``."""
        client = self._client(credential)
        models: list[ModelInfo] = []
        try:
            async for model in client.models.list():
                if self._is_chat_model(model.id):
                    models.append(self._to_model_info(model))
        except OpenAIError as exc:
            raise self._translate(exc) from exc
        return models

    # ── Helpers ─────────────────────────────────────────────────────────

    def _client(self, credential: Credential) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=credential.value,
            base_url=self._base_url,
            http_client=self._http,
            max_retries=self._max_retries,
            default_headers=self._default_headers,
        )

    def _is_chat_model(self, model_id: str) -> bool:
        return "gpt" in model_id and "instruct" not in model_id

    def _to_model_info(self, model: Any) -> ModelInfo:
        input_cost, output_cost = price_for(model.id)
        return ModelInfo(
            id=model.id,
            name=humanize_model_id(model.id),
            provider=self.provider_id,
            context_length=_CONTEXT_LENGTHS.get(model.id, _DEFAULT_CONTEXT_LENGTH),
            input_cost=input_cost,
            output_cost=output_cost,
        )

    def _build_kwargs(self, request: CompletionRequest) -> dict[str, Any]:
        temperature = request.temperature
        if temperature is None:
            temperature = self._defaults.temperature
        return {
            "model": request.model,
            "messages": [_to_openai_message(m) for m in request.messages],
            "temperature": temperature,
            "max_tokens": request.max_tokens or self._defaults.max_tokens,
        }

    def _translate(self, exc: OpenAIError) -> ProviderError:
        provider = self.provider_id.value
        name = self.display_name

        if isinstance(exc, AuthenticationError):
            return ProviderError(
                friendly_status_message(name, 401), provider=provider, status_code=401
            )
        if isinstance(exc, RateLimitError):
            logger.error("%s RateLimitError: %s", name, exc)
            return ProviderError(
                friendly_status_message(name, 429),
                provider=provider,
                status_code=429,
                retryable=True,
            )
        if isinstance(exc, APIStatusError):
            return ProviderError(
                friendly_status_message(name, exc.status_code, exc.message),
                provider=provider,
                status_code=exc.status_code,
                retryable=exc.status_code >= 500,
            )
        if isinstance(exc, APITimeoutError):
            return ProviderError(
                f"{name} request timed out.", provider=provider, status_code=504, retryable=True
            )
        if isinstance(exc, APIConnectionError):
            return ProviderError(
                f"Network error contacting {name}: {exc}", provider=provider, retryable=True
            )
        return ProviderError(f"{name} call failed: {exc}", provider=provider)


def _to_openai_message(message: Message) -> dict[str, Any]:
    """Map a message to the chat-completions shape; images become ``image_url`` parts."""
    images = [a for a in message.attachments if a.is_image]
    if not images:
        return {"role": message.role.value, "content": message.content}

    parts: list[dict[str, Any]] = []
    if message.content:
        parts.append({"type": "text", "text": message.content})
    for attachment in images:
        parts.append(
            {
                "type": "image_url",
                "image_url": {"url": f"data:{attachment.mime_type};base64,{attachment.data}"},
            }
        )
    return {"role": message.role.value, "content": parts}
