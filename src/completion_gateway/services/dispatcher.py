"""Response dispatcher — the single entry point for completion requests.

Normalizes the body, resolves the caller's credential and the provider
adapter, then either awaits a one-shot completion or hands back a
:class:`StreamRelay` ready to be attached to an output channel.  All
request errors are raised before any adapter I/O happens.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Union

from completion_gateway.domain.entities import CompletionRequest, CompletionResult
from completion_gateway.domain.exceptions import (
    GatewayError,
    InternalError,
    MissingCredentialError,
    UnknownProviderError,
)
from completion_gateway.domain.ports.provider_adapter import ProviderAdapter
from completion_gateway.domain.value_objects import Credential
from completion_gateway.services.provider_registry import ProviderRegistry
from completion_gateway.services.request_normalizer import normalize
from completion_gateway.services.stream_relay import StreamRelay

logger = logging.getLogger(__name__)

DispatchOutcome = Union[CompletionResult, StreamRelay]


class ResponseDispatcher:
    """Routes a completion request to the one-shot or the streaming path.

    Parameters
    ----------
    registry:
        Read-only provider registry built at startup.
    expose_errors:
        Include the text of unexpected exceptions in caller-visible errors
        (development only).
    """

    def __init__(self, registry: ProviderRegistry, *, expose_errors: bool = False) -> None:
        self._registry = registry
        self._expose_errors = expose_errors

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    async def submit(self, body: Any, headers: Mapping[str, str]) -> DispatchOutcome:
        """Handle a raw decoded request body plus the caller's headers."""
        request = normalize(body)
        credential = Credential.from_headers(headers, request.provider_id)
        adapter = self._registry.get(request.provider_id)
        return await self.dispatch(request, adapter, credential)

    async def dispatch(
        self,
        request: CompletionRequest,
        adapter: ProviderAdapter | None,
        credential: Credential | None,
    ) -> DispatchOutcome:
        """Invoke *adapter* for a validated *request*."""
        provider = request.provider_id.value

        if credential is None or not credential.value:
            raise MissingCredentialError(f"API key required for {provider}")
        if adapter is None:
            raise UnknownProviderError(f"Provider {provider} not supported yet")

        logger.info(
            "Dispatching %s request to %s (model=%s, messages=%d, credential=%s)",
            "streaming" if request.stream else "one-shot",
            provider,
            request.model,
            len(request.messages),
            credential.masked,
        )

        if request.stream:
            return StreamRelay(
                adapter.stream(request, credential),
                provider=provider,
                expose_errors=self._expose_errors,
            )
        return await self._complete(request, adapter, credential)

    async def _complete(
        self,
        request: CompletionRequest,
        adapter: ProviderAdapter,
        credential: Credential,
    ) -> CompletionResult:
        try:
            return await adapter.complete(request, credential)
        except GatewayError:
            raise
        except Exception as exc:
            logger.exception("Unexpected failure in %s adapter", request.provider_id.value)
            message = str(exc) if self._expose_errors and str(exc) else "Internal server error"
            raise InternalError(message) from exc
