"""Port: provider adapter — defined by the domain, implemented by infrastructure."""

from __future__ import annotations

from typing import AsyncIterator, Protocol

from completion_gateway.domain.entities import (
    CompletionRequest,
    CompletionResult,
    ModelInfo,
    StreamChunk,
)
from completion_gateway.domain.value_objects import Credential


class ProviderAdapter(Protocol):
    """Abstract contract every LLM backend must satisfy."""

    async def complete(
        self, request: CompletionRequest, credential: Credential
    ) -> CompletionResult:
        """Return the full answer, or raise ``ProviderError``."""
        ...

    def stream(
        self, request: CompletionRequest, credential: Credential
    ) -> AsyncIterator[StreamChunk]:
        """Lazily yield chunks as the backend produces them.

        No I/O happens until the first iteration.  A successful stream ends
        with a chunk whose ``done`` is true.
        """
        ...

    async def list_models(self, credential: Credential) -> list[ModelInfo]:
        """Ask the backend which models *credential* can use.

        Raises ``ProviderError`` when the backend cannot be reached or
        rejects the key.
        """
        ...
