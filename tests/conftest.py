"""
Shared pytest fixtures and fakes for the completion gateway test-suite.

``FakeAdapter`` stands in for a real provider: it replays a scripted list
of chunks, can fail part-way through, and records how it was used.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient

from completion_gateway.domain.entities import (
    CompletionRequest,
    CompletionResult,
    ModelInfo,
    ProviderId,
    StreamChunk,
    TokenUsage,
)
from completion_gateway.domain.exceptions import ProviderError
from completion_gateway.domain.value_objects import Credential
from completion_gateway.infrastructure.config import Settings
from completion_gateway.interface.app import create_app
from completion_gateway.services.provider_registry import ProviderRegistry


class FakeAdapter:
    """Scripted ``ProviderAdapter``."""

    def __init__(
        self,
        chunks: Iterable[StreamChunk] = (),
        *,
        fail_after: Optional[int] = None,
        stream_error: Optional[Exception] = None,
        hang_after: Optional[int] = None,
        result: Optional[CompletionResult] = None,
        complete_error: Optional[Exception] = None,
        models: Iterable[ModelInfo] = (),
        list_error: Optional[Exception] = None,
    ) -> None:
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.stream_error = stream_error or ProviderError(
            "upstream connection reset", provider="openai"
        )
        self.hang_after = hang_after
        self.result = result
        self.complete_error = complete_error
        self.models = list(models)
        self.list_error = list_error

        self.complete_calls = 0
        self.stream_calls = 0
        self.list_calls = 0
        self.pulled = 0
        self.closed = False
        self.last_credential: Optional[Credential] = None
        self.last_request: Optional[CompletionRequest] = None

    async def complete(
        self, request: CompletionRequest, credential: Credential
    ) -> CompletionResult:
        self.complete_calls += 1
        self.last_request = request
        self.last_credential = credential
        if self.complete_error is not None:
            raise self.complete_error
        return self.result or CompletionResult(
            id="resp-1",
            content="hello",
            model=request.model,
            provider=request.provider_id,
            usage=TokenUsage(input=3, output=2),
            cost=0.0001,
            finish_reason="stop",
        )

    def stream(
        self, request: CompletionRequest, credential: Credential
    ) -> AsyncIterator[StreamChunk]:
        self.stream_calls += 1
        self.last_request = request
        self.last_credential = credential
        return self._generate()

    async def list_models(self, credential: Credential) -> List[ModelInfo]:
        self.list_calls += 1
        self.last_credential = credential
        if self.list_error is not None:
            raise self.list_error
        return list(self.models)

    async def _generate(self) -> AsyncIterator[StreamChunk]:
        try:
            for index, chunk in enumerate(self.chunks):
                if self.fail_after == index:
                    raise self.stream_error
                if self.hang_after == index:
                    await asyncio.Event().wait()
                self.pulled += 1
                yield chunk
            if self.fail_after is not None and self.fail_after >= len(self.chunks):
                raise self.stream_error
            if self.hang_after is not None and self.hang_after >= len(self.chunks):
                await asyncio.Event().wait()
        finally:
            self.closed = True


def make_registry(**overrides: FakeAdapter) -> ProviderRegistry:
    """Registry with a fresh ``FakeAdapter`` per provider, unless overridden."""
    adapters: Dict[ProviderId, Any] = {p: FakeAdapter() for p in ProviderId}
    for name, adapter in overrides.items():
        adapters[ProviderId(name)] = adapter
    return ProviderRegistry(adapters)


# ===== TEST DATA FIXTURES =====


@pytest.fixture
def hello_chunks() -> List[StreamChunk]:
    return [
        StreamChunk(id="c1", content="he", done=False),
        StreamChunk(id="c2", content="llo", done=True),
    ]


@pytest.fixture
def completion_body() -> Dict[str, Any]:
    """The canonical request used throughout the scenarios."""
    return {
        "messages": [
            {"id": "m1", "role": "user", "content": "hi", "timestamp": 1700000000000}
        ],
        "providerId": "openai",
        "model": "gpt-x",
        "stream": True,
    }


@pytest.fixture
def credential_headers() -> Dict[str, str]:
    return {"credential-openai": "sk-test-credential-0001"}


# ===== APP FIXTURES =====


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def make_client(settings):
    """Factory returning a started ``TestClient`` around a given registry."""
    clients: List[TestClient] = []

    def _make(registry: ProviderRegistry) -> TestClient:
        client = TestClient(create_app(settings=settings, registry=registry))
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)
