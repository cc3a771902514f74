"""Unit tests for the response dispatcher."""

import pytest
from conftest import FakeAdapter, make_registry

from completion_gateway.domain.entities import ProviderId
from completion_gateway.domain.exceptions import (
    InternalError,
    MissingCredentialError,
    ProviderError,
    UnknownProviderError,
    ValidationError,
)
from completion_gateway.domain.value_objects import Credential
from completion_gateway.services.channels import BufferedChannel
from completion_gateway.services.dispatcher import ResponseDispatcher
from completion_gateway.services.event_stream import decode_frames
from completion_gateway.services.request_normalizer import normalize
from completion_gateway.services.stream_relay import RelayState, StreamRelay


class TestOneShot:
    @pytest.mark.asyncio
    async def test_complete_called_exactly_once(self, completion_body, credential_headers):
        adapter = FakeAdapter()
        dispatcher = ResponseDispatcher(make_registry(openai=adapter))
        completion_body["stream"] = False

        result = await dispatcher.submit(completion_body, credential_headers)

        assert result.content == "hello"
        assert result.provider is ProviderId.OPENAI
        assert adapter.complete_calls == 1
        assert adapter.stream_calls == 0
        assert adapter.last_credential.value == "sk-test-credential-0001"

    @pytest.mark.asyncio
    async def test_provider_error_propagates_unchanged(self, completion_body, credential_headers):
        error = ProviderError("Rate limit exceeded", provider="openai", status_code=429)
        dispatcher = ResponseDispatcher(make_registry(openai=FakeAdapter(complete_error=error)))
        completion_body["stream"] = False

        with pytest.raises(ProviderError) as exc_info:
            await dispatcher.submit(completion_body, credential_headers)

        assert exc_info.value is error
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_unexpected_error_is_sanitized(self, completion_body, credential_headers):
        adapter = FakeAdapter(complete_error=KeyError("choices"))
        dispatcher = ResponseDispatcher(make_registry(openai=adapter))
        completion_body["stream"] = False

        with pytest.raises(InternalError) as exc_info:
            await dispatcher.submit(completion_body, credential_headers)

        assert exc_info.value.message == "Internal server error"
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_unexpected_error_text_kept_when_exposed(self, completion_body, credential_headers):
        adapter = FakeAdapter(complete_error=RuntimeError("decoder blew up"))
        dispatcher = ResponseDispatcher(make_registry(openai=adapter), expose_errors=True)
        completion_body["stream"] = False

        with pytest.raises(InternalError) as exc_info:
            await dispatcher.submit(completion_body, credential_headers)

        assert exc_info.value.message == "decoder blew up"


class TestStreaming:
    @pytest.mark.asyncio
    async def test_returns_relay_without_pulling(
        self, completion_body, credential_headers, hello_chunks
    ):
        adapter = FakeAdapter(hello_chunks)
        dispatcher = ResponseDispatcher(make_registry(openai=adapter))

        relay = await dispatcher.submit(completion_body, credential_headers)

        assert isinstance(relay, StreamRelay)
        assert relay.state is RelayState.OPEN
        assert adapter.stream_calls == 1
        assert adapter.pulled == 0
        assert adapter.complete_calls == 0

        channel = BufferedChannel()
        await relay.run(channel)
        assert decode_frames(channel.text())[-1] == "[DONE]"
        assert adapter.pulled == 2


class TestRequestErrors:
    """Every request error is raised before the adapter is touched."""

    @pytest.mark.asyncio
    async def test_missing_credential(self, completion_body):
        adapter = FakeAdapter()
        dispatcher = ResponseDispatcher(make_registry(openai=adapter))

        with pytest.raises(MissingCredentialError) as exc_info:
            await dispatcher.submit(completion_body, {})

        assert exc_info.value.message == "API key required for openai"
        assert exc_info.value.status_code == 400
        assert adapter.stream_calls == 0
        assert adapter.complete_calls == 0

    @pytest.mark.asyncio
    async def test_blank_credential_counts_as_missing(self, completion_body):
        dispatcher = ResponseDispatcher(make_registry())
        with pytest.raises(MissingCredentialError):
            await dispatcher.submit(completion_body, {"credential-openai": "   "})

    @pytest.mark.asyncio
    async def test_credential_for_other_provider_is_not_used(self, completion_body):
        dispatcher = ResponseDispatcher(make_registry())
        with pytest.raises(MissingCredentialError):
            await dispatcher.submit(completion_body, {"credential-anthropic": "sk-ant-1234567890"})

    @pytest.mark.asyncio
    async def test_legacy_credential_header(self, completion_body):
        adapter = FakeAdapter()
        dispatcher = ResponseDispatcher(make_registry(openai=adapter))
        completion_body["stream"] = False

        await dispatcher.submit(completion_body, {"x-api-key-openai": "sk-legacy-000000"})

        assert adapter.last_credential.value == "sk-legacy-000000"

    @pytest.mark.asyncio
    async def test_out_of_range_temperature(self, completion_body, credential_headers):
        adapter = FakeAdapter()
        dispatcher = ResponseDispatcher(make_registry(openai=adapter))
        completion_body["temperature"] = 5

        with pytest.raises(ValidationError):
            await dispatcher.submit(completion_body, credential_headers)

        assert adapter.stream_calls == 0

    @pytest.mark.asyncio
    async def test_missing_adapter(self, completion_body):
        dispatcher = ResponseDispatcher(make_registry())
        request = normalize(completion_body)

        with pytest.raises(UnknownProviderError) as exc_info:
            await dispatcher.dispatch(request, None, Credential("sk-test-credential-0001"))

        assert exc_info.value.message == "Provider openai not supported yet"
        assert exc_info.value.status_code == 400
