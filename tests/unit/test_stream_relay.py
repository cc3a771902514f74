"""Unit tests for the stream relay state machine."""

import asyncio
import json

import pytest
from conftest import FakeAdapter

from completion_gateway.domain.entities import StreamChunk
from completion_gateway.domain.exceptions import ProviderError
from completion_gateway.services.channels import BufferedChannel
from completion_gateway.services.event_stream import DONE_FRAME, decode_frames, encode_chunk
from completion_gateway.services.stream_relay import EndReason, RelayState, StreamRelay


def _stream(adapter: FakeAdapter):
    return adapter.stream(None, None)


class TestNormalTermination:
    """A stream that ends with a done chunk."""

    @pytest.mark.asyncio
    async def test_forwards_chunks_then_single_sentinel(self, hello_chunks):
        adapter = FakeAdapter(hello_chunks)
        channel = BufferedChannel()
        relay = StreamRelay(_stream(adapter), provider="openai")

        await relay.run(channel)

        assert channel.frames == [
            encode_chunk(hello_chunks[0]),
            encode_chunk(hello_chunks[1]),
            DONE_FRAME,
        ]
        assert relay.state is RelayState.CLOSED
        assert relay.end_reason is EndReason.DONE
        assert relay.chunks_forwarded == 2
        assert relay.sentinels_written == 1
        assert channel.closed

    @pytest.mark.asyncio
    async def test_frame_format(self, hello_chunks):
        channel = BufferedChannel()
        await StreamRelay(_stream(FakeAdapter(hello_chunks))).run(channel)

        first = channel.frames[0]
        assert first.startswith("data: ")
        assert first.endswith("\n\n")
        assert json.loads(first[len("data: "):]) == {"id": "c1", "content": "he", "done": False}
        assert channel.frames[-1] == "data: [DONE]\n\n"

    @pytest.mark.asyncio
    async def test_output_after_done_is_never_pulled(self):
        adapter = FakeAdapter(
            [
                StreamChunk(id="c1", content="all", done=True),
                StreamChunk(id="c2", content="ignored", done=False),
                StreamChunk(id="c3", content="ignored", done=True),
            ]
        )
        channel = BufferedChannel()

        await StreamRelay(_stream(adapter)).run(channel)

        assert decode_frames(channel.text()) == [
            {"id": "c1", "content": "all", "done": True},
            "[DONE]",
        ]
        assert adapter.pulled == 1
        assert adapter.closed

    @pytest.mark.asyncio
    async def test_empty_content_chunks_are_forwarded(self):
        adapter = FakeAdapter(
            [StreamChunk(id="c1", content="", done=False), StreamChunk(id="c2", content="", done=True)]
        )
        channel = BufferedChannel()

        await StreamRelay(_stream(adapter)).run(channel)

        assert len(channel.frames) == 3


class TestMissingDone:
    """An adapter sequence that runs out without a done chunk."""

    @pytest.mark.asyncio
    async def test_exhausted_stream_gets_forced_sentinel(self):
        adapter = FakeAdapter([StreamChunk(id="c1", content="partial", done=False)])
        channel = BufferedChannel()
        relay = StreamRelay(_stream(adapter))

        await relay.run(channel)

        assert decode_frames(channel.text()) == [
            {"id": "c1", "content": "partial", "done": False},
            "[DONE]",
        ]
        assert relay.end_reason is EndReason.EXHAUSTED
        assert relay.state is RelayState.CLOSED

    @pytest.mark.asyncio
    async def test_empty_stream_emits_only_sentinel(self):
        channel = BufferedChannel()
        await StreamRelay(_stream(FakeAdapter([]))).run(channel)
        assert channel.frames == [DONE_FRAME]


class TestAdapterFailure:
    """Errors raised while iterating the adapter."""

    @pytest.mark.asyncio
    async def test_mid_stream_error_becomes_terminal_chunk(self):
        adapter = FakeAdapter(
            [StreamChunk(id="c1", content="he", done=False), StreamChunk(id="c2", content="x")],
            fail_after=1,
            stream_error=ProviderError("Rate limit exceeded", provider="openai", status_code=429),
        )
        channel = BufferedChannel()
        relay = StreamRelay(_stream(adapter))

        await relay.run(channel)

        events = decode_frames(channel.text())
        assert len(events) == 3
        assert events[0] == {"id": "c1", "content": "he", "done": False}
        assert events[1]["done"] is True
        assert events[1]["content"] == "Error: Rate limit exceeded"
        assert events[1]["id"]
        assert events[2] == "[DONE]"
        assert relay.end_reason is EndReason.ERROR
        assert relay.state is RelayState.CLOSED
        assert relay.sentinels_written == 1

    @pytest.mark.asyncio
    async def test_error_before_first_chunk(self):
        adapter = FakeAdapter([], fail_after=0)
        channel = BufferedChannel()

        await StreamRelay(_stream(adapter)).run(channel)

        events = decode_frames(channel.text())
        assert events[0]["content"] == "Error: upstream connection reset"
        assert events[0]["done"] is True
        assert events[1] == "[DONE]"

    @pytest.mark.asyncio
    async def test_unexpected_error_text_is_hidden_by_default(self):
        adapter = FakeAdapter([], fail_after=0, stream_error=RuntimeError("secret internals"))
        channel = BufferedChannel()

        await StreamRelay(_stream(adapter)).run(channel)

        content = decode_frames(channel.text())[0]["content"]
        assert "secret internals" not in content
        assert content.startswith("Error: ")

    @pytest.mark.asyncio
    async def test_unexpected_error_text_exposed_when_enabled(self):
        adapter = FakeAdapter([], fail_after=0, stream_error=RuntimeError("socket closed"))
        channel = BufferedChannel()

        await StreamRelay(_stream(adapter), expose_errors=True).run(channel)

        assert decode_frames(channel.text())[0]["content"] == "Error: socket closed"

    @pytest.mark.asyncio
    async def test_error_with_unwritable_channel_skips_emission(self):
        channel = BufferedChannel()

        async def failing():
            yield StreamChunk(id="c1", content="he")
            channel.disconnect()
            raise RuntimeError("boom")

        relay = StreamRelay(failing())
        await relay.run(channel)

        assert channel.frames == [encode_chunk(StreamChunk(id="c1", content="he"))]
        assert relay.sentinels_written == 0
        assert relay.state is RelayState.CLOSED
        assert channel.close_calls == 1


class TestBackpressure:
    """The relay stops pulling as soon as the channel is unwritable."""

    @pytest.mark.asyncio
    async def test_saturated_channel_stops_pulling(self):
        adapter = FakeAdapter(
            [
                StreamChunk(id="c1", content="a"),
                StreamChunk(id="c2", content="b"),
                StreamChunk(id="c3", content="c", done=True),
            ]
        )
        channel = BufferedChannel(capacity=1)
        relay = StreamRelay(_stream(adapter))

        await relay.run(channel)

        assert channel.frames == [encode_chunk(StreamChunk(id="c1", content="a"))]
        assert adapter.pulled == 1
        assert adapter.closed
        assert relay.end_reason is EndReason.UNWRITABLE
        assert relay.sentinels_written == 0
        assert relay.state is RelayState.CLOSED

    @pytest.mark.asyncio
    async def test_disconnected_before_start_pulls_nothing(self, hello_chunks):
        adapter = FakeAdapter(hello_chunks)
        channel = BufferedChannel()
        channel.disconnect()
        relay = StreamRelay(_stream(adapter))

        await relay.run(channel)

        assert channel.frames == []
        assert adapter.pulled == 0
        assert relay.state is RelayState.CLOSED
        assert channel.close_calls == 1

    @pytest.mark.asyncio
    async def test_disconnect_mid_stream(self):
        channel = BufferedChannel()
        produced = []

        async def chunks():
            for i in range(5):
                if i == 2:
                    channel.disconnect()
                produced.append(i)
                yield StreamChunk(id=f"c{i}", content=str(i))

        await StreamRelay(chunks()).run(channel)

        assert len(channel.frames) == 2
        assert produced == [0, 1, 2]


class TestTermination:
    """Exactly-once closing."""

    @pytest.mark.asyncio
    async def test_channel_closed_exactly_once(self, hello_chunks):
        channel = BufferedChannel()
        relay = StreamRelay(_stream(FakeAdapter(hello_chunks)))

        await relay.run(channel)
        assert channel.close_calls == 1

        await channel.close()
        assert channel.frames[-1] == DONE_FRAME
        assert relay.state is RelayState.CLOSED

    @pytest.mark.asyncio
    async def test_relay_is_single_use(self, hello_chunks):
        relay = StreamRelay(_stream(FakeAdapter(hello_chunks)))
        await relay.run(BufferedChannel())

        with pytest.raises(RuntimeError):
            await relay.run(BufferedChannel())

    @pytest.mark.asyncio
    async def test_cancellation_still_reaches_closed(self):
        adapter = FakeAdapter([StreamChunk(id="c1", content="a")], hang_after=1)
        channel = BufferedChannel()
        relay = StreamRelay(_stream(adapter))

        task = asyncio.create_task(relay.run(channel))
        while adapter.pulled < 1:
            await asyncio.sleep(0)
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert relay.state is RelayState.CLOSED
        assert relay.end_reason is EndReason.CANCELLED
        assert adapter.closed
        assert channel.close_calls == 1
        assert DONE_FRAME not in channel.frames

    @pytest.mark.asyncio
    async def test_state_starts_open(self, hello_chunks):
        relay = StreamRelay(_stream(FakeAdapter(hello_chunks)))
        assert relay.state is RelayState.OPEN
        assert relay.end_reason is None
