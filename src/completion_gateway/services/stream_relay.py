"""Stream relay — forwards an adapter's chunk sequence onto an output channel.

The relay is a small state machine (``OPEN`` → ``CLOSING`` → ``CLOSED``)
with these guarantees:

* chunks are pulled one at a time and only while the channel is writable,
  so nothing is ever buffered inside the relay;
* chunks are written in the order the adapter produced them, and nothing
  after the first ``done`` chunk is pulled;
* an adapter failure becomes one in-band ``done`` chunk carrying the error
  message (there is no out-of-band error channel once streaming began);
* at most one ``[DONE]`` sentinel is written (exactly one whenever the
  consumer is still there), always last;
* the channel is closed exactly once, whatever happened.

An adapter sequence that simply runs out without a ``done`` chunk is treated
as a normal end of stream: the relay writes its own sentinel and logs a
warning.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from enum import Enum
from typing import AsyncIterator

import anyio

from completion_gateway.domain.entities import StreamChunk
from completion_gateway.domain.exceptions import ChannelClosedError, GatewayError
from completion_gateway.domain.ports.output_channel import OutputChannel
from completion_gateway.services.event_stream import DONE_FRAME, encode_chunk

logger = logging.getLogger(__name__)

_GENERIC_STREAM_ERROR = "The provider stream failed unexpectedly."


class RelayState(str, Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class EndReason(str, Enum):
    """Why the relay stopped pulling from the adapter."""

    DONE = "done"
    EXHAUSTED = "exhausted"  # adapter ended without a done chunk
    ERROR = "error"
    UNWRITABLE = "unwritable"  # consumer gone or saturated
    CANCELLED = "cancelled"


class StreamRelay:
    """Single-use relay from one adapter stream to one output channel.

    Parameters
    ----------
    chunks:
        The adapter's lazy chunk sequence.  It is closed (``aclose``) when
        the relay stops, so upstream resources are released early.
    provider:
        Provider name, used for log lines only.
    expose_errors:
        Put the raw text of unexpected exceptions into the error chunk.
        Provider errors always carry their own message.
    source_close_timeout:
        Upper bound (seconds) on waiting for the adapter stream to close.
    """

    def __init__(
        self,
        chunks: AsyncIterator[StreamChunk],
        *,
        provider: str = "unknown",
        expose_errors: bool = False,
        source_close_timeout: float = 5.0,
    ) -> None:
        self._chunks = chunks
        self._provider = provider
        self._expose_errors = expose_errors
        self._source_close_timeout = source_close_timeout
        self._state = RelayState.OPEN
        self._end_reason: EndReason | None = None
        self._forwarded = 0
        self._sentinels = 0
        self._started = False

    # ── Introspection ───────────────────────────────────────────────────

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def end_reason(self) -> EndReason | None:
        return self._end_reason

    @property
    def chunks_forwarded(self) -> int:
        return self._forwarded

    @property
    def sentinels_written(self) -> int:
        return self._sentinels

    # ── Public entry point ──────────────────────────────────────────────

    async def run(self, channel: OutputChannel) -> None:
        """Drive the adapter stream into *channel* until a terminal state."""
        if self._started:
            raise RuntimeError("StreamRelay.run() can only be called once")
        self._started = True

        iterator = aiter(self._chunks)
        logger.debug("Relaying %s stream", self._provider)
        try:
            self._end_reason = await self._pump(iterator, channel)
            if self._end_reason is not EndReason.UNWRITABLE:
                await self._write_sentinel(channel)
        except asyncio.CancelledError:
            self._end_reason = EndReason.CANCELLED
            logger.info("%s stream cancelled by consumer", self._provider)
            raise
        finally:
            await self._close_source(iterator)
            await self._shutdown(channel)
            logger.debug(
                "%s stream finished (%s) after %d chunk(s)",
                self._provider,
                self._end_reason.value if self._end_reason else "unknown",
                self._forwarded,
            )

    # ── Pump ────────────────────────────────────────────────────────────

    async def _pump(
        self, iterator: AsyncIterator[StreamChunk], channel: OutputChannel
    ) -> EndReason:
        while True:
            if not channel.writable:
                logger.info("Output channel for %s not writable; stop pulling", self._provider)
                return EndReason.UNWRITABLE

            try:
                chunk = await anext(iterator)
            except StopAsyncIteration:
                logger.warning(
                    "%s stream ended without a done chunk; treating as complete",
                    self._provider,
                )
                return EndReason.EXHAUSTED
            except Exception as exc:
                await self._emit_error(channel, exc)
                return EndReason.ERROR

            if not await self._emit(channel, chunk):
                return EndReason.UNWRITABLE
            if chunk.done:
                return EndReason.DONE

    async def _emit(self, channel: OutputChannel, chunk: StreamChunk) -> bool:
        if not channel.writable:
            return False
        try:
            await channel.send(encode_chunk(chunk))
        except ChannelClosedError:
            return False
        self._forwarded += 1
        return True

    async def _emit_error(self, channel: OutputChannel, exc: Exception) -> None:
        if isinstance(exc, GatewayError):
            logger.warning("%s stream failed: %s", self._provider, exc)
        else:
            logger.error("%s stream failed unexpectedly", self._provider, exc_info=exc)

        if not channel.writable:
            return

        error_chunk = StreamChunk(
            id=str(uuid.uuid4()),
            content=f"Error: {self._describe(exc)}",
            done=True,
        )
        try:
            await self._emit(channel, error_chunk)
        except Exception:
            logger.exception("Could not deliver error chunk for %s stream", self._provider)

    def _describe(self, exc: Exception) -> str:
        if isinstance(exc, GatewayError):
            return exc.message
        if self._expose_errors:
            return str(exc) or type(exc).__name__
        return _GENERIC_STREAM_ERROR

    # ── Termination ─────────────────────────────────────────────────────

    async def _write_sentinel(self, channel: OutputChannel) -> None:
        if self._sentinels or not channel.writable:
            return
        try:
            await channel.send(DONE_FRAME)
        except ChannelClosedError:
            return
        self._sentinels += 1

    async def _close_source(self, iterator: AsyncIterator[StreamChunk]) -> None:
        aclose = getattr(iterator, "aclose", None)
        if aclose is None:
            return
        with anyio.move_on_after(self._source_close_timeout, shield=True):
            try:
                await aclose()
            except Exception:
                logger.warning("Error while closing %s stream", self._provider, exc_info=True)

    async def _shutdown(self, channel: OutputChannel) -> None:
        if self._state is RelayState.CLOSED:
            return
        self._state = RelayState.CLOSING
        try:
            await channel.close()
        finally:
            self._state = RelayState.CLOSED
