"""ASGI streaming response that runs a :class:`StreamRelay` directly against ``send``.

Frames go straight to the ASGI server; ``await send(...)`` only returns once
the server accepted the bytes, which is the backpressure the relay relies
on.  A concurrent watcher listens for ``http.disconnect`` and, when the
client goes away, marks the channel unwritable and cancels the relay so the
upstream provider call is released.
"""

from __future__ import annotations

import logging

import anyio
from starlette.background import BackgroundTask
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from completion_gateway.domain.exceptions import ChannelClosedError
from completion_gateway.services.event_stream import MEDIA_TYPE, STREAM_HEADERS
from completion_gateway.services.stream_relay import StreamRelay

logger = logging.getLogger(__name__)


class AsgiEventChannel:
    """Concrete ``OutputChannel`` writing body frames to an ASGI ``send`` callable."""

    def __init__(self, send: Send) -> None:
        self._send = send
        self._closed = False
        self._disconnected = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def writable(self) -> bool:
        return not (self._closed or self._disconnected)

    def mark_disconnected(self) -> None:
        if not self._disconnected:
            logger.debug("Client disconnected from event stream")
        self._disconnected = True

    async def send(self, frame: str) -> None:
        if not self.writable:
            raise ChannelClosedError("Event stream is closed")
        try:
            await self._send(
                {"type": "http.response.body", "body": frame.encode("utf-8"), "more_body": True}
            )
        except OSError as exc:
            self.mark_disconnected()
            raise ChannelClosedError(f"Event stream write failed: {exc}") from exc

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._disconnected:
            return
        try:
            await self._send({"type": "http.response.body", "body": b"", "more_body": False})
        except OSError:
            self.mark_disconnected()


class EventStreamResponse(Response):
    """``text/event-stream`` response whose body is produced by a stream relay."""

    media_type = MEDIA_TYPE

    def __init__(
        self,
        relay: StreamRelay,
        status_code: int = 200,
        headers: dict[str, str] | None = None,
        background: BackgroundTask | None = None,
    ) -> None:
        self.relay = relay
        self.status_code = status_code
        self.background = background
        self.init_headers({**STREAM_HEADERS, **(headers or {})})

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        channel = AsgiEventChannel(send)
        await send(
            {
                "type": "http.response.start",
                "status": self.status_code,
                "headers": self.raw_headers,
            }
        )

        async with anyio.create_task_group() as task_group:

            async def watch_disconnect() -> None:
                while True:
                    message = await receive()
                    if message["type"] == "http.disconnect":
                        break
                if not channel.closed:
                    channel.mark_disconnected()
                    task_group.cancel_scope.cancel()

            task_group.start_soon(watch_disconnect)
            await self.relay.run(channel)
            task_group.cancel_scope.cancel()

        if self.background is not None:
            await self.background()
