"""In-memory output channel.

Collects frames in a list.  With a ``capacity`` it reports itself
unwritable once that many frames are buffered, which models a saturated
consumer; :meth:`disconnect` models a consumer that went away.
"""

from __future__ import annotations

from completion_gateway.domain.exceptions import ChannelClosedError


class BufferedChannel:
    """Concrete ``OutputChannel`` that keeps every frame it accepts."""

    def __init__(self, capacity: int | None = None) -> None:
        self._capacity = capacity
        self._frames: list[str] = []
        self._closed = False
        self._disconnected = False
        self.close_calls = 0

    @property
    def frames(self) -> list[str]:
        return list(self._frames)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def writable(self) -> bool:
        if self._closed or self._disconnected:
            return False
        return self._capacity is None or len(self._frames) < self._capacity

    async def send(self, frame: str) -> None:
        if not self.writable:
            raise ChannelClosedError("Output channel is not writable")
        self._frames.append(frame)

    async def close(self) -> None:
        self.close_calls += 1
        self._closed = True

    def disconnect(self) -> None:
        self._disconnected = True

    def text(self) -> str:
        return "".join(self._frames)
