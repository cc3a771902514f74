"""Port: output channel — the single-writer sink a stream relay writes frames to."""

from __future__ import annotations

from typing import Protocol


class OutputChannel(Protocol):
    """A sink that can say whether it still accepts data."""

    @property
    def writable(self) -> bool:
        """False once the consumer is gone, the buffer is full, or the channel closed."""
        ...

    async def send(self, frame: str) -> None:
        """Write one text frame.  Raises ``ChannelClosedError`` if not writable."""
        ...

    async def close(self) -> None:
        """Finish the channel.  Closing twice is a no-op."""
        ...
