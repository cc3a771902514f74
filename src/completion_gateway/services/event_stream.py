"""Event-stream wire format.

Every frame is ``data: <payload>`` followed by a blank line; the stream is
terminated by the fixed ``data: [DONE]`` sentinel frame.
"""

from __future__ import annotations

import json
from typing import Any

from completion_gateway.domain.entities import StreamChunk

DONE_SENTINEL = "[DONE]"
DONE_FRAME = f"data: {DONE_SENTINEL}\n\n"

MEDIA_TYPE = "text/event-stream"
STREAM_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def sse_data(payload: Any) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def encode_chunk(chunk: StreamChunk) -> str:
    """Serialise one chunk as a single event frame."""
    return sse_data(chunk.to_payload())


def decode_frames(text: str) -> list[Any]:
    """Parse a complete event-stream body back into payloads.

    The sentinel is returned as the string ``"[DONE]"``.  Used by clients
    and tests; the relay itself never decodes.
    """
    events: list[Any] = []
    for block in text.split("\n\n"):
        block = block.strip()
        if not block.startswith("data:"):
            continue
        data = block[len("data:"):].strip()
        events.append(DONE_SENTINEL if data == DONE_SENTINEL else json.loads(data))
    return events
