"""
Streaming event schemas for tutor answers.

Wire format: one server-sent-event frame per event,

    data: {"type": "text-delta", "id": "...", "delta": "..."}\\n\\n

terminated by the literal frame `data: [DONE]\\n\\n`. Clients treat an
`error` event as content to append to the assistant message, not as a
protocol fault.
"""

import json
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel

FRAME_PREFIX = "data: "
FRAME_SUFFIX = "\n\n"
DONE_SENTINEL = "[DONE]"

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
    "x-vercel-ai-ui-message-stream": "v1",
}


class StreamEventType(str, Enum):
    """Server-to-client event types for a streamed answer."""

    START = "start"
    TEXT_START = "text-start"
    TEXT_DELTA = "text-delta"
    TEXT_END = "text-end"
    FINISH = "finish"
    ERROR = "error"


class StreamEvent(BaseModel):
    """
    One event of a streamed answer.

    Attributes:
        type: Event discriminator
        id: Text block id (text-start, text-delta, text-end)
        message_id: Message id (start)
        delta: Incremental text (text-delta)
        error_text: Human-readable failure (error)
    """

    type: StreamEventType
    id: Optional[str] = None
    message_id: Optional[str] = None
    delta: Optional[str] = None
    error_text: Optional[str] = None

    @classmethod
    def start(cls, message_id: str) -> "StreamEvent":
        return cls(type=StreamEventType.START, message_id=message_id)

    @classmethod
    def text_start(cls, block_id: str) -> "StreamEvent":
        return cls(type=StreamEventType.TEXT_START, id=block_id)

    @classmethod
    def text_delta(cls, block_id: str, delta: str) -> "StreamEvent":
        return cls(type=StreamEventType.TEXT_DELTA, id=block_id, delta=delta)

    @classmethod
    def text_end(cls, block_id: str) -> "StreamEvent":
        return cls(type=StreamEventType.TEXT_END, id=block_id)

    @classmethod
    def finish(cls) -> "StreamEvent":
        return cls(type=StreamEventType.FINISH)

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls(type=StreamEventType.ERROR, error_text=message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON payload sent on the wire."""
        payload: Dict[str, Any] = {"type": self.type.value}

        if self.message_id is not None:
            payload["messageId"] = self.message_id
        if self.id is not None:
            payload["id"] = self.id
        if self.delta is not None:
            payload["delta"] = self.delta
        if self.error_text is not None:
            payload["errorText"] = self.error_text

        return payload


def encode_event(event: StreamEvent) -> str:
    return f"{FRAME_PREFIX}{json.dumps(event.to_dict())}{FRAME_SUFFIX}"


def done_frame() -> str:
    return f"{FRAME_PREFIX}{DONE_SENTINEL}{FRAME_SUFFIX}"


def decode_frames(body: str):
    """
    Parse a wire body back into payload dicts (sentinel included as the
    string "[DONE]"). Used by clients and tests.
    """
    frames = []

    for block in body.split(FRAME_SUFFIX):

        if not block.startswith(FRAME_PREFIX):
            continue

        data = block[len(FRAME_PREFIX):]

        frames.append(data if data == DONE_SENTINEL else json.loads(data))

    return frames
