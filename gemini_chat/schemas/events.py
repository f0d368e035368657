"""Relay -> client stream protocol.

Each frame is one ``data: `` line followed by a blank line. Text and error
frames carry compact JSON tagged by ``type``; the terminal frame carries the
literal ``[DONE]``.
"""

import json
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

PROTOCOL_VERSION = 1
FRAME_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class TextEvent(BaseModel):
    type: Literal["text"] = "text"
    content: str


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str


class DoneEvent(BaseModel):
    type: Literal["done"] = "done"


StreamEvent = Annotated[TextEvent | ErrorEvent | DoneEvent, Field(discriminator="type")]

_event_adapter = TypeAdapter(StreamEvent)


def encode_frame(event: TextEvent | ErrorEvent | DoneEvent) -> str:
    if isinstance(event, DoneEvent):
        body = DONE_SENTINEL
    else:
        body = json.dumps(event.model_dump(), ensure_ascii=False, separators=(",", ":"))
    return f"{FRAME_PREFIX}{body}\n\n"


def parse_frame(line: str) -> TextEvent | ErrorEvent | DoneEvent | None:
    """Parse one complete line. Returns None for anything that is not a valid frame."""
    if not line.startswith(FRAME_PREFIX):
        return None
    body = line[len(FRAME_PREFIX):]
    if body == DONE_SENTINEL:
        return DoneEvent()
    try:
        return _event_adapter.validate_json(body)
    except ValidationError:
        return None
