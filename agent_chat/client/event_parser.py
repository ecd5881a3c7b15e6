"""
MODULE OVERVIEW:
Interprets one frame payload as a typed stream event.

WHAT IS HAPPENING HERE:
A frame that is not JSON, is not a JSON object, carries a `type` we do not know, or
fails validation for its type is dropped: we log it at DEBUG and return None. One bad
frame must never abort an otherwise healthy stream, and unknown types let newer servers
add events without breaking older clients.
"""
import json

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from agent_chat.shared.models import StreamEvent

KNOWN_EVENT_TYPES = frozenset({
    "stream.start",
    "stream.text",
    "stream.thinking",
    "stream.tool_call",
    "stream.tool_result",
    "stream.progress",
    "stream.error",
    "stream.done",
})

_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)

def parse_event(payload: str) -> StreamEvent | None:
    try:
        raw = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug(f"event=frame_dropped reason=invalid_json payload={payload[:80]!r}")
        return None

    if not isinstance(raw, dict):
        logger.debug(f"event=frame_dropped reason=not_an_object payload={payload[:80]!r}")
        return None

    event_type = raw.get("type")
    if event_type not in KNOWN_EVENT_TYPES:
        logger.debug(f"event=frame_dropped reason=unknown_type type={event_type!r}")
        return None

    try:
        return _event_adapter.validate_python(raw)
    except ValidationError as e:
        logger.debug(f"event=frame_dropped reason=invalid_fields type={event_type} errors={e.error_count()}")
        return None
