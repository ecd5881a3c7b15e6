"""
MODULE OVERVIEW:
The strictly typed data structures exchanged with the agent server, powered by Pydantic v2.

WHAT IS HAPPENING HERE:
The agent server speaks camelCase JSON. Every model here keeps snake_case attributes in
Python and maps them onto camelCase keys through an alias generator, so the same classes
validate incoming payloads and serialize outgoing ones (`model_dump(by_alias=True)`).
Both the client and the development server import these definitions, which keeps the
two ends of the wire contract from drifting apart.
"""
import json
import time
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _epoch_ms() -> float:
    return time.time() * 1000


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ==========================
# SUPPORTING PAYLOADS
# ==========================
class Citation(WireModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    title: str | None = None
    link: str | None = None
    image: str | None = None
    description: str | None = None


class Usage(WireModel):
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None


# ==========================
# STREAM EVENTS
# ==========================
# WHAT IS HAPPENING HERE:
# The `type` field is the discriminator. Unknown types never reach these classes;
# the event parser drops them before validation.
class StreamEventBase(WireModel):
    timestamp: float = Field(default_factory=_epoch_ms)


class StreamStartEvent(StreamEventBase):
    type: Literal["stream.start"] = "stream.start"
    conversation_id: str
    message_id: str


class StreamTextEvent(StreamEventBase):
    type: Literal["stream.text"] = "stream.text"
    text: str
    is_final: bool | None = None


class StreamThinkingEvent(StreamEventBase):
    type: Literal["stream.thinking"] = "stream.thinking"
    thinking: str


class StreamToolCallEvent(StreamEventBase):
    type: Literal["stream.tool_call"] = "stream.tool_call"
    tool_name: str
    tool_call_id: str
    args: dict[str, Any] = Field(default_factory=dict)
    reasoning: str | None = None
    display_name: str | None = None


class StreamToolResultEvent(StreamEventBase):
    type: Literal["stream.tool_result"] = "stream.tool_result"
    tool_name: str
    tool_call_id: str
    result: Any = None


class StreamProgressEvent(StreamEventBase):
    type: Literal["stream.progress"] = "stream.progress"
    stage: str | None = None
    message: str | None = None
    percent: float | None = None


class StreamErrorEvent(StreamEventBase):
    type: Literal["stream.error"] = "stream.error"
    error: str
    code: str | None = None


class StreamDoneEvent(StreamEventBase):
    type: Literal["stream.done"] = "stream.done"
    conversation_id: str
    message_id: str
    content: str
    citations: list[Citation] | None = None
    usage: Usage | None = None


StreamEvent = Annotated[
    Union[
        StreamStartEvent,
        StreamTextEvent,
        StreamThinkingEvent,
        StreamToolCallEvent,
        StreamToolResultEvent,
        StreamProgressEvent,
        StreamErrorEvent,
        StreamDoneEvent,
    ],
    Field(discriminator="type"),
]


# ==========================
# TOOL CALLS
# ==========================
class ToolCallRecord(WireModel):
    """Snapshot of one tool invocation inside a streaming session.

    `completed` tells "no result yet" apart from a tool that returned null.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    completed: bool = False
    reasoning: str | None = None
    display_name: str | None = None

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"id": self.id, "name": self.name, "args": self.args}
        if self.completed:
            detail["result"] = self.result
        if self.reasoning is not None:
            detail["reasoning"] = self.reasoning
        if self.display_name is not None:
            detail["displayName"] = self.display_name
        return detail


class ToolCall(WireModel):
    id: str
    name: str
    arguments: str

    @classmethod
    def from_record(cls, record: ToolCallRecord) -> "ToolCall":
        return cls(id=record.id, name=record.name, arguments=json.dumps(record.args))


# ==========================
# MESSAGES, CONVERSATIONS, FILES
# ==========================
class FileAttachment(WireModel):
    id: str
    name: str
    mime_type: str
    size: int
    url: str | None = None
    storage_key: str | None = None


class FilePart(WireModel):
    name: str
    content: str  # base64
    mime_type: str


class Message(WireModel):
    model_config = ConfigDict(frozen=True)

    id: str
    conversation_id: str
    role: Literal["user", "assistant", "system", "tool"]
    content: str | list[dict[str, Any]]
    name: str | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    files: list[FileAttachment] | None = None
    citations: list[Citation] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @property
    def is_interrupted(self) -> bool:
        return bool(self.metadata.get("interrupted"))


class Conversation(WireModel):
    id: str
    agent_id: str
    user_id: str | None = None
    title: str | None = None
    metadata: dict[str, Any] | None = None
    state: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class ConversationListItem(WireModel):
    id: str
    title: str | None = None
    agent_id: str
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class AgentInfo(WireModel):
    id: str
    name: str
    description: str | None = None
    version: str | None = None
    metadata: dict[str, Any] | None = None


# ==========================
# REQUEST / RESPONSE ENVELOPES
# ==========================
class SendMessageRequest(WireModel):
    message: str
    files: list[FilePart] | None = None
    metadata: dict[str, Any] | None = None
    stream: bool = False


class SendMessageResponse(WireModel):
    message: Message
    response: Message
    usage: Usage | None = None


class Page(WireModel):
    total: int = 0
    limit: int = 0
    offset: int = 0
    has_more: bool = False


class ConversationPage(Page):
    conversations: list[ConversationListItem] = Field(default_factory=list)


class MessagePage(Page):
    messages: list[Message] = Field(default_factory=list)


class ConversationDetail(WireModel):
    conversation: Conversation
    messages: list[Message] = Field(default_factory=list)
