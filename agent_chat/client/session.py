"""
MODULE OVERVIEW:
The stream session reducer: folds an ordered sequence of stream events into session state.

WHAT IS HAPPENING HERE:
One reducer lives for exactly one send. It owns the only mutable copy of the session
(accumulated text, tool calls keyed by id, progress text, active flag) and hands
observers immutable snapshots. Every event is applied synchronously, in arrival order,
and its notification fires before the next event is touched, so observers see text
that only ever grows and tool results that always land on the call they belong to.

A session ends in exactly one of three ways:

  - `stream.done`  -> an assistant Message built from the server's authoritative content
  - `stream.error` (or a transport failure via `fail()`) -> an error, partial text discarded
  - `cancel()`     -> partial text preserved as an interrupted Message, if there was any

After that the reducer ignores everything, which is what makes a late `stop()` harmless.
"""
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Literal

from loguru import logger

from agent_chat.shared.client_utils import generate_id
from agent_chat.shared.errors import AgentChatError, StreamError
from agent_chat.shared.models import (
    Message,
    StreamDoneEvent,
    StreamErrorEvent,
    StreamEvent,
    StreamProgressEvent,
    StreamStartEvent,
    StreamTextEvent,
    StreamThinkingEvent,
    StreamToolCallEvent,
    StreamToolResultEvent,
    ToolCall,
    ToolCallRecord,
)


@dataclass
class StreamObserver:
    """Optional callbacks, invoked synchronously in event order."""
    on_start: Callable[[StreamStartEvent], None] | None = None
    on_text: Callable[[str, str], None] | None = None
    on_progress: Callable[[StreamProgressEvent], None] | None = None
    on_tool_call: Callable[[StreamToolCallEvent, ToolCallRecord], None] | None = None
    on_tool_result: Callable[[StreamToolResultEvent, ToolCallRecord | None], None] | None = None
    on_error: Callable[[AgentChatError], None] | None = None
    on_done: Callable[[Message, StreamDoneEvent], None] | None = None
    on_cancel: Callable[[Message | None], None] | None = None


@dataclass(frozen=True)
class StreamSessionState:
    accumulated_text: str = ""
    tool_calls: tuple[ToolCallRecord, ...] = ()
    progress_text: str = ""
    is_active: bool = False

    def tool_call(self, call_id: str) -> ToolCallRecord | None:
        for record in self.tool_calls:
            if record.id == call_id:
                return record
        return None


@dataclass(frozen=True)
class StreamResult:
    status: Literal["completed", "failed", "cancelled"]
    message: Message | None = None
    error: AgentChatError | None = None


class StreamSessionReducer:
    def __init__(
        self,
        conversation_id: str,
        observer: StreamObserver | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.conversation_id = conversation_id
        self.observer = observer or StreamObserver()
        self._clock = clock

        self._text = ""
        self._progress = ""
        self._tool_calls: dict[str, ToolCallRecord] = {}
        self._tool_started_at: float | None = None
        self._start: StreamStartEvent | None = None

        self._active = True
        self._result: StreamResult | None = None

        self._handlers: dict[str, Callable[[Any], None]] = {
            "stream.start": self._on_start,
            "stream.text": self._on_text,
            "stream.thinking": self._on_thinking,
            "stream.progress": self._on_progress,
            "stream.tool_call": self._on_tool_call,
            "stream.tool_result": self._on_tool_result,
            "stream.error": self._on_error,
            "stream.done": self._on_done,
        }

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def result(self) -> StreamResult | None:
        """The terminal outcome, or None while the session is still running."""
        return self._result

    @property
    def state(self) -> StreamSessionState:
        return StreamSessionState(
            accumulated_text=self._text,
            tool_calls=tuple(self._tool_calls.values()),
            progress_text=self._progress,
            is_active=self._active,
        )

    # ==========================
    # ENTRY POINTS
    # ==========================
    def apply(self, event: StreamEvent) -> None:
        if not self._active:
            logger.debug(f"conversation_id={self.conversation_id} event=ignored type={event.type} reason=inactive")
            return
        handler = self._handlers.get(event.type)
        if handler is None:
            return
        handler(event)

    def fail(self, error: AgentChatError) -> None:
        """Terminate with an error that did not come from a `stream.error` event."""
        if not self._active:
            return
        self._finish(StreamResult("failed", error=error))
        self._notify("on_error", error)

    def cancel(self) -> Message | None:
        """
        User-initiated stop. Idempotent: returns None when the session already ended.
        Partial text survives as an interrupted assistant message.
        """
        if not self._active:
            return None
        message = self._build_partial_message() if self._text else None
        self._finish(StreamResult("cancelled", message=message))
        logger.info(f"conversation_id={self.conversation_id} event=stream_cancelled kept_partial={message is not None}")
        self._notify("on_cancel", message)
        return message

    # ==========================
    # TRANSITIONS
    # ==========================
    def _on_start(self, event: StreamStartEvent) -> None:
        self._start = event
        self._notify("on_start", event)

    def _on_text(self, event: StreamTextEvent) -> None:
        self._append_text(event.text)

    def _on_thinking(self, event: StreamThinkingEvent) -> None:
        # Thinking shares the answer buffer.
        self._append_text(event.thinking)

    def _append_text(self, delta: str) -> None:
        self._text += delta
        self._progress = ""
        self._notify("on_text", delta, self._text)

    def _on_progress(self, event: StreamProgressEvent) -> None:
        self._progress = event.message or ""
        self._notify("on_progress", event)

    def _on_tool_call(self, event: StreamToolCallEvent) -> None:
        if self._tool_started_at is None:
            self._tool_started_at = self._clock()

        existing = self._tool_calls.get(event.tool_call_id)
        if existing is not None:
            logger.debug(f"conversation_id={self.conversation_id} event=tool_call_updated id={event.tool_call_id}")
            record = existing.model_copy(update={
                "name": event.tool_name,
                "args": event.args,
                "reasoning": event.reasoning if event.reasoning is not None else existing.reasoning,
                "display_name": event.display_name if event.display_name is not None else existing.display_name,
            })
        else:
            record = ToolCallRecord(
                id=event.tool_call_id,
                name=event.tool_name,
                args=event.args,
                reasoning=event.reasoning,
                display_name=event.display_name,
            )
        self._tool_calls[event.tool_call_id] = record
        self._notify("on_tool_call", event, record)

    def _on_tool_result(self, event: StreamToolResultEvent) -> None:
        record = self._tool_calls.get(event.tool_call_id)
        if record is not None:
            record = record.model_copy(update={"result": event.result, "completed": True})
            self._tool_calls[event.tool_call_id] = record
        else:
            logger.debug(f"conversation_id={self.conversation_id} event=tool_result_ignored id={event.tool_call_id} reason=unknown_call")
        self._notify("on_tool_result", event, record)

    def _on_error(self, event: StreamErrorEvent) -> None:
        self.fail(StreamError(event.error, code=event.code))

    def _on_done(self, event: StreamDoneEvent) -> None:
        tool_calls = list(self._tool_calls.values())
        metadata = self._tool_call_metadata(tool_calls)
        if event.usage is not None:
            metadata["usage"] = event.usage.to_wire()

        message = Message(
            id=event.message_id,
            conversation_id=event.conversation_id,
            role="assistant",
            content=event.content,
            citations=event.citations,
            tool_calls=[ToolCall.from_record(r) for r in tool_calls] or None,
            metadata=metadata,
        )
        self._finish(StreamResult("completed", message=message))
        self._notify("on_done", message, event)

    # ==========================
    # HELPERS
    # ==========================
    def _finish(self, result: StreamResult) -> None:
        self._active = False
        self._result = result
        self._text = ""
        self._progress = ""
        self._tool_calls = {}
        self._tool_started_at = None

    def _tool_call_metadata(self, tool_calls: list[ToolCallRecord]) -> dict[str, Any]:
        if not tool_calls:
            return {}
        elapsed = 0.0
        if self._tool_started_at is not None:
            elapsed = round(self._clock() - self._tool_started_at, 2)
        return {
            "toolCallDetails": [r.to_detail() for r in tool_calls],
            "toolCallDurationSeconds": elapsed,
        }

    def _build_partial_message(self) -> Message:
        tool_calls = list(self._tool_calls.values())
        metadata = self._tool_call_metadata(tool_calls)
        metadata["interrupted"] = True
        now = datetime.now(timezone.utc)
        return Message(
            id=self._start.message_id if self._start else generate_id(),
            conversation_id=self._start.conversation_id if self._start else self.conversation_id,
            role="assistant",
            content=self._text,
            tool_calls=[ToolCall.from_record(r) for r in tool_calls] or None,
            metadata=metadata,
            created_at=now,
            updated_at=now,
        )

    def _notify(self, name: str, *args: Any) -> None:
        callback = getattr(self.observer, name)
        if callback is not None:
            callback(*args)
