"""
MODULE OVERVIEW:
The caller-facing chat session: message list, current error, pending files, retry and stop.

WHAT IS HAPPENING HERE:
This is the layer a UI (or the CLI) talks to. It serializes sends, so one session never
has two streams in flight, and it holds the only reference to the active cancellation
token. That reference is dropped *before* any terminal state is applied, so a `stop()`
racing a stream that just finished finds nothing to cancel and does nothing.

Streaming state (`streaming_text`, `progress_text`, `active_tool_calls`) mirrors the
reducer's snapshots while a reply is in flight and is reset once it ends.
"""
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable

from loguru import logger

from agent_chat.client.api_client import AgentServerClient
from agent_chat.client.cancellation import CancellationToken
from agent_chat.client.session import StreamObserver
from agent_chat.shared.client_utils import encode_file_content, generate_id
from agent_chat.shared.config import settings
from agent_chat.shared.errors import AgentChatError, FileValidationError, SessionBusyError
from agent_chat.shared.formatting import message_text_content
from agent_chat.shared.models import (
    Conversation,
    FileAttachment,
    FilePart,
    Message,
    StreamDoneEvent,
    StreamProgressEvent,
    StreamToolCallEvent,
    StreamToolResultEvent,
    ToolCallRecord,
)


@dataclass
class ChatCallbacks:
    on_message_sent: Callable[[Message], None] | None = None
    on_message_received: Callable[[Message], None] | None = None
    on_stream_text: Callable[[str, str], None] | None = None
    on_tool_call: Callable[[str, dict[str, Any]], None] | None = None
    on_tool_result: Callable[[str, Any], None] | None = None
    on_error: Callable[[AgentChatError], None] | None = None
    on_conversation_created: Callable[[Conversation], None] | None = None


@dataclass
class LocalFile:
    name: str
    data: bytes
    mime_type: str

    @classmethod
    def from_path(cls, path: str | Path) -> "LocalFile":
        path = Path(path)
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(name=path.name, data=path.read_bytes(), mime_type=mime_type or "application/octet-stream")


@dataclass
class PendingFile:
    attachment: FileAttachment
    data: bytes

    def to_part(self) -> FilePart:
        return FilePart(
            name=self.attachment.name,
            content=encode_file_content(self.data),
            mime_type=self.attachment.mime_type,
        )


class ChatSession:
    def __init__(
        self,
        client: AgentServerClient,
        agent_id: str | None = None,
        conversation: Conversation | None = None,
        initial_messages: Iterable[Message] = (),
        streaming: bool | None = None,
        enable_file_upload: bool = True,
        allowed_file_types: list[str] | None = None,
        max_file_size: int | None = None,
        max_files: int | None = None,
        callbacks: ChatCallbacks | None = None,
    ):
        self.client = client
        self.agent_id = agent_id or settings.AGENT_ID
        self.streaming = settings.STREAMING if streaming is None else streaming
        self.enable_file_upload = enable_file_upload
        self.allowed_file_types = settings.ALLOWED_FILE_TYPES if allowed_file_types is None else allowed_file_types
        self.max_file_size = max_file_size if max_file_size is not None else settings.MAX_FILE_SIZE
        self.max_files = max_files if max_files is not None else settings.MAX_FILES
        self.callbacks = callbacks or ChatCallbacks()

        self.messages: list[Message] = list(initial_messages)
        self.conversation = conversation
        self.is_loading = False
        self.streaming_text = ""
        self.progress_text = ""
        self.error: AgentChatError | None = None
        self.pending_files: list[PendingFile] = []

        self._tool_calls: dict[str, ToolCallRecord] = {}
        self._token: CancellationToken | None = None
        self._sending = False
        self._stop_requested = False
        self._last_user_text = ""
        self._interrupted: Message | None = None

    @property
    def active_tool_calls(self) -> tuple[ToolCallRecord, ...]:
        return tuple(self._tool_calls.values())

    @property
    def is_streaming(self) -> bool:
        return self._token is not None

    def set_error(self, error: AgentChatError | None) -> None:
        self.error = error

    # ==========================
    # SENDING
    # ==========================
    async def send_message(self, content: str) -> None:
        if not content.strip():
            return
        if self._sending:
            raise SessionBusyError("A message is already being sent in this session")

        self._sending = True
        self._stop_requested = False
        self.error = None
        self.is_loading = True
        self._last_user_text = content
        try:
            conversation = self.conversation or await self.create_conversation()
            files, self.pending_files = self.pending_files, []
            user_message = Message(
                id=generate_id(),
                conversation_id=conversation.id,
                role="user",
                content=content,
                files=[f.attachment for f in files] or None,
            )
            self.messages.append(user_message)
            self._emit("on_message_sent", user_message)
            parts = [f.to_part() for f in files]

            # stop() landed before a reply was requested.
            if self._stop_requested:
                logger.info(f"conversation_id={conversation.id} event=send_stopped_before_reply")
                return

            if self.streaming:
                await self._stream_reply(conversation.id, content, parts)
            else:
                response = await self.client.send_message(conversation.id, content, files=parts or None)
                self.messages = [m for m in self.messages if m.id != user_message.id]
                self.messages.extend([response.message, response.response])
                self._emit("on_message_received", response.response)
        except AgentChatError as e:
            self._report(e)
        finally:
            self._sending = False
            self._stop_requested = False
            self.is_loading = False

    async def _stream_reply(self, conversation_id: str, content: str, parts: list[FilePart]) -> None:
        self._reset_stream_state()
        token = CancellationToken()
        self._token = token
        observer = StreamObserver(
            on_text=self._on_text,
            on_progress=self._on_progress,
            on_tool_call=self._on_tool_call,
            on_tool_result=self._on_tool_result,
            on_error=self._on_stream_error,
            on_done=self._on_done,
            on_cancel=self._on_cancel,
        )
        try:
            await self.client.send_message_stream(
                conversation_id,
                content,
                files=parts or None,
                observer=observer,
                token=token,
            )
        finally:
            if self._token is token:
                self._token = None

    def stop(self) -> Message | None:
        """Abort the reply in flight. Returns the preserved partial message, if any."""
        token, self._token = self._token, None
        if token is None:
            if self._sending:
                self._stop_requested = True
                self.is_loading = False
            return None
        self._interrupted = None
        token.cancel()
        self.is_loading = False
        return self._interrupted

    async def retry(self) -> None:
        text = self._last_user_text
        if not text:
            return
        if self.messages and self.messages[-1].role == "assistant" and self.messages[-1].is_interrupted:
            self.messages.pop()
        if self.messages and self.messages[-1].role == "user" and message_text_content(self.messages[-1].content) == text:
            self.messages.pop()
        logger.info(f"conversation_id={self.conversation.id if self.conversation else None} event=retry")
        await self.send_message(text)

    # ==========================
    # STREAM OBSERVER
    # ==========================
    def _on_text(self, delta: str, full_text: str) -> None:
        self.streaming_text = full_text
        self.progress_text = ""
        self._emit("on_stream_text", delta, full_text)

    def _on_progress(self, event: StreamProgressEvent) -> None:
        self.progress_text = event.message or ""

    def _on_tool_call(self, event: StreamToolCallEvent, record: ToolCallRecord) -> None:
        self._tool_calls[record.id] = record
        self._emit("on_tool_call", event.tool_name, event.args)

    def _on_tool_result(self, event: StreamToolResultEvent, record: ToolCallRecord | None) -> None:
        if record is not None:
            self._tool_calls[record.id] = record
        self._emit("on_tool_result", event.tool_name, event.result)

    def _on_stream_error(self, error: AgentChatError) -> None:
        self._token = None
        self._reset_stream_state()
        self.is_loading = False
        self._report(error)

    def _on_done(self, message: Message, event: StreamDoneEvent) -> None:
        self._token = None
        self._reset_stream_state()
        self.is_loading = False
        self.messages.append(message)
        self._emit("on_message_received", message)

    def _on_cancel(self, message: Message | None) -> None:
        self._reset_stream_state()
        self._interrupted = message
        if message is not None:
            self.messages.append(message)
            self._emit("on_message_received", message)

    def _reset_stream_state(self) -> None:
        self.streaming_text = ""
        self.progress_text = ""
        self._tool_calls = {}

    # ==========================
    # FILES
    # ==========================
    def add_files(self, files: Iterable[LocalFile]) -> list[FileAttachment]:
        if not self.enable_file_upload:
            return []

        accepted: list[PendingFile] = []
        for file in files:
            if len(self.pending_files) + len(accepted) >= self.max_files:
                self._emit("on_error", FileValidationError(f"Maximum {self.max_files} files allowed"))
                break
            if len(file.data) > self.max_file_size:
                self._emit("on_error", FileValidationError(f"File {file.name} exceeds maximum size"))
                continue
            if self.allowed_file_types and not self._is_allowed(file):
                self._emit("on_error", FileValidationError(f"File type {file.mime_type} not allowed"))
                continue
            attachment = FileAttachment(id=generate_id(), name=file.name, mime_type=file.mime_type, size=len(file.data))
            accepted.append(PendingFile(attachment=attachment, data=file.data))

        self.pending_files.extend(accepted)
        return [p.attachment for p in accepted]

    def _is_allowed(self, file: LocalFile) -> bool:
        for allowed in self.allowed_file_types:
            if allowed.endswith("/*"):
                if file.mime_type.startswith(allowed[:-1]):
                    return True
            elif file.mime_type == allowed or file.name.endswith(allowed):
                return True
        return False

    def remove_file(self, file_id: str) -> None:
        self.pending_files = [p for p in self.pending_files if p.attachment.id != file_id]

    # ==========================
    # CONVERSATIONS
    # ==========================
    def clear_messages(self) -> None:
        self.messages = []
        self.conversation = None
        self.error = None

    async def load_conversation(self, conversation_id: str) -> None:
        self.is_loading = True
        self.error = None
        try:
            detail = await self.client.get_conversation(conversation_id)
            self.conversation = detail.conversation
            self.messages = list(detail.messages)
        except AgentChatError as e:
            self._report(e)
        finally:
            self.is_loading = False

    async def create_conversation(self, title: str | None = None) -> Conversation:
        conversation = await self.client.create_conversation(self.agent_id, title=title)
        self.conversation = conversation
        self.messages = []
        logger.info(f"conversation_id={conversation.id} agent_id={self.agent_id} event=conversation_created")
        self._emit("on_conversation_created", conversation)
        return conversation

    # ==========================
    # HELPERS
    # ==========================
    def _report(self, error: AgentChatError) -> None:
        self.error = error
        self._emit("on_error", error)

    def _emit(self, name: str, *args: Any) -> None:
        callback = getattr(self.callbacks, name)
        if callback is not None:
            callback(*args)
