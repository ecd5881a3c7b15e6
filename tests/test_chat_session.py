import asyncio
import json

import httpx
import pytest
from conftest import frame, sse_response

from agent_chat.client.api_client import AgentServerClient
from agent_chat.client.chat_session import ChatCallbacks, ChatSession, LocalFile
from agent_chat.shared.errors import FileValidationError, SessionBusyError, TransportError

BASE_URL = "http://agent.test"
CONVERSATION = {"id": "c1", "agentId": "echo-agent", "createdAt": "2024-01-01T00:00:00Z", "updatedAt": "2024-01-01T00:00:00Z"}


def reply_frames(content="Hello!", tool=False):
    frames = [frame(type="stream.start", conversationId="c1", messageId="m1", timestamp=1)]
    if tool:
        frames.append(frame(type="stream.tool_call", toolName="search_web", toolCallId="t1", args={"q": "x"}, timestamp=2))
        frames.append(frame(type="stream.tool_result", toolName="search_web", toolCallId="t1", result={"hits": 3}, timestamp=3))
    frames.append(frame(type="stream.text", text="Hel", timestamp=4))
    frames.append(frame(type="stream.text", text="lo", timestamp=5))
    frames.append(frame(type="stream.done", conversationId="c1", messageId="m1", content=content, timestamp=6))
    return frames


def partial_frames():
    return [
        frame(type="stream.start", conversationId="c1", messageId="m1", timestamp=1),
        frame(type="stream.text", text="Par", timestamp=2),
    ]


class AgentServerStub:
    """Answers conversation creation and plays queued replies for message sends."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests: list[httpx.Request] = []

    def message_bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path.endswith("/messages")]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST" and request.url.path == "/conversations":
            return httpx.Response(201, json={"conversation": CONVERSATION})
        if request.method == "GET" and request.url.path == "/conversations/c1":
            return httpx.Response(200, json={
                "conversation": CONVERSATION,
                "messages": [{"id": "old", "conversationId": "c1", "role": "user", "content": "earlier"}],
            })
        if request.method == "GET":
            return httpx.Response(404, json={"error": {"message": "Conversation not found"}})
        reply = self.replies.pop(0) if self.replies else reply_frames()
        if isinstance(reply, httpx.Response):
            return reply
        if callable(reply):
            return reply()
        return sse_response(reply)


def make_session(mock_http, stub, **kwargs):
    client = AgentServerClient(BASE_URL, http_client=mock_http(stub))
    return ChatSession(client, agent_id="echo-agent", streaming=kwargs.pop("streaming", True), **kwargs)


class CallbackLog:
    def __init__(self):
        self.events = []

    def callbacks(self) -> ChatCallbacks:
        return ChatCallbacks(
            on_message_sent=lambda m: self.events.append(("sent", m.content)),
            on_message_received=lambda m: self.events.append(("received", m.content)),
            on_stream_text=lambda delta, full: self.events.append(("text", full)),
            on_tool_call=lambda name, args: self.events.append(("tool_call", name, args)),
            on_tool_result=lambda name, result: self.events.append(("tool_result", name, result)),
            on_error=lambda e: self.events.append(("error", e)),
            on_conversation_created=lambda c: self.events.append(("created", c.id)),
        )

    def named(self, name):
        return [e for e in self.events if e[0] == name]


@pytest.mark.asyncio
async def test_streaming_send_creates_conversation_and_appends_reply(mock_http):
    log = CallbackLog()
    session = make_session(mock_http, AgentServerStub(), callbacks=log.callbacks())

    await session.send_message("hi")

    assert session.conversation.id == "c1"
    assert [m.role for m in session.messages] == ["user", "assistant"]
    assert session.messages[0].content == "hi"
    assert session.messages[1].content == "Hello!"
    assert session.is_loading is False
    assert session.streaming_text == ""
    assert session.is_streaming is False
    assert [e[0] for e in log.events] == ["created", "sent", "text", "text", "received"]


@pytest.mark.asyncio
async def test_blank_message_is_ignored(mock_http):
    stub = AgentServerStub()
    session = make_session(mock_http, stub)
    await session.send_message("   ")
    assert stub.requests == []
    assert session.messages == []


@pytest.mark.asyncio
async def test_tool_callbacks_get_name_and_payload(mock_http):
    log = CallbackLog()
    session = make_session(mock_http, AgentServerStub(reply_frames(tool=True)), callbacks=log.callbacks())
    await session.send_message("search for x")

    assert log.named("tool_call") == [("tool_call", "search_web", {"q": "x"})]
    assert log.named("tool_result") == [("tool_result", "search_web", {"hits": 3})]
    assert session.messages[-1].metadata["toolCallDetails"][0]["result"] == {"hits": 3}
    assert session.active_tool_calls == ()


@pytest.mark.asyncio
async def test_stop_keeps_partial_reply_and_second_send_is_rejected(mock_http):
    got_text = asyncio.Event()
    callbacks = ChatCallbacks(on_stream_text=lambda delta, full: got_text.set())
    stub = AgentServerStub(lambda: sse_response(partial_frames(), hang=True))
    session = make_session(mock_http, stub, callbacks=callbacks)

    task = asyncio.create_task(session.send_message("hi"))
    await asyncio.wait_for(got_text.wait(), timeout=2)

    assert session.is_streaming
    assert session.streaming_text == "Par"
    with pytest.raises(SessionBusyError):
        await session.send_message("again")

    partial = session.stop()
    await asyncio.wait_for(task, timeout=2)

    assert partial.content == "Par"
    assert partial.is_interrupted
    assert session.messages[-1] == partial
    assert session.error is None
    assert session.is_loading is False
    assert session.stop() is None


@pytest.mark.asyncio
async def test_stop_while_creating_conversation_skips_the_reply(mock_http):
    stub = AgentServerStub()
    creating = asyncio.Event()
    release = asyncio.Event()

    async def handler(request):
        if request.url.path == "/conversations":
            creating.set()
            await release.wait()
        return stub(request)

    log = CallbackLog()
    client = AgentServerClient(BASE_URL, http_client=mock_http(handler))
    session = ChatSession(client, agent_id="echo-agent", streaming=True, callbacks=log.callbacks())

    task = asyncio.create_task(session.send_message("hi"))
    await asyncio.wait_for(creating.wait(), timeout=2)

    assert session.stop() is None
    assert session.is_loading is False
    release.set()
    await asyncio.wait_for(task, timeout=2)

    assert session.messages[-1].role == "user"
    assert [m.role for m in session.messages] == ["user"]
    assert stub.message_bodies() == []
    assert log.named("received") == []
    assert session.is_streaming is False
    assert session.error is None

    await session.send_message("again")
    assert [m.role for m in session.messages] == ["user", "user", "assistant"]


@pytest.mark.asyncio
async def test_stop_without_active_stream_is_a_no_op(mock_http):
    session = make_session(mock_http, AgentServerStub())
    assert session.stop() is None
    await session.send_message("hi")
    assert session.stop() is None
    assert [m.role for m in session.messages] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_stream_error_sets_error(mock_http):
    log = CallbackLog()
    frames = partial_frames() + [frame(type="stream.error", error="rate limited", timestamp=3)]
    session = make_session(mock_http, AgentServerStub(frames), callbacks=log.callbacks())

    await session.send_message("hi")

    assert session.error.message == "rate limited"
    assert [m.role for m in session.messages] == ["user"]
    assert len(log.named("error")) == 1
    assert session.streaming_text == ""


@pytest.mark.asyncio
async def test_retry_after_failure_does_not_duplicate_user_message(mock_http):
    failure = httpx.Response(500, json={"error": {"message": "boom"}})
    stub = AgentServerStub(failure, reply_frames())
    session = make_session(mock_http, stub)

    await session.send_message("hi")
    assert isinstance(session.error, TransportError)
    assert session.error.status_code == 500

    await session.retry()
    assert session.error is None
    assert [(m.role, m.content) for m in session.messages] == [("user", "hi"), ("assistant", "Hello!")]
    assert [b["message"] for b in stub.message_bodies()] == ["hi", "hi"]


@pytest.mark.asyncio
async def test_retry_after_stop_replaces_interrupted_reply(mock_http):
    got_text = asyncio.Event()
    stub = AgentServerStub(lambda: sse_response(partial_frames(), hang=True), reply_frames())
    session = make_session(mock_http, stub, callbacks=ChatCallbacks(on_stream_text=lambda d, f: got_text.set()))

    task = asyncio.create_task(session.send_message("hi"))
    await asyncio.wait_for(got_text.wait(), timeout=2)
    session.stop()
    await task

    await session.retry()
    assert [(m.role, m.content) for m in session.messages] == [("user", "hi"), ("assistant", "Hello!")]


@pytest.mark.asyncio
async def test_non_streaming_send_uses_server_messages(mock_http):
    reply = httpx.Response(200, json={
        "message": {"id": "u-server", "conversationId": "c1", "role": "user", "content": "hi"},
        "response": {"id": "a-server", "conversationId": "c1", "role": "assistant", "content": "You said: hi"},
    })
    log = CallbackLog()
    stub = AgentServerStub(reply)
    session = make_session(mock_http, stub, streaming=False, callbacks=log.callbacks())

    await session.send_message("hi")

    assert [m.id for m in session.messages] == ["u-server", "a-server"]
    assert stub.message_bodies()[0]["stream"] is False
    assert log.named("received") == [("received", "You said: hi")]


@pytest.mark.asyncio
async def test_pending_files_are_sent_and_cleared(mock_http):
    stub = AgentServerStub()
    session = make_session(mock_http, stub)
    [attachment] = session.add_files([LocalFile("notes.txt", b"hello", "text/plain")])

    await session.send_message("read this")

    body = stub.message_bodies()[0]
    assert body["files"][0]["name"] == "notes.txt"
    assert body["files"][0]["mimeType"] == "text/plain"
    assert session.pending_files == []
    assert session.messages[0].files[0].id == attachment.id


def test_file_validation_reports_through_on_error(mock_http):
    errors = []
    session = make_session(
        mock_http,
        AgentServerStub(),
        max_files=2,
        max_file_size=10,
        allowed_file_types=["image/*", ".pdf"],
        callbacks=ChatCallbacks(on_error=errors.append),
    )

    accepted = session.add_files([
        LocalFile("big.pdf", b"x" * 11, "application/pdf"),
        LocalFile("script.sh", b"ls", "text/x-sh"),
        LocalFile("doc.pdf", b"pdf", "application/pdf"),
        LocalFile("pic.png", b"png", "image/png"),
        LocalFile("extra.pdf", b"pdf", "application/pdf"),
    ])

    assert [a.name for a in accepted] == ["doc.pdf", "pic.png"]
    assert all(isinstance(e, FileValidationError) for e in errors)
    assert [e.message for e in errors] == [
        "File big.pdf exceeds maximum size",
        "File type text/x-sh not allowed",
        "Maximum 2 files allowed",
    ]
    assert session.error is None


def test_remove_file_and_disabled_upload(mock_http):
    session = make_session(mock_http, AgentServerStub())
    [first, second] = session.add_files([LocalFile("a.txt", b"a", "text/plain"), LocalFile("b.txt", b"b", "text/plain")])
    session.remove_file(first.id)
    assert [p.attachment.id for p in session.pending_files] == [second.id]

    disabled = make_session(mock_http, AgentServerStub(), enable_file_upload=False)
    assert disabled.add_files([LocalFile("a.txt", b"a", "text/plain")]) == []


def test_local_file_from_path(tmp_path):
    path = tmp_path / "photo.png"
    path.write_bytes(b"\x89PNG")
    local = LocalFile.from_path(path)
    assert local.name == "photo.png"
    assert local.mime_type == "image/png"
    assert local.data == b"\x89PNG"


@pytest.mark.asyncio
async def test_load_conversation_and_clear(mock_http):
    session = make_session(mock_http, AgentServerStub())
    await session.load_conversation("c1")
    assert session.conversation.id == "c1"
    assert [m.id for m in session.messages] == ["old"]

    session.clear_messages()
    assert session.messages == []
    assert session.conversation is None


@pytest.mark.asyncio
async def test_load_missing_conversation_sets_error(mock_http):
    session = make_session(mock_http, AgentServerStub())
    await session.load_conversation("missing")
    assert session.error.message == "Conversation not found"
    assert session.is_loading is False


@pytest.mark.asyncio
async def test_existing_conversation_is_reused(mock_http):
    stub = AgentServerStub()
    session = make_session(mock_http, stub)
    await session.send_message("one")
    await session.send_message("two")

    creations = [r for r in stub.requests if r.url.path == "/conversations"]
    assert len(creations) == 1
    assert [m.role for m in session.messages] == ["user", "assistant", "user", "assistant"]
