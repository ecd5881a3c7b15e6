import asyncio
import json
from typing import Any, Callable, Iterable

import httpx
import pytest

from agent_chat.server.conversation_store import store
from agent_chat.shared.config import settings


def frame(**event: Any) -> bytes:
    """One SSE frame the way the agent server writes it."""
    return f"data: {json.dumps(event)}\n\n".encode()


class ChunkStream(httpx.AsyncByteStream):
    """Response body that yields the given chunks, then optionally never finishes."""

    def __init__(self, chunks: Iterable[bytes], hang: bool = False):
        self.chunks = list(chunks)
        self.hang = hang
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
            await asyncio.sleep(0)
        if self.hang:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True


def sse_response(chunks: Iterable[bytes], hang: bool = False, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        headers={"content-type": "text/event-stream"},
        stream=ChunkStream(chunks, hang=hang),
    )


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Builds an AsyncClient whose requests are answered by `handler`."""
    def build(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return build


@pytest.fixture(autouse=True)
def fresh_store():
    store.reset()
    yield
    store.reset()


@pytest.fixture
def no_agent_delay(monkeypatch):
    monkeypatch.setattr(settings, "AGENT_DELAY_S", 0.0)


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    # sse-starlette keeps a module-level exit event bound to the first loop that used it.
    from sse_starlette.sse import AppStatus
    AppStatus.should_exit_event = None
    yield
    AppStatus.should_exit_event = None
