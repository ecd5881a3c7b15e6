"""
MODULE OVERVIEW:
The streaming transport: one POST, one long-lived response body, one session reducer.

WHAT IS HAPPENING HERE:
We send the request with `stream=True` so httpx hands us the body as it arrives, then
run every chunk through the pipeline

    bytes -> SSEFrameDecoder -> parse_event -> StreamSessionReducer -> observer

synchronously, before asking for the next chunk. Waiting for response headers and waiting
for the next chunk are the only places we suspend, and both are raced against the
cancellation token. When the token fires, the pending read is abandoned, anything still
sitting in the decoder is thrown away, and the response is closed.

Nothing here raises for transport or stream failures. They go through the reducer's
error path exactly once, and `stream_message` returns the terminal StreamResult.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Mapping

import httpx
from loguru import logger

from agent_chat.client.base_client import BaseAgentClient
from agent_chat.client.cancellation import CancellationToken
from agent_chat.client.event_parser import parse_event
from agent_chat.client.frame_decoder import SSEFrameDecoder
from agent_chat.client.session import StreamObserver, StreamResult, StreamSessionReducer
from agent_chat.shared.client_utils import extract_error_message
from agent_chat.shared.config import settings
from agent_chat.shared.errors import TransportError
from agent_chat.shared.models import FilePart, SendMessageRequest

async def _until_cancelled(awaitable: Awaitable[Any], token: CancellationToken) -> Any:
    """Await `awaitable` unless the token fires first, in which case return None."""
    if token.cancelled:
        close = getattr(awaitable, "close", None)
        if close is not None:
            close()
        return None

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task.done():
        return task.result()
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    return None

class SSEClient(BaseAgentClient):
    protocol_name: str = "sse"

    def __init__(self, *args, stream_timeout: float | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.stream_timeout = stream_timeout if stream_timeout is not None else settings.STREAM_TIMEOUT_S

    async def stream_message(
        self,
        conversation_id: str,
        message: str,
        files: list[FilePart] | None = None,
        metadata: Mapping[str, Any] | None = None,
        observer: StreamObserver | None = None,
        token: CancellationToken | None = None,
    ) -> StreamResult:
        token = token or CancellationToken()
        reducer = StreamSessionReducer(conversation_id, observer)
        body = SendMessageRequest(
            message=message,
            files=files or None,
            metadata=dict(metadata) if metadata else None,
            stream=True,
        ).to_wire()

        token.add_callback(reducer.cancel)
        try:
            await self._run(conversation_id, body, reducer, token)
        finally:
            token.remove_callback(reducer.cancel)

        result = reducer.result
        logger.info(f"conversation_id={conversation_id} protocol={self.protocol_name} event=stream_closed status={result.status}")
        return result

    async def _run(self, conversation_id: str, body: dict, reducer: StreamSessionReducer, token: CancellationToken) -> None:
        url = self.url(f"/conversations/{conversation_id}/messages")
        request = self.client.build_request(
            "POST",
            url,
            json=body,
            headers={**self.headers, "Accept": "text/event-stream", "Cache-Control": "no-cache"},
            timeout=httpx.Timeout(self.timeout, read=self.stream_timeout),
        )
        self.stats["streams_opened"] += 1
        logger.info(f"conversation_id={conversation_id} protocol={self.protocol_name} event=stream_open url={url}")

        try:
            response = await _until_cancelled(self.client.send(request, stream=True), token)
        except httpx.HTTPError as e:
            logger.warning(f"conversation_id={conversation_id} event=transport_error reason='{e}'")
            reducer.fail(TransportError(str(e) or e.__class__.__name__))
            return
        if response is None:
            return

        try:
            if response.is_error:
                await response.aread()
                message = extract_error_message(response)
                logger.warning(f"conversation_id={conversation_id} event=http_error status={response.status_code} reason='{message}'")
                reducer.fail(TransportError(message, status_code=response.status_code))
                return
            await self._pump(response, reducer, token)
        except httpx.HTTPError as e:
            if not token.cancelled:
                logger.warning(f"conversation_id={conversation_id} event=transport_error reason='{e}'")
                reducer.fail(TransportError(str(e) or e.__class__.__name__))
        finally:
            await response.aclose()

    async def _pump(self, response: httpx.Response, reducer: StreamSessionReducer, token: CancellationToken) -> None:
        decoder = SSEFrameDecoder()
        chunks = response.aiter_bytes()
        received = 0
        try:
            while reducer.is_active:
                chunk = await _until_cancelled(anext(chunks, None), token)
                if chunk is None or token.cancelled:
                    break
                received += len(chunk)
                self.stats["bytes_received"] += len(chunk)

                for payload in decoder.feed(chunk):
                    self.stats["frames_received"] += 1
                    event = parse_event(payload)
                    if event is None:
                        self.stats["frames_dropped"] += 1
                        continue
                    self.stats["events_received"] += 1
                    self.stats["last_event_at"] = datetime.now(timezone.utc).isoformat()
                    reducer.apply(event)
                    if not reducer.is_active:
                        break
        finally:
            decoder.close()

        if token.cancelled or not reducer.is_active:
            return
        if received == 0:
            reducer.fail(TransportError("No response body"))
        else:
            reducer.fail(TransportError("Stream ended before completion"))
