"""
MODULE OVERVIEW:
Message routes, including the streaming reply.

WHAT IS HAPPENING HERE:
A POST with `stream: true` is answered with an SSE body: one `data: <json>` frame per
agent event and no `event:` field, so the JSON `type` alone identifies the event. The
assistant message is stored when the scripted agent reaches `stream.done`. If the client
goes away first, sse-starlette cancels the generator and nothing is stored for that turn.
"""
import json
from typing import Literal

from fastapi import APIRouter, Query
from loguru import logger
from sse_starlette.sse import EventSourceResponse

from agent_chat.server.conversation_store import store
from agent_chat.server.echo_agent import echo_agent_events
from agent_chat.server.route_utils import not_found
from agent_chat.shared.client_utils import generate_id
from agent_chat.shared.config import settings
from agent_chat.shared.models import Message, SendMessageRequest, StreamDoneEvent

router = APIRouter()


def _assistant_message(event: StreamDoneEvent) -> Message:
    return Message(
        id=event.message_id,
        conversation_id=event.conversation_id,
        role="assistant",
        content=event.content,
        citations=event.citations,
        metadata={"usage": event.usage.to_wire()} if event.usage else {},
    )


@router.get("/conversations/{conversation_id}/messages")
async def list_messages(
    conversation_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    order: Literal["asc", "desc"] = Query("asc"),
):
    if store.get_conversation(conversation_id) is None:
        raise not_found("Conversation", conversation_id)
    return store.list_messages(conversation_id, limit=limit, offset=offset, order=order).to_wire()

@router.post("/conversations/{conversation_id}/messages")
async def send_message(conversation_id: str, body: SendMessageRequest):
    if store.get_conversation(conversation_id) is None:
        raise not_found("Conversation", conversation_id)

    attachments = [store.save_file(part, conversation_id) for part in body.files or []]
    user_message = store.add_message(Message(
        id=f"msg_{generate_id()}",
        conversation_id=conversation_id,
        role="user",
        content=body.message,
        files=attachments or None,
        metadata=body.metadata or {},
    ))
    message_id = f"msg_{generate_id()}"
    logger.info(f"conversation_id={conversation_id} message_id={message_id} stream={body.stream} event=message_received")

    if body.stream:
        async def event_publisher():
            async for event in echo_agent_events(conversation_id, message_id, body.message, settings.AGENT_DELAY_S):
                if isinstance(event, StreamDoneEvent):
                    store.add_message(_assistant_message(event))
                yield {"data": json.dumps(event.to_wire())}
            logger.info(f"conversation_id={conversation_id} message_id={message_id} event=stream_complete")

        return EventSourceResponse(event_publisher())

    done = None
    async for event in echo_agent_events(conversation_id, message_id, body.message):
        if isinstance(event, StreamDoneEvent):
            done = event
    response = store.add_message(_assistant_message(done))
    payload = {"message": user_message.to_wire(), "response": response.to_wire()}
    if done.usage is not None:
        payload["usage"] = done.usage.to_wire()
    return payload
