from typing import Any

from fastapi import APIRouter, Query, Response

from agent_chat.server.conversation_store import store
from agent_chat.server.route_utils import not_found
from agent_chat.shared.models import WireModel

router = APIRouter()


class CreateConversationBody(WireModel):
    agent_id: str
    user_id: str | None = None
    title: str | None = None
    metadata: dict[str, Any] | None = None


class UpdateConversationBody(WireModel):
    title: str | None = None
    metadata: dict[str, Any] | None = None


@router.get("/conversations")
async def list_conversations(
    agent_id: str | None = Query(None, alias="agentId"),
    user_id: str | None = Query(None, alias="userId"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    return store.list_conversations(agent_id, user_id, limit=limit, offset=offset).to_wire()

@router.post("/conversations", status_code=201)
async def create_conversation(body: CreateConversationBody):
    if store.get_agent(body.agent_id) is None:
        raise not_found("Agent", body.agent_id)
    conversation = store.create_conversation(body.agent_id, body.user_id, body.title, body.metadata)
    return {"conversation": conversation.to_wire()}

@router.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str):
    conversation = store.get_conversation(conversation_id)
    if conversation is None:
        raise not_found("Conversation", conversation_id)
    return {
        "conversation": conversation.to_wire(),
        "messages": [m.to_wire() for m in store.messages.get(conversation_id, [])],
    }

@router.patch("/conversations/{conversation_id}")
async def update_conversation(conversation_id: str, body: UpdateConversationBody):
    conversation = store.update_conversation(conversation_id, body.title, body.metadata)
    if conversation is None:
        raise not_found("Conversation", conversation_id)
    return {"conversation": conversation.to_wire()}

@router.delete("/conversations/{conversation_id}", status_code=204)
async def delete_conversation(conversation_id: str):
    if not store.delete_conversation(conversation_id):
        raise not_found("Conversation", conversation_id)
    return Response(status_code=204)
