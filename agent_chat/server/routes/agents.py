from fastapi import APIRouter

from agent_chat.server.conversation_store import store
from agent_chat.server.route_utils import not_found

router = APIRouter()

@router.get("/agents")
async def list_agents():
    return {"agents": [a.to_wire() for a in store.list_agents()]}

@router.get("/agents/{agent_id}")
async def get_agent(agent_id: str):
    agent = store.get_agent(agent_id)
    if agent is None:
        raise not_found("Agent", agent_id)
    return agent.to_wire()
