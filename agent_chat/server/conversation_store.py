"""
MODULE OVERVIEW:
The in-memory registry behind the development agent server.

WHAT IS HAPPENING HERE:
One process-wide object holds every agent, conversation, message list and uploaded
file. Routes read and write through it, never through module globals of their own, so
tests can call `store.reset()` between cases and start from the seeded agents again.
Nothing is persisted; restarting the server forgets everything.
"""
import base64
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from loguru import logger

from agent_chat.shared.client_utils import generate_id
from agent_chat.shared.models import (
    AgentInfo,
    Conversation,
    ConversationListItem,
    ConversationPage,
    FileAttachment,
    FilePart,
    Message,
    MessagePage,
)

DEFAULT_AGENTS = [
    AgentInfo(
        id="echo-agent",
        name="Echo Agent",
        description="Repeats your message back. Ask it to search to see a tool call.",
        version="1.0.0",
    ),
]


@dataclass
class StoredFile:
    attachment: FileAttachment
    data: bytes
    conversation_id: str | None = None


class ConversationStore:
    def __init__(self):
        self.agents: dict[str, AgentInfo] = {}
        self.conversations: dict[str, Conversation] = {}
        self.messages: dict[str, list[Message]] = {}
        self.files: dict[str, StoredFile] = {}
        self.reset()

    def reset(self) -> None:
        self.agents = {agent.id: agent for agent in DEFAULT_AGENTS}
        self.conversations = {}
        self.messages = {}
        self.files = {}

    # ==========================
    # AGENTS
    # ==========================
    def list_agents(self) -> list[AgentInfo]:
        return list(self.agents.values())

    def get_agent(self, agent_id: str) -> AgentInfo | None:
        return self.agents.get(agent_id)

    # ==========================
    # CONVERSATIONS
    # ==========================
    def create_conversation(
        self,
        agent_id: str,
        user_id: str | None = None,
        title: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Conversation:
        conversation = Conversation(
            id=f"conv_{generate_id()}",
            agent_id=agent_id,
            user_id=user_id,
            title=title,
            metadata=metadata,
        )
        self.conversations[conversation.id] = conversation
        self.messages[conversation.id] = []
        logger.info(f"conversation_id={conversation.id} agent_id={agent_id} event=conversation_created")
        return conversation

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        return self.conversations.get(conversation_id)

    def list_conversations(
        self,
        agent_id: str | None = None,
        user_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> ConversationPage:
        matching = [
            c for c in self.conversations.values()
            if (agent_id is None or c.agent_id == agent_id) and (user_id is None or c.user_id == user_id)
        ]
        matching.sort(key=lambda c: c.updated_at, reverse=True)
        window = matching[offset:offset + limit]
        return ConversationPage(
            conversations=[
                ConversationListItem(
                    id=c.id,
                    title=c.title,
                    agent_id=c.agent_id,
                    created_at=c.created_at,
                    updated_at=c.updated_at,
                )
                for c in window
            ],
            total=len(matching),
            limit=limit,
            offset=offset,
            has_more=offset + len(window) < len(matching),
        )

    def update_conversation(
        self,
        conversation_id: str,
        title: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Conversation | None:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            return None
        update: dict[str, Any] = {"updated_at": datetime.now(timezone.utc)}
        if title is not None:
            update["title"] = title
        if metadata is not None:
            update["metadata"] = metadata
        conversation = conversation.model_copy(update=update)
        self.conversations[conversation_id] = conversation
        return conversation

    def delete_conversation(self, conversation_id: str) -> bool:
        if self.conversations.pop(conversation_id, None) is None:
            return False
        self.messages.pop(conversation_id, None)
        logger.info(f"conversation_id={conversation_id} event=conversation_deleted")
        return True

    # ==========================
    # MESSAGES
    # ==========================
    def add_message(self, message: Message) -> Message:
        self.messages.setdefault(message.conversation_id, []).append(message)
        conversation = self.conversations.get(message.conversation_id)
        if conversation is not None:
            update: dict[str, Any] = {"updated_at": message.created_at}
            # First user message names the conversation.
            if conversation.title is None and message.role == "user" and isinstance(message.content, str):
                update["title"] = message.content[:50]
            self.conversations[conversation.id] = conversation.model_copy(update=update)
        return message

    def list_messages(
        self,
        conversation_id: str,
        limit: int = 50,
        offset: int = 0,
        order: Literal["asc", "desc"] = "asc",
    ) -> MessagePage:
        messages = list(self.messages.get(conversation_id, []))
        if order == "desc":
            messages.reverse()
        window = messages[offset:offset + limit]
        return MessagePage(
            messages=window,
            total=len(messages),
            limit=limit,
            offset=offset,
            has_more=offset + len(window) < len(messages),
        )

    # ==========================
    # FILES
    # ==========================
    def save_file(self, part: FilePart, conversation_id: str | None = None) -> FileAttachment:
        data = base64.b64decode(part.content)
        file_id = f"file_{generate_id()}"
        attachment = FileAttachment(
            id=file_id,
            name=part.name,
            mime_type=part.mime_type,
            size=len(data),
            url=f"/files/{file_id}/content",
            storage_key=file_id,
        )
        self.files[file_id] = StoredFile(attachment=attachment, data=data, conversation_id=conversation_id)
        logger.info(f"file_id={file_id} size={len(data)} event=file_stored")
        return attachment

    def get_file(self, file_id: str) -> StoredFile | None:
        return self.files.get(file_id)

    def delete_file(self, file_id: str) -> bool:
        return self.files.pop(file_id, None) is not None


store = ConversationStore()
