"""
Paged conversation history for one agent.

Failures are kept on `.error` instead of raised, so a listing screen can render
whatever it already has next to the error text.
"""
from loguru import logger

from agent_chat.client.api_client import AgentServerClient
from agent_chat.shared.errors import AgentChatError
from agent_chat.shared.models import ConversationListItem


class ConversationHistory:
    def __init__(self, client: AgentServerClient, agent_id: str, page_size: int = 20):
        self.client = client
        self.agent_id = agent_id
        self.page_size = page_size

        self.conversations: list[ConversationListItem] = []
        self.is_loading = False
        self.error: AgentChatError | None = None
        self.has_more = False
        self.total = 0
        self._offset = 0

    async def load(self, reset: bool = False) -> None:
        if self.is_loading:
            return
        if reset:
            self._offset = 0

        self.is_loading = True
        self.error = None
        try:
            page = await self.client.get_conversations(
                agent_id=self.agent_id,
                limit=self.page_size,
                offset=self._offset,
            )
        except AgentChatError as e:
            logger.warning(f"agent_id={self.agent_id} event=history_load_failed reason='{e.message}'")
            self.error = e
            return
        finally:
            self.is_loading = False

        if reset or self._offset == 0:
            self.conversations = list(page.conversations)
        else:
            self.conversations.extend(page.conversations)
        self.has_more = page.has_more
        self.total = page.total
        self._offset += len(page.conversations)

    async def load_more(self) -> None:
        if not self.has_more or self.is_loading:
            return
        await self.load()

    async def refresh(self) -> None:
        await self.load(reset=True)

    async def delete_conversation(self, conversation_id: str) -> None:
        try:
            await self.client.delete_conversation(conversation_id)
        except AgentChatError as e:
            logger.warning(f"conversation_id={conversation_id} event=history_delete_failed reason='{e.message}'")
            self.error = e
            return
        self.conversations = [c for c in self.conversations if c.id != conversation_id]
        self.total = max(0, self.total - 1)
        self._offset = max(0, self._offset - 1)
