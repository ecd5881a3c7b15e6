"""
MODULE OVERVIEW:
The request/response client for everything that is not a streaming reply.

WHAT IS HAPPENING HERE:
Each method is one round trip with a JSON body. Failures are unwrapped the same way
everywhere (`error.message`, then `message`, then "Request failed") and raised as
TransportError carrying the status code. Streaming sends are delegated to an SSEClient
that shares this client's connection pool and headers.
"""
from typing import Any, Literal, Mapping

import httpx
from loguru import logger

from agent_chat.client.base_client import BaseAgentClient
from agent_chat.client.cancellation import CancellationToken
from agent_chat.client.session import StreamObserver, StreamResult
from agent_chat.client.sse_client import SSEClient
from agent_chat.shared.client_utils import encode_file_content, extract_error_message
from agent_chat.shared.errors import TransportError
from agent_chat.shared.models import (
    AgentInfo,
    Conversation,
    ConversationDetail,
    ConversationPage,
    FileAttachment,
    FilePart,
    MessagePage,
    SendMessageRequest,
    SendMessageResponse,
)


class AgentServerClient(BaseAgentClient):
    def __init__(self, *args, stream_timeout: float | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._stream_timeout = stream_timeout
        self._sse: SSEClient | None = None

    @property
    def sse(self) -> SSEClient:
        if self._sse is None:
            self._sse = SSEClient(
                self.base_url,
                authorization=self.authorization,
                headers=self.headers,
                timeout=self.timeout,
                http_client=self.client,
                stream_timeout=self._stream_timeout,
            )
        return self._sse

    async def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        query = {k: v for k, v in (params or {}).items() if v is not None}
        try:
            response = await self.client.request(
                method,
                self.url(path),
                json=body,
                params=query or None,
                headers=self.headers,
            )
        except httpx.HTTPError as e:
            logger.warning(f"method={method} path={path} event=transport_error reason='{e}'")
            raise TransportError(str(e) or e.__class__.__name__) from e

        if response.is_error:
            message = extract_error_message(response)
            logger.warning(f"method={method} path={path} event=http_error status={response.status_code} reason='{message}'")
            raise TransportError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError("Invalid JSON in response", status_code=response.status_code) from e

    # ==========================
    # AGENTS
    # ==========================
    async def get_agents(self) -> list[AgentInfo]:
        data = await self._request("GET", "/agents")
        return [AgentInfo.model_validate(a) for a in data.get("agents", [])]

    async def get_agent(self, agent_id: str) -> AgentInfo:
        return AgentInfo.model_validate(await self._request("GET", f"/agents/{agent_id}"))

    # ==========================
    # CONVERSATIONS
    # ==========================
    async def get_conversations(
        self,
        agent_id: str | None = None,
        user_id: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> ConversationPage:
        params = {"agentId": agent_id, "userId": user_id, "limit": limit, "offset": offset or None}
        return ConversationPage.model_validate(await self._request("GET", "/conversations", params=params))

    async def create_conversation(
        self,
        agent_id: str,
        user_id: str | None = None,
        title: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Conversation:
        body = {"agentId": agent_id, "userId": user_id, "title": title, "metadata": metadata}
        data = await self._request("POST", "/conversations", {k: v for k, v in body.items() if v is not None})
        return Conversation.model_validate(data["conversation"])

    async def get_conversation(self, conversation_id: str) -> ConversationDetail:
        return ConversationDetail.model_validate(await self._request("GET", f"/conversations/{conversation_id}"))

    async def update_conversation(
        self,
        conversation_id: str,
        title: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Conversation:
        body = {k: v for k, v in {"title": title, "metadata": metadata}.items() if v is not None}
        data = await self._request("PATCH", f"/conversations/{conversation_id}", body)
        return Conversation.model_validate(data.get("conversation", data))

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._request("DELETE", f"/conversations/{conversation_id}")

    # ==========================
    # MESSAGES
    # ==========================
    async def get_messages(
        self,
        conversation_id: str,
        limit: int | None = None,
        offset: int | None = None,
        order: Literal["asc", "desc"] | None = None,
    ) -> MessagePage:
        params = {"limit": limit, "offset": offset or None, "order": order}
        data = await self._request("GET", f"/conversations/{conversation_id}/messages", params=params)
        return MessagePage.model_validate(data)

    async def send_message(
        self,
        conversation_id: str,
        message: str,
        files: list[FilePart] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> SendMessageResponse:
        body = SendMessageRequest(
            message=message,
            files=files or None,
            metadata=dict(metadata) if metadata else None,
            stream=False,
        ).to_wire()
        data = await self._request("POST", f"/conversations/{conversation_id}/messages", body)
        return SendMessageResponse.model_validate(data)

    async def send_message_stream(
        self,
        conversation_id: str,
        message: str,
        files: list[FilePart] | None = None,
        metadata: Mapping[str, Any] | None = None,
        observer: StreamObserver | None = None,
        token: CancellationToken | None = None,
    ) -> StreamResult:
        return await self.sse.stream_message(
            conversation_id,
            message,
            files=files,
            metadata=metadata,
            observer=observer,
            token=token,
        )

    # ==========================
    # FILES
    # ==========================
    async def upload_file(
        self,
        name: str,
        data: bytes,
        mime_type: str,
        conversation_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> FileAttachment:
        body: dict[str, Any] = {
            "file": FilePart(name=name, content=encode_file_content(data), mime_type=mime_type).to_wire(),
        }
        if conversation_id is not None:
            body["conversationId"] = conversation_id
        if metadata:
            body["metadata"] = dict(metadata)
        response = await self._request("POST", "/files", body)
        return FileAttachment.model_validate(response["file"])

    async def get_file(self, file_id: str) -> FileAttachment:
        data = await self._request("GET", f"/files/{file_id}")
        return FileAttachment.model_validate(data["file"])

    async def delete_file(self, file_id: str) -> None:
        await self._request("DELETE", f"/files/{file_id}")

    def get_file_content_url(self, file_id: str) -> str:
        return self.url(f"/files/{file_id}/content")

    async def download_file(self, file_id: str) -> bytes:
        try:
            response = await self.client.get(self.get_file_content_url(file_id), headers=self.headers)
        except httpx.HTTPError as e:
            raise TransportError(str(e) or e.__class__.__name__) from e
        if response.is_error:
            raise TransportError(extract_error_message(response), status_code=response.status_code)
        return response.content
