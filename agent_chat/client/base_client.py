"""
MODULE OVERVIEW:
Shared plumbing for every client that talks to the agent server.

WHAT IS HAPPENING HERE:
Both the streaming transport and the request/response client need the same three things:
a normalized base URL, the header set (Content-Type, optional Authorization, caller
headers), and one `httpx.AsyncClient`. The HTTP client is created lazily, or injected
by the caller so several clients can share one connection pool (and so tests can pass a
client backed by `httpx.MockTransport`). We only close clients we created ourselves.
"""
from typing import Mapping

import httpx

from agent_chat.shared.client_utils import build_headers, make_client_stats
from agent_chat.shared.config import settings


class BaseAgentClient:
    def __init__(
        self,
        base_url: str | None = None,
        authorization: str | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or settings.BASE_URL).rstrip("/")
        self.authorization = authorization if authorization is not None else settings.AUTHORIZATION
        self.headers = build_headers(self.authorization, headers)
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_S

        self.stats = make_client_stats()
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
