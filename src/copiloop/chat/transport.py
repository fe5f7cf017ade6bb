"""Transport abstraction for the Messages chat client."""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol

import httpx

from copiloop import __version__
from copiloop.chat.parsing import decode_body
from copiloop.config import DEFAULT_BASE_URL

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_TIMEOUT = httpx.Timeout(120.0)


class ChatTransport(Protocol):
    """Protocol for sending one Messages request and returning the decoded body."""

    async def send(self, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        """POST the payload and return the JSON response document."""


class HttpMessagesTransport:
    """httpx-based transport for the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: httpx.Timeout | float | None = None,
        client: httpx.AsyncClient | None = None,
        user_agent: str | None = f"copiloop/{__version__}",
        logger: Callable[[str, dict[str, object]], None] | None = None,
    ) -> None:
        if not api_key.strip():
            raise ValueError("api_key cannot be empty")

        self.api_key = api_key.strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or DEFAULT_TIMEOUT
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.timeout)
        self._user_agent = user_agent
        self._logger = logger

    async def send(self, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        url = f"{self.base_url}/v1/messages"
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
        if self._user_agent:
            headers["User-Agent"] = self._user_agent

        start = time.perf_counter()
        response = await self._client.post(url, json=dict(payload), headers=headers, timeout=self.timeout)
        response.raise_for_status()
        body = decode_body(response.content)

        if self._logger:
            self._logger(
                "response_complete",
                {
                    "status": response.status_code,
                    "request_id": response.headers.get("request-id"),
                    "duration_sec": time.perf_counter() - start,
                    "base_url": self.base_url,
                },
            )
        return body

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpMessagesTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class MockMessagesTransport:
    """In-memory transport that returns scripted response documents.

    Each ``send`` pops the next document; the last one repeats once the script
    runs out. Sent payloads are recorded in ``requests``.
    """

    def __init__(
        self,
        responses: Sequence[Mapping[str, Any]],
        status_code: int = 200,
        body: str = "",
    ) -> None:
        self._responses = list(responses)
        self.status_code = status_code
        self.body = body
        self.requests: list[dict[str, Any]] = []

    async def send(self, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        self.requests.append(dict(payload))

        if self.status_code >= 400:
            request = httpx.Request("POST", "mock://v1/messages")
            response = httpx.Response(self.status_code, request=request, text=self.body)
            raise httpx.HTTPStatusError("mock transport error", request=request, response=response)

        if not self._responses:
            raise ValueError("no scripted responses left")
        if len(self._responses) > 1:
            return self._responses.pop(0)
        return self._responses[0]


__all__ = [
    "ANTHROPIC_VERSION",
    "ChatTransport",
    "DEFAULT_TIMEOUT",
    "HttpMessagesTransport",
    "MockMessagesTransport",
]
