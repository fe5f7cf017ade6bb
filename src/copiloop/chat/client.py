"""Messages API client used by the agent loop."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from copiloop.chat.parsing import parse_response
from copiloop.chat.transport import ChatTransport, HttpMessagesTransport
from copiloop.chat.types import (
    ChatRequest,
    ChatResponse,
    ChatTimeoutError,
    MessageRole,
    ProtocolError,
    StopReason,
    TextBlock,
    TransportError,
    UpstreamError,
    Usage,
)
from copiloop.config import DEFAULT_BASE_URL, DEFAULT_MODEL_ID, Settings
from copiloop.logging import stringify

DEFAULT_MAX_TOKENS = 4096

_MOCK_NOTICE = (
    "**API key not configured**\n\n"
    "ANTHROPIC_API_KEY is not set, so this is a mock response.\n\n"
    "**Setup:**\n"
    "1. Export `ANTHROPIC_API_KEY=your-api-key-here` (or set `[auth] api_key` in config.toml)\n"
    "2. Run the command again\n\n"
    "---\n"
    "**Received message:** {message}\n"
)


class ChatClient:
    """Async client for the Messages API with tool definitions.

    Without an API key every call returns a deterministic offline response and
    no transport is used.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        transport: ChatTransport | None = None,
        default_model: str = DEFAULT_MODEL_ID,
        base_url: str = DEFAULT_BASE_URL,
        logger: logging.Logger | None = None,
    ) -> None:
        self.api_key = api_key.strip() if api_key and api_key.strip() else None
        self._default_model = default_model
        self._logger = logger or logging.getLogger(__name__)
        if transport is None and self.api_key:
            transport = HttpMessagesTransport(self.api_key, base_url=base_url, logger=self._log_transport)
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, *, logger: logging.Logger | None = None) -> ChatClient:
        return cls(
            settings.api_key,
            default_model=settings.model,
            base_url=settings.base_url,
            logger=logger,
        )

    @property
    def is_mock(self) -> bool:
        return self.api_key is None

    async def chat_with_tools(self, request: ChatRequest) -> ChatResponse:
        if self.is_mock or self._transport is None:
            self._logger.info("no API key configured, returning mock response")
            return _mock_response(request)

        payload = self._build_payload(request)
        self._logger.debug("chat request model=%s tools=%d", payload["model"], len(request.tools))

        try:
            body = await self._transport.send(payload)
        except httpx.TimeoutException as exc:
            raise ChatTimeoutError("request timed out") from exc
        except httpx.HTTPStatusError as exc:
            response = exc.response
            error = UpstreamError(response.status_code, response.text)
            self._logger.error("chat request failed: %s", error)
            raise error from exc
        except httpx.ReadError as exc:
            raise ProtocolError(f"read response body: {exc}") from exc
        except httpx.RequestError as exc:
            raise TransportError(f"send request: {exc}") from exc

        response = parse_response(body)
        self._logger.debug(
            "chat response stop_reason=%s usage=%s/%s content=%s",
            response.stop_reason,
            response.usage.input_tokens,
            response.usage.output_tokens,
            stringify([block.to_dict() for block in response.content]),
        )
        return response

    async def aclose(self) -> None:
        close = getattr(self._transport, "aclose", None)
        if close is not None:
            await close()

    def _build_payload(self, request: ChatRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model or self._default_model,
            "messages": [message.to_dict() for message in request.messages],
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
        }

        if request.system_prompt:
            payload["system"] = request.system_prompt

        if request.tools:
            payload["tools"] = [tool.to_dict() for tool in request.tools]

        if request.temperature is not None:
            payload["temperature"] = request.temperature

        return payload

    def _log_transport(self, event: str, data: dict[str, object]) -> None:
        self._logger.debug("%s %s", event, stringify(data))


def _mock_response(request: ChatRequest) -> ChatResponse:
    text = _MOCK_NOTICE.format(message=_last_user_text(request))
    if request.tools:
        text += f"**Available tools:** {len(request.tools)}\n"

    return ChatResponse(
        id="mock-response",
        model="mock",
        content=(TextBlock(text=text),),
        stop_reason=StopReason.END_TURN.value,
        usage=Usage(),
    )


def _last_user_text(request: ChatRequest) -> str:
    for message in reversed(request.messages):
        if message.role is not MessageRole.USER:
            continue
        first = message.content[0]
        if isinstance(first, TextBlock):
            return first.text
    return ""


__all__ = ["ChatClient", "DEFAULT_MAX_TOKENS"]
