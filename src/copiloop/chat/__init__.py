"""Messages API chat client package."""

from __future__ import annotations

from .client import DEFAULT_MAX_TOKENS, ChatClient  # noqa: F401
from .parsing import decode_body, parse_response  # noqa: F401
from .transport import ChatTransport, HttpMessagesTransport, MockMessagesTransport  # noqa: F401
from .types import (  # noqa: F401
    ChatError,
    ChatRequest,
    ChatResponse,
    ChatTimeoutError,
    ContentBlock,
    Message,
    MessageRole,
    ProtocolError,
    RawBlock,
    StopReason,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    TransportError,
    UpstreamError,
    Usage,
)
