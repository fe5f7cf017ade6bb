"""Domain models for the Messages chat client."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeAlias

from copiloop.errors import CopiloopError, ErrorType
from copiloop.tools.base import ToolCall, ToolDefinition, ToolResult, encode_tool_content


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class StopReason(str, Enum):
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"


@dataclass(frozen=True, slots=True)
class TextBlock:
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True, slots=True)
class ToolUseBlock:
    id: str
    name: str
    input: Any = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.id.strip():
            raise ValueError("tool_use id cannot be empty")
        if not self.name.strip():
            raise ValueError("tool_use name cannot be empty")

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


@dataclass(frozen=True, slots=True)
class ToolResultBlock:
    """Tool output sent back to the model; ``content`` is already JSON text."""

    tool_use_id: str
    content: str
    is_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "tool_result", "tool_use_id": self.tool_use_id, "content": self.content}
        if self.is_error:
            data["is_error"] = True
        return data

    @classmethod
    def from_result(cls, result: ToolResult) -> ToolResultBlock:
        return cls(
            tool_use_id=result.tool_use_id,
            content=encode_tool_content(result.content),
            is_error=result.is_error,
        )


@dataclass(frozen=True, slots=True)
class RawBlock:
    """Content block of a type this client does not model, kept verbatim."""

    data: Mapping[str, Any]

    @property
    def type(self) -> str:
        return str(self.data.get("type", ""))

    def to_dict(self) -> dict[str, Any]:
        return dict(self.data)


ContentBlock: TypeAlias = TextBlock | ToolUseBlock | ToolResultBlock | RawBlock


@dataclass(frozen=True, slots=True)
class Message:
    role: MessageRole
    content: tuple[ContentBlock, ...]

    def __post_init__(self) -> None:
        if not self.content:
            raise ValueError("content cannot be empty")

    @classmethod
    def text(cls, role: MessageRole | str, text: str) -> Message:
        return cls(role=MessageRole(role), content=(TextBlock(text=text),))

    @classmethod
    def tool_results(cls, results: Iterable[ToolResult]) -> Message:
        return cls(role=MessageRole.USER, content=tuple(ToolResultBlock.from_result(r) for r in results))

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role.value, "content": [block.to_dict() for block in self.content]}


@dataclass(frozen=True, slots=True)
class ChatRequest:
    messages: Sequence[Message]
    system_prompt: str = ""
    tools: Sequence[ToolDefinition] = field(default_factory=tuple)
    max_tokens: int | None = None
    temperature: float | None = None
    model: str | None = None

    def __post_init__(self) -> None:
        if not self.messages:
            raise ValueError("messages cannot be empty")
        if isinstance(self.model, str) and not self.model.strip():
            raise ValueError("model cannot be empty string")
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise ValueError("max_tokens must be positive when provided")


@dataclass(frozen=True, slots=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True, slots=True)
class ChatResponse:
    id: str
    model: str
    content: tuple[TextBlock | ToolUseBlock | RawBlock, ...]
    stop_reason: str | None
    stop_sequence: str | None = None
    usage: Usage = field(default_factory=Usage)

    def has_tool_use(self) -> bool:
        return self.stop_reason == StopReason.TOOL_USE.value

    def is_end_turn(self) -> bool:
        return self.stop_reason == StopReason.END_TURN.value

    def tool_calls(self) -> list[ToolCall]:
        return [
            ToolCall(id=block.id, name=block.name, input=block.input)
            for block in self.content
            if isinstance(block, ToolUseBlock)
        ]

    def text(self) -> str:
        return "".join(block.text for block in self.content if isinstance(block, TextBlock))

    def to_message(self) -> Message:
        """The assistant turn exactly as received, for appending to a conversation."""

        return Message(role=MessageRole.ASSISTANT, content=self.content)


class ChatError(CopiloopError):
    """Base class for chat client errors."""


class UpstreamError(ChatError):
    """Non-2xx answer from the chat API."""

    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"API error (status {status}): {body}")
        self.status = status
        self.body = body
        if status == 429:
            self.error_type = ErrorType.RATE_LIMIT


class ProtocolError(ChatError):
    """Response body is not JSON or not a valid Messages response."""

    error_type = ErrorType.JSON_PARSE


class ChatTimeoutError(ChatError):
    error_type = ErrorType.TIMEOUT


class TransportError(ChatError):
    """Request could not be sent or the connection failed."""


__all__ = [
    "ChatError",
    "ChatRequest",
    "ChatResponse",
    "ChatTimeoutError",
    "ContentBlock",
    "Message",
    "MessageRole",
    "ProtocolError",
    "RawBlock",
    "StopReason",
    "TextBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "TransportError",
    "Usage",
    "UpstreamError",
]
