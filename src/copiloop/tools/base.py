"""Tool contract shared by the registry and the agent loop."""

from __future__ import annotations

import inspect
import json
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field, is_dataclass
from pathlib import Path
from typing import Any, TypeAlias

from pydantic import BaseModel


@dataclass(frozen=True, slots=True)
class ToolContext:
    """Identifiers bound for the duration of one agent run."""

    tenant_id: str
    user_id: str
    project_id: str | None = None
    session_id: str | None = None


ToolHandler: TypeAlias = Callable[[ToolContext, Any], Any]


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """Tool advertisement sent to the chat API. Never carries the handler."""

    name: str
    description: str
    input_schema: Mapping[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": dict(self.input_schema),
        }


@dataclass(frozen=True, slots=True)
class Tool:
    name: str
    description: str
    input_schema: Mapping[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    handler: ToolHandler | None = None

    def definition(self) -> ToolDefinition:
        return ToolDefinition(name=self.name, description=self.description, input_schema=self.input_schema)

    @classmethod
    def from_model(
        cls,
        name: str,
        description: str,
        input_model: type[BaseModel],
        handler: Callable[[ToolContext, Any], Any],
    ) -> Tool:
        """Build a tool whose schema and input validation come from a Pydantic model.

        The handler receives a validated ``input_model`` instance. Pydantic
        results are dumped to plain JSON-compatible data.
        """

        schema = input_model.model_json_schema()
        schema.setdefault("additionalProperties", False)

        async def _validated(context: ToolContext, raw_input: Any) -> Any:
            request = input_model.model_validate(raw_input or {})
            result = handler(context, request)
            if inspect.isawaitable(result):
                result = await result
            if isinstance(result, BaseModel):
                return result.model_dump(mode="json")
            return result

        return cls(name=name, description=description, input_schema=schema, handler=_validated)


@dataclass(frozen=True, slots=True)
class ToolCall:
    id: str
    name: str
    input: Any = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolResult:
    tool_use_id: str
    content: Any
    is_error: bool = False

    @classmethod
    def error(cls, tool_use_id: str, message: str) -> ToolResult:
        return cls(tool_use_id=tool_use_id, content={"error": message}, is_error=True)


def encode_tool_content(content: Any) -> str:
    """JSON-encode a tool result for the ``tool_result`` content string."""

    return json.dumps(content, default=_json_default, ensure_ascii=False)


def _json_default(obj: Any) -> Any:
    """Best-effort conversion for dataclasses/models/paths used in tool outputs."""

    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.decode(errors="ignore")
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return str(obj)


__all__ = [
    "Tool",
    "ToolCall",
    "ToolContext",
    "ToolDefinition",
    "ToolHandler",
    "ToolResult",
    "encode_tool_content",
]
