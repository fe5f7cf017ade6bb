"""Concurrency-safe tool catalog.

Registration is rare (normally at startup) while lookups happen on every
agent iteration, so writers serialize on a lock and publish a fresh
read-only snapshot; readers only ever dereference the current snapshot.
"""

from __future__ import annotations

import inspect
import logging
import threading
from collections.abc import Iterable
from types import MappingProxyType
from typing import Any

from copiloop.errors import CopiloopError, ErrorType
from copiloop.tools.base import Tool, ToolContext, ToolDefinition

logger = logging.getLogger(__name__)


class ToolError(CopiloopError):
    """Base class for registry errors."""


class InvalidToolError(ToolError):
    """Raised when a tool lacks a name or a handler."""

    error_type = ErrorType.VALIDATION


class DuplicateToolError(ToolError):
    """Raised when a tool name is already registered."""


class ToolNotFoundError(ToolError):
    """Raised when executing a tool name that was never registered."""

    error_type = ErrorType.TOOL_NOT_FOUND

    def __init__(self, name: str) -> None:
        super().__init__(f"tool {name} not found")
        self.name = name


class ToolRegistry:
    def __init__(self, tools: Iterable[Tool] | None = None) -> None:
        self._write_lock = threading.Lock()
        self._tools: MappingProxyType[str, Tool] = MappingProxyType({})
        for tool in tools or ():
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if not tool.name or not tool.name.strip():
            raise InvalidToolError("tool name is required")
        if tool.handler is None or not callable(tool.handler):
            raise InvalidToolError(f"tool handler is required for tool {tool.name}")

        with self._write_lock:
            if tool.name in self._tools:
                raise DuplicateToolError(f"tool {tool.name} already registered")
            self._tools = MappingProxyType({**self._tools, tool.name: tool})

        logger.debug("registered tool: %s", tool.name)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def list_definitions(self) -> list[ToolDefinition]:
        """Definitions for every registered tool; callers must not rely on order."""

        return [tool.definition() for tool in self._tools.values()]

    async def execute(self, context: ToolContext, name: str, tool_input: Any) -> Any:
        """Run a tool's handler and return its result.

        Handler exceptions propagate unchanged so the caller decides how to
        surface them. Coroutine handlers are awaited in the caller's task.
        """

        tool = self._tools.get(name)
        if tool is None or tool.handler is None:
            raise ToolNotFoundError(name)

        result = tool.handler(context, tool_input)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


__all__ = [
    "DuplicateToolError",
    "InvalidToolError",
    "ToolError",
    "ToolNotFoundError",
    "ToolRegistry",
]
