"""Tool contract, registry and module loading.

A tool module exposes ``register_tools(registry)``; ``load_tool_module``
imports it by dotted name and lets it populate a registry.
"""

from __future__ import annotations

import importlib
import logging

from copiloop.tools.base import (
    Tool,
    ToolCall,
    ToolContext,
    ToolDefinition,
    ToolHandler,
    ToolResult,
    encode_tool_content,
)
from copiloop.tools.registry import (
    DuplicateToolError,
    InvalidToolError,
    ToolError,
    ToolNotFoundError,
    ToolRegistry,
)

logger = logging.getLogger(__name__)

REGISTER_HOOK = "register_tools"


class ToolLoadError(ToolError):
    """Raised when a tool module cannot be imported or has no registration hook."""


def load_tool_module(registry: ToolRegistry, module_name: str) -> int:
    """Import ``module_name`` and call its ``register_tools(registry)`` hook.

    Returns how many tools the module added.
    """

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ToolLoadError(f"could not import tool module {module_name}: {exc}") from exc

    hook = getattr(module, REGISTER_HOOK, None)
    if not callable(hook):
        raise ToolLoadError(f"tool module {module_name} has no {REGISTER_HOOK}(registry) function")

    before = len(registry)
    hook(registry)
    added = len(registry) - before
    logger.debug("loaded %d tools from %s", added, module_name)
    return added


__all__ = [
    "DuplicateToolError",
    "InvalidToolError",
    "Tool",
    "ToolCall",
    "ToolContext",
    "ToolDefinition",
    "ToolError",
    "ToolHandler",
    "ToolLoadError",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolResult",
    "encode_tool_content",
    "load_tool_module",
]
