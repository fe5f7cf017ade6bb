"""Parsers that turn Messages API response documents into ChatResponse objects."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from copiloop.chat.types import ChatResponse, ProtocolError, RawBlock, TextBlock, ToolUseBlock, Usage


def decode_body(raw: str | bytes) -> dict[str, Any]:
    """Decode a raw response body into a JSON object."""

    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"failed to parse response JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ProtocolError("response body is not a JSON object")
    return payload


def parse_response(payload: Mapping[str, Any]) -> ChatResponse:
    content = payload.get("content")
    if not isinstance(content, list):
        raise ProtocolError("response missing content list")

    blocks = tuple(_parse_block(item) for item in content)

    stop_reason = payload.get("stop_reason")
    if stop_reason is not None and not isinstance(stop_reason, str):
        raise ProtocolError("stop_reason must be a string")

    stop_sequence = payload.get("stop_sequence")
    return ChatResponse(
        id=str(payload.get("id") or ""),
        model=str(payload.get("model") or ""),
        content=blocks,
        stop_reason=stop_reason,
        stop_sequence=stop_sequence if isinstance(stop_sequence, str) else None,
        usage=_parse_usage(payload.get("usage")),
    )


def _parse_block(item: Any) -> TextBlock | ToolUseBlock | RawBlock:
    if not isinstance(item, dict):
        raise ProtocolError("content block must be an object")

    block_type = item.get("type")
    if block_type == "text":
        text = item.get("text")
        if not isinstance(text, str):
            raise ProtocolError("text block missing text")
        return TextBlock(text=text)

    if block_type == "tool_use":
        call_id = item.get("id")
        name = item.get("name")
        if not isinstance(call_id, str) or not call_id.strip():
            raise ProtocolError("tool_use block missing id")
        if not isinstance(name, str) or not name.strip():
            raise ProtocolError("tool_use block missing name")
        return ToolUseBlock(id=call_id, name=name, input=item.get("input", {}))

    # Unknown block types (thinking, server tools...) are echoed back untouched.
    return RawBlock(data=dict(item))


def _parse_usage(raw: Any) -> Usage:
    if not isinstance(raw, dict):
        return Usage()
    return Usage(
        input_tokens=_as_int(raw.get("input_tokens")),
        output_tokens=_as_int(raw.get("output_tokens")),
    )


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    return 0


__all__ = ["decode_body", "parse_response"]
