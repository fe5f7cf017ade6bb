"""Base error type and the error kinds used for self-correction.

Errors raised inside copiloop carry a structured ``error_type`` so the
self-corrector does not have to guess from message text. Errors coming from
opaque sources (tool handlers, third-party libraries) fall back to message
matching.
"""

from __future__ import annotations

from enum import Enum


class ErrorType(str, Enum):
    UNKNOWN = "unknown"
    JSON_PARSE = "json_parse"
    VALIDATION = "validation"
    TOOL_NOT_FOUND = "tool_not_found"
    TOOL_EXECUTION = "tool_execution"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"


class CopiloopError(Exception):
    """Base class for all copiloop errors."""

    error_type: ErrorType | None = None


__all__ = ["CopiloopError", "ErrorType"]
