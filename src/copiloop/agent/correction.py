"""Error classification and recovery helpers.

``SelfCorrector.analyze`` maps any exception to an error kind and a recovery
strategy. ``with_correction`` retries an operation while the classification
allows it, and ``parse_with_correction`` pulls JSON out of chatty model output.
"""

from __future__ import annotations

import inspect
import json
import logging
import re
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError

from copiloop.chat.types import Message, MessageRole
from copiloop.config import CorrectionConfig
from copiloop.errors import CopiloopError, ErrorType

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FENCE_OPEN = re.compile(r"^```[\w+-]*")
_FENCE_CLOSE = "```"

_REFORMAT_MESSAGE = (
    "The previous response could not be parsed as JSON. "
    "Return only valid JSON, without markdown code blocks."
)


class CorrectionStrategy(str, Enum):
    NONE = "none"
    RETRY = "retry"
    REFORMAT = "reformat"
    ALTERNATIVE = "alternative"
    ASK = "ask"


@dataclass(frozen=True, slots=True)
class CorrectionResult:
    strategy: CorrectionStrategy
    should_retry: bool
    error_type: ErrorType
    retry_message: str = ""


class RetryExhaustedError(CopiloopError):
    """Raised by ``with_correction`` once an error is fatal or retries run out."""

    def __init__(self, original: BaseException, correction: CorrectionResult, attempt: int) -> None:
        super().__init__(f"retryable error (attempt {attempt}): {original}")
        self.original = original
        self.correction = correction
        self.attempt = attempt
        self.error_type = correction.error_type


class UnparsableResponseError(CopiloopError):
    error_type = ErrorType.JSON_PARSE

    def __init__(self, message: str = "failed to parse JSON from response") -> None:
        super().__init__(message)


class SelfCorrector:
    """Classifies errors and produces corrective instructions for the model."""

    def __init__(self, config: CorrectionConfig | None = None, available_tools: Iterable[str] | None = None) -> None:
        self.config = config or CorrectionConfig()
        self.available_tools = tuple(available_tools or ())

    def analyze(self, error: BaseException) -> CorrectionResult:
        message = str(error)
        return self._correction_for(_classify(error, message), message)

    def retry_message(self, result: CorrectionResult) -> Message | None:
        if result.strategy in (CorrectionStrategy.REFORMAT, CorrectionStrategy.RETRY, CorrectionStrategy.ALTERNATIVE):
            return Message.text(MessageRole.USER, result.retry_message)
        return None

    def _correction_for(self, error_type: ErrorType, message: str) -> CorrectionResult:
        if error_type is ErrorType.JSON_PARSE:
            if not self.config.retry_on_parse_error:
                return _fatal(error_type)
            return CorrectionResult(CorrectionStrategy.REFORMAT, True, error_type, _REFORMAT_MESSAGE)

        if error_type is ErrorType.VALIDATION:
            if not self.config.retry_on_validation:
                return _fatal(error_type)
            text = f"A validation error occurred: {message}\n\nFix this error and try again."
            return CorrectionResult(CorrectionStrategy.RETRY, True, error_type, text)

        if error_type is ErrorType.TOOL_NOT_FOUND:
            text = f"The requested tool was not found: {message}\n\nUse only the available tools."
            if self.available_tools:
                text += f" Available tools: {', '.join(self.available_tools)}."
            return CorrectionResult(CorrectionStrategy.ALTERNATIVE, True, error_type, text)

        if error_type is ErrorType.TOOL_EXECUTION:
            if not self.config.retry_on_tool_error:
                return _fatal(error_type)
            text = f"Tool execution failed: {message}\n\nTry a different approach."
            return CorrectionResult(CorrectionStrategy.RETRY, True, error_type, text)

        if error_type in (ErrorType.RATE_LIMIT, ErrorType.TIMEOUT):
            return _fatal(error_type)

        return CorrectionResult(CorrectionStrategy.ASK, False, ErrorType.UNKNOWN)


def _fatal(error_type: ErrorType) -> CorrectionResult:
    return CorrectionResult(CorrectionStrategy.NONE, False, error_type)


def _classify(error: BaseException, message: str) -> ErrorType:
    structured = getattr(error, "error_type", None)
    if isinstance(structured, ErrorType):
        return structured
    if isinstance(error, json.JSONDecodeError):
        return ErrorType.JSON_PARSE
    if isinstance(error, ValidationError):
        return ErrorType.VALIDATION
    if isinstance(error, TimeoutError):
        return ErrorType.TIMEOUT
    return _classify_message(message)


def _classify_message(message: str) -> ErrorType:
    # case-insensitive: "Invalid input" is a retryable validation error, not unknown
    text = message.lower()

    if any(word in text for word in ("json", "unmarshal", "parse", "syntax")):
        return ErrorType.JSON_PARSE
    if any(word in text for word in ("validation", "invalid", "required", "missing")):
        return ErrorType.VALIDATION
    if "tool" in text and "not found" in text:
        return ErrorType.TOOL_NOT_FOUND
    if "execute" in text or "execution" in text:
        return ErrorType.TOOL_EXECUTION
    if any(word in text for word in ("rate", "limit", "429")):
        return ErrorType.RATE_LIMIT
    if "timeout" in text or "deadline" in text:
        return ErrorType.TIMEOUT
    return ErrorType.UNKNOWN


async def with_correction(
    fn: Callable[[], T | Awaitable[T]],
    *,
    corrector: SelfCorrector | None = None,
    max_retries: int | None = None,
    on_retry: Callable[[CorrectionResult, int], Any] | None = None,
) -> T:
    """Call ``fn`` until it succeeds, the error is fatal, or retries run out.

    ``fn`` is called at most ``max_retries + 1`` times. ``on_retry`` receives
    the correction and the failed attempt number before the next call. The
    final failure is raised as ``RetryExhaustedError`` chained to the original
    exception.
    """

    corrector = corrector or SelfCorrector()
    retries = corrector.config.max_retries if max_retries is None else max(0, max_retries)

    attempt = 0
    while True:
        attempt += 1
        try:
            result = fn()
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as exc:
            correction = corrector.analyze(exc)
            if not correction.should_retry or attempt > retries:
                raise RetryExhaustedError(exc, correction, attempt) from exc

            logger.info(
                "attempt %d failed with %s, retrying (%s)",
                attempt,
                correction.error_type.value,
                correction.strategy.value,
            )
            if on_retry is not None:
                hook_result = on_retry(correction, attempt)
                if inspect.isawaitable(hook_result):
                    await hook_result


def parse_with_correction(data: str | bytes, model: Any = None) -> Any:
    """Parse JSON from model output, tolerating code fences and surrounding prose.

    With ``model`` (any type pydantic can validate) the parsed value must also
    validate against it; the validated value is returned.
    """

    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
    adapter = TypeAdapter(model) if model is not None else None

    for candidate in _candidates(text):
        try:
            value = json.loads(candidate)
            if adapter is not None:
                value = adapter.validate_python(value)
        except (json.JSONDecodeError, ValidationError):
            continue
        return value

    raise UnparsableResponseError()


def _candidates(text: str) -> Iterable[str]:
    yield text
    yield strip_code_fences(text)
    extracted = extract_json(text)
    if extracted is not None:
        yield extracted


def strip_code_fences(text: str) -> str:
    cleaned = _FENCE_OPEN.sub("", text.strip(), count=1)
    if cleaned.endswith(_FENCE_CLOSE):
        cleaned = cleaned[: -len(_FENCE_CLOSE)]
    return cleaned.strip()


def extract_json(text: str) -> str | None:
    """Return the first balanced ``{...}`` or ``[...]`` span, or None."""

    starts = [index for index in (text.find("{"), text.find("[")) if index != -1]
    if not starts:
        return None

    start = min(starts)
    end_char = "}" if text[start] == "{" else "]"
    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0 and char == end_char:
                return text[start : index + 1]

    return None


__all__ = [
    "CorrectionResult",
    "CorrectionStrategy",
    "RetryExhaustedError",
    "SelfCorrector",
    "UnparsableResponseError",
    "extract_json",
    "parse_with_correction",
    "strip_code_fences",
    "with_correction",
]
