import asyncio
import json

import pytest
from pydantic import BaseModel

from copiloop.agent.correction import (
    CorrectionStrategy,
    RetryExhaustedError,
    SelfCorrector,
    UnparsableResponseError,
    extract_json,
    parse_with_correction,
    strip_code_fences,
    with_correction,
)
from copiloop.chat.types import ChatTimeoutError, MessageRole, UpstreamError
from copiloop.config import CorrectionConfig
from copiloop.errors import ErrorType
from copiloop.tools.registry import ToolNotFoundError


@pytest.mark.parametrize(
    "message, error_type, strategy, should_retry",
    [
        ("unexpected token in JSON", ErrorType.JSON_PARSE, CorrectionStrategy.REFORMAT, True),
        ("cannot unmarshal number", ErrorType.JSON_PARSE, CorrectionStrategy.REFORMAT, True),
        ("Syntax error near line 2", ErrorType.JSON_PARSE, CorrectionStrategy.REFORMAT, True),
        ("field name is required", ErrorType.VALIDATION, CorrectionStrategy.RETRY, True),
        ("Invalid step config", ErrorType.VALIDATION, CorrectionStrategy.RETRY, True),
        ("tool frobnicate not found", ErrorType.TOOL_NOT_FOUND, CorrectionStrategy.ALTERNATIVE, True),
        ("failed to execute step", ErrorType.TOOL_EXECUTION, CorrectionStrategy.RETRY, True),
        ("Rate exceeded", ErrorType.RATE_LIMIT, CorrectionStrategy.NONE, False),
        ("status 429", ErrorType.RATE_LIMIT, CorrectionStrategy.NONE, False),
        ("context deadline exceeded", ErrorType.TIMEOUT, CorrectionStrategy.NONE, False),
        ("request TIMEOUT", ErrorType.TIMEOUT, CorrectionStrategy.NONE, False),
        ("something odd happened", ErrorType.UNKNOWN, CorrectionStrategy.ASK, False),
    ],
)
def test_analyze_message_categories(message, error_type, strategy, should_retry) -> None:
    result = SelfCorrector().analyze(RuntimeError(message))

    assert result.error_type is error_type
    assert result.strategy is strategy
    assert result.should_retry is should_retry


def test_category_order_prefers_parse_over_validation() -> None:
    result = SelfCorrector().analyze(RuntimeError("invalid json payload"))

    assert result.error_type is ErrorType.JSON_PARSE


def test_analyze_is_deterministic() -> None:
    corrector = SelfCorrector()
    error = RuntimeError("missing field")

    assert corrector.analyze(error) == corrector.analyze(error)


def test_structured_kinds_win_over_message_text() -> None:
    corrector = SelfCorrector()

    # the message mentions "invalid" but the structured kind says rate limit
    assert corrector.analyze(UpstreamError(429, "invalid request")).error_type is ErrorType.RATE_LIMIT
    assert corrector.analyze(ChatTimeoutError("oops")).error_type is ErrorType.TIMEOUT
    assert corrector.analyze(ToolNotFoundError("x")).strategy is CorrectionStrategy.ALTERNATIVE
    assert corrector.analyze(TimeoutError()).error_type is ErrorType.TIMEOUT


def test_builtin_parse_and_validation_errors() -> None:
    class Model(BaseModel):
        value: int

    corrector = SelfCorrector()
    try:
        json.loads("{")
    except json.JSONDecodeError as exc:
        assert corrector.analyze(exc).error_type is ErrorType.JSON_PARSE

    try:
        Model.model_validate({"value": "x"})
    except Exception as exc:
        assert corrector.analyze(exc).error_type is ErrorType.VALIDATION


@pytest.mark.parametrize(
    "flag, message, error_type",
    [
        ("retry_on_parse_error", "bad json", ErrorType.JSON_PARSE),
        ("retry_on_validation", "missing field", ErrorType.VALIDATION),
        ("retry_on_tool_error", "execution failed", ErrorType.TOOL_EXECUTION),
    ],
)
def test_disabled_flags_make_errors_fatal(flag, message, error_type) -> None:
    corrector = SelfCorrector(CorrectionConfig(**{flag: False}))

    result = corrector.analyze(RuntimeError(message))

    assert result.error_type is error_type
    assert result.strategy is CorrectionStrategy.NONE
    assert result.should_retry is False


def test_tool_not_found_always_retryable_even_with_flags_off() -> None:
    config = CorrectionConfig(retry_on_parse_error=False, retry_on_validation=False, retry_on_tool_error=False)

    result = SelfCorrector(config).analyze(RuntimeError("tool ghost not found"))

    assert result.should_retry is True


def test_retry_messages() -> None:
    corrector = SelfCorrector(available_tools=["list_blocks", "get_workflow"])

    reformat = corrector.retry_message(corrector.analyze(RuntimeError("json error")))
    validation = corrector.retry_message(corrector.analyze(RuntimeError("name is required")))
    alternative = corrector.retry_message(corrector.analyze(ToolNotFoundError("ghost")))
    unknown = corrector.retry_message(corrector.analyze(RuntimeError("weird")))

    assert reformat.role is MessageRole.USER
    assert "valid JSON" in reformat.content[0].text
    assert "name is required" in validation.content[0].text
    assert "tool ghost not found" in alternative.content[0].text
    assert "list_blocks, get_workflow" in alternative.content[0].text
    assert unknown is None


@pytest.mark.asyncio
async def test_with_correction_returns_first_success() -> None:
    calls = 0

    def fn():
        nonlocal calls
        calls += 1
        return "ok"

    assert await with_correction(fn) == "ok"
    assert calls == 1


@pytest.mark.asyncio
async def test_with_correction_stops_after_max_retries_plus_one() -> None:
    calls = 0

    async def fn():
        nonlocal calls
        calls += 1
        raise RuntimeError("invalid payload")

    with pytest.raises(RetryExhaustedError) as excinfo:
        await with_correction(fn, max_retries=3)

    assert calls == 4
    assert excinfo.value.attempt == 4
    assert excinfo.value.correction.error_type is ErrorType.VALIDATION
    assert isinstance(excinfo.value.original, RuntimeError)
    assert excinfo.value.__cause__ is excinfo.value.original


@pytest.mark.asyncio
async def test_with_correction_does_not_retry_fatal_errors() -> None:
    calls = 0

    def fn():
        nonlocal calls
        calls += 1
        raise RuntimeError("429 too many requests")

    with pytest.raises(RetryExhaustedError) as excinfo:
        await with_correction(fn, max_retries=3)

    assert calls == 1
    assert excinfo.value.attempt == 1
    assert excinfo.value.correction.error_type is ErrorType.RATE_LIMIT


@pytest.mark.asyncio
async def test_with_correction_recovers_and_reports_retries() -> None:
    attempts: list[int] = []
    outcomes = [RuntimeError("parse error"), RuntimeError("missing key"), "value"]

    def fn():
        item = outcomes.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def on_retry(correction, attempt):
        attempts.append(attempt)

    result = await with_correction(fn, on_retry=on_retry)

    assert result == "value"
    assert attempts == [1, 2]


@pytest.mark.asyncio
async def test_with_correction_uses_corrector_config() -> None:
    calls = 0

    def fn():
        nonlocal calls
        calls += 1
        raise RuntimeError("bad json")

    with pytest.raises(RetryExhaustedError):
        await with_correction(fn, corrector=SelfCorrector(CorrectionConfig(max_retries=1)))

    assert calls == 2


@pytest.mark.asyncio
async def test_with_correction_does_not_swallow_cancellation() -> None:
    async def fn():
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await with_correction(fn)


def test_parse_direct_json() -> None:
    assert parse_with_correction('{"a": 1}') == {"a": 1}
    assert parse_with_correction(b"[1, 2]") == [1, 2]


def test_parse_fenced_json() -> None:
    assert parse_with_correction('```json\n{"a":1}\n```') == {"a": 1}
    assert parse_with_correction("```\n[1]\n```") == [1]


def test_parse_json_embedded_in_prose() -> None:
    text = 'Here is the plan: {"steps": [{"name": "fetch"}], "note": "use } carefully"} hope it helps'

    assert parse_with_correction(text) == {"steps": [{"name": "fetch"}], "note": "use } carefully"}


def test_parse_with_model_validation() -> None:
    class Plan(BaseModel):
        steps: list[str]

    plan = parse_with_correction('```json\n{"steps": ["a", "b"]}\n```', Plan)

    assert plan == Plan(steps=["a", "b"])


def test_parse_with_model_validation_failure() -> None:
    class Plan(BaseModel):
        steps: list[str]

    with pytest.raises(UnparsableResponseError):
        parse_with_correction('{"other": 1}', Plan)


def test_parse_failure_raises_unparsable() -> None:
    with pytest.raises(UnparsableResponseError, match="failed to parse JSON from response") as excinfo:
        parse_with_correction("no json here")

    assert excinfo.value.error_type is ErrorType.JSON_PARSE


def test_strip_code_fences_variants() -> None:
    assert strip_code_fences('  ```json\n{"a":1}\n```  ') == '{"a":1}'
    assert strip_code_fences("```jsonc\n{}\n```") == "{}"
    assert strip_code_fences('{"a":1}') == '{"a":1}'


def test_extract_json_picks_first_bracket() -> None:
    assert extract_json('prefix [1, {"a": 2}] suffix {"b": 3}') == '[1, {"a": 2}]'
    assert extract_json('x {"a": "[not closed"} y') == '{"a": "[not closed"}'
    assert extract_json("no brackets") is None
    assert extract_json("{ never closed") is None
