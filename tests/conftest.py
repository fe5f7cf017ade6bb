import pathlib
import sys
from collections.abc import Mapping
from typing import Any

import httpx
import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"

# Ensure src/ is importable when running tests without installing the package.
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from copiloop.chat.client import ChatClient  # noqa: E402
from copiloop.tools.base import Tool, ToolContext  # noqa: E402
from copiloop.tools.registry import ToolRegistry  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_copiloop_home(monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path):
    """Point COPILOOP_HOME and the API env at a sandbox so we never touch the real FS or network."""

    home = tmp_path / "copiloop-home"
    home.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("COPILOOP_HOME", str(home))
    for name in ("ANTHROPIC_API_KEY", "ANTHROPIC_BASE_URL", "ANTHROPIC_MODEL"):
        monkeypatch.delenv(name, raising=False)
    yield home


# ============================================================================
# Response documents
# ============================================================================


def text_response(
    text: str,
    *,
    stop_reason: str = "end_turn",
    input_tokens: int = 10,
    output_tokens: int = 5,
    response_id: str = "msg_text",
) -> dict[str, Any]:
    return {
        "id": response_id,
        "type": "message",
        "role": "assistant",
        "model": "claude-test",
        "content": [{"type": "text", "text": text}] if text else [],
        "stop_reason": stop_reason,
        "stop_sequence": None,
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
    }


def tool_use_response(
    *calls: tuple[str, str, Any],
    text: str = "",
    input_tokens: int = 20,
    output_tokens: int = 8,
    response_id: str = "msg_tools",
    stop_reason: str = "tool_use",
) -> dict[str, Any]:
    content: list[dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})
    for call_id, name, tool_input in calls:
        content.append({"type": "tool_use", "id": call_id, "name": name, "input": tool_input})
    return {
        "id": response_id,
        "type": "message",
        "role": "assistant",
        "model": "claude-test",
        "content": content,
        "stop_reason": stop_reason,
        "stop_sequence": None,
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
    }


@pytest.fixture
def text_doc():
    """Factory for end_turn response documents."""
    return text_response


@pytest.fixture
def tool_use_doc():
    """Factory for tool_use response documents."""
    return tool_use_response


# ============================================================================
# Chat transports and clients
# ============================================================================


class ScriptedTransport:
    """Return one scripted document (or raise one scripted exception) per send call."""

    def __init__(self, script: list[Mapping[str, Any] | BaseException]) -> None:
        self.script = list(script)
        self.payloads: list[dict[str, Any]] = []

    async def send(self, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        self.payloads.append(dict(payload))
        if not self.script:
            raise RuntimeError("no more scripted responses")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def scripted_transport():
    """Factory fixture for ScriptedTransport."""
    return ScriptedTransport


@pytest.fixture
def scripted_client():
    """Factory returning (client, transport) wired with an API key so the real path runs."""

    def _factory(*script: Mapping[str, Any] | BaseException) -> tuple[ChatClient, ScriptedTransport]:
        transport = ScriptedTransport(list(script))
        return ChatClient("test-key", transport=transport, default_model="claude-test"), transport

    return _factory


@pytest.fixture
def mock_http_handler():
    """Factory fixture for creating httpx request handlers with custom responses."""

    def _handler(
        status_code: int = 200,
        text: str = "",
        headers: dict[str, str] | None = None,
        record_request: dict[str, Any] | None = None,
    ):
        def handler(request: httpx.Request) -> httpx.Response:
            if record_request is not None:
                record_request["headers"] = dict(request.headers)
                record_request["url"] = str(request.url)
                record_request["body"] = request.content.decode()
            return httpx.Response(status_code, text=text, headers=headers or {}, request=request)

        return handler

    return _handler


@pytest.fixture
def mock_http_client(mock_http_handler):
    """Fixture factory that provides an httpx.AsyncClient with MockTransport."""

    def _client(handler=None):
        if handler is None:
            handler = mock_http_handler()
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _client


# ============================================================================
# Tools
# ============================================================================


class RecordingHandler:
    """Tool handler that records invocations and returns a fixed value."""

    def __init__(self, result: Any = None, error: Exception | None = None) -> None:
        self.result = {"ok": True} if result is None else result
        self.error = error
        self.calls: list[tuple[ToolContext, Any]] = []

    def __call__(self, context: ToolContext, tool_input: Any) -> Any:
        self.calls.append((context, tool_input))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def recording_handler():
    """Factory fixture for RecordingHandler."""
    return RecordingHandler


@pytest.fixture
def make_tool():
    """Factory for simple tools with a permissive object schema."""

    def _make(name: str, handler: Any = None, description: str | None = None) -> Tool:
        return Tool(
            name=name,
            description=description or f"{name} tool",
            input_schema={"type": "object", "properties": {}},
            handler=handler or RecordingHandler(),
        )

    return _make


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry()


@pytest.fixture
def tool_context() -> ToolContext:
    return ToolContext(tenant_id="tenant-1", user_id="user-1", project_id="proj-1", session_id="sess-1")


# ============================================================================
# Logging
# ============================================================================


class FakeLogger:
    """Lightweight in-memory fake logger that records calls."""

    def __init__(self, name: str = "fake") -> None:
        self.name = name
        self.info_calls: list[tuple[tuple[Any, ...], dict[str, Any]]] = []
        self.debug_calls: list[tuple[tuple[Any, ...], dict[str, Any]]] = []
        self.warning_calls: list[tuple[tuple[Any, ...], dict[str, Any]]] = []
        self.error_calls: list[tuple[tuple[Any, ...], dict[str, Any]]] = []

    def info(self, *args: Any, **kwargs: Any) -> None:
        self.info_calls.append((args, kwargs))

    def debug(self, *args: Any, **kwargs: Any) -> None:
        self.debug_calls.append((args, kwargs))

    def warning(self, *args: Any, **kwargs: Any) -> None:
        self.warning_calls.append((args, kwargs))

    def error(self, *args: Any, **kwargs: Any) -> None:
        self.error_calls.append((args, kwargs))

    def exception(self, *args: Any, **kwargs: Any) -> None:
        self.error_calls.append((args, kwargs))


@pytest.fixture
def fake_logger() -> type[FakeLogger]:
    """Provide FakeLogger class for injection."""
    return FakeLogger
