"""Multi-step reasoning loop that alternates chat calls and tool execution."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from copiloop.agent.events import EventStream, EventType
from copiloop.agent.prompts import SessionMode, build_system_prompt
from copiloop.chat.client import ChatClient
from copiloop.chat.types import ChatRequest, Message, MessageRole, ToolResultBlock
from copiloop.config import AgentConfig
from copiloop.logging import stringify
from copiloop.tools.base import ToolCall, ToolContext, ToolResult
from copiloop.tools.registry import ToolRegistry

MAX_ITERATIONS_MESSAGE = "Reached the maximum number of iterations. Stopping here."
THINKING_MESSAGE = "Reasoning..."


class RunStatus(str, Enum):
    DONE = "done"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"


@dataclass(frozen=True, slots=True)
class HistoryMessage:
    """A persisted chat row supplied by the caller."""

    role: str
    content: str


@dataclass(frozen=True, slots=True)
class RunInput:
    tenant_id: str
    user_id: str
    message: str
    mode: SessionMode | str | None = None
    project_id: str | None = None
    session_id: str | None = None
    history: Sequence[HistoryMessage] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.message.strip():
            raise ValueError("message cannot be empty")


@dataclass(frozen=True, slots=True)
class RunResult:
    response: str
    tools_used: list[str]
    iterations: int
    total_tokens: int
    status: RunStatus = RunStatus.DONE
    messages: tuple[Message, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "response": self.response,
            "tools_used": list(self.tools_used),
            "iterations": self.iterations,
            "total_tokens": self.total_tokens,
            "status": self.status.value,
        }


@dataclass(frozen=True, slots=True)
class _ToolOutcome:
    call: ToolCall
    result: ToolResult
    error: str | None = None


class AgentLoop:
    """Drives one user turn to completion against the chat API and the tool registry."""

    def __init__(
        self,
        chat_client: ChatClient,
        registry: ToolRegistry,
        config: AgentConfig | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._chat = chat_client
        self._registry = registry
        self._config = config or AgentConfig()
        self._logger = logger or logging.getLogger(__name__)

    async def run(self, run_input: RunInput, events: EventStream | None = None) -> RunResult:
        """Run the loop until the model ends its turn or the iteration cap is hit.

        Chat failures emit an ``error`` event and propagate unchanged. Tool
        failures are reported back to the model as error results.
        """

        context = ToolContext(
            tenant_id=run_input.tenant_id,
            user_id=run_input.user_id,
            project_id=run_input.project_id,
            session_id=run_input.session_id,
        )
        tool_definitions = self._registry.list_definitions()
        system_prompt = build_system_prompt(run_input.mode, run_input.project_id, tool_definitions)
        messages = self._messages_from_history(run_input.history)
        messages.append(Message.text(MessageRole.USER, run_input.message))

        tools_used: list[str] = []
        total_tokens = 0

        for iteration in range(self._config.max_iterations):
            self._logger.info("agent loop iteration %d (messages=%d)", iteration, len(messages))
            _emit(events, EventType.THINKING, {"iteration": iteration, "message": THINKING_MESSAGE})

            request = ChatRequest(
                system_prompt=system_prompt,
                messages=tuple(messages),
                tools=tuple(tool_definitions),
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
            )
            try:
                response = await self._chat.chat_with_tools(request)
            except Exception as exc:
                self._logger.error("chat call failed: %s", exc)
                _emit(events, EventType.ERROR, {"error": str(exc)})
                raise

            total_tokens += response.usage.total

            if response.has_tool_use():
                calls = response.tool_calls()
                if not calls:
                    self._logger.warning("tool_use stop without tool_use blocks, skipping tool batch")
                    continue
                for call in calls:
                    _emit(events, EventType.TOOL_CALL, {"tool": call.name, "tool_use_id": call.id, "input": call.input})
                    tools_used.append(call.name)

                outcomes, tool_message = await self._run_tool_batch(context, calls)
                messages.append(response.to_message())
                messages.append(tool_message)
                _emit_tool_results(events, outcomes, tool_message)
                continue

            text = response.text()
            if text:
                _emit(events, EventType.PARTIAL_TEXT, {"text": text})

            if response.is_end_turn():
                _emit(events, EventType.COMPLETE, {"response": text})
                return RunResult(
                    response=text,
                    tools_used=tools_used,
                    iterations=iteration + 1,
                    total_tokens=total_tokens,
                    status=RunStatus.DONE,
                    messages=tuple(messages),
                )

        self._logger.warning("agent loop reached max iterations (%d)", self._config.max_iterations)
        return RunResult(
            response=MAX_ITERATIONS_MESSAGE,
            tools_used=tools_used,
            iterations=self._config.max_iterations,
            total_tokens=total_tokens,
            status=RunStatus.MAX_ITERATIONS_REACHED,
            messages=tuple(messages),
        )

    def _messages_from_history(self, history: Sequence[HistoryMessage]) -> list[Message]:
        limit = self._config.history_limit
        recent = list(history)[-limit:] if limit else []
        messages: list[Message] = []
        for row in recent:
            if row.role not in (MessageRole.USER.value, MessageRole.ASSISTANT.value):
                # system rows and anything else the API would reject
                continue
            messages.append(Message.text(row.role, row.content))
        return messages

    async def _run_tool_batch(self, context: ToolContext, calls: list[ToolCall]) -> tuple[list[_ToolOutcome], Message]:
        try:
            outcomes = [await self._execute_tool_call(context, call) for call in calls]
            return outcomes, Message.tool_results(outcome.result for outcome in outcomes)
        except Exception as exc:
            self._logger.exception("tool batch failed")
            first = calls[0]
            outcome = _ToolOutcome(call=first, result=ToolResult.error(first.id, str(exc)), error=str(exc))
            return [outcome], Message.tool_results([outcome.result])

    async def _execute_tool_call(self, context: ToolContext, call: ToolCall) -> _ToolOutcome:
        self._logger.info("executing tool %s input=%s", call.name, stringify(call.input))
        try:
            result = await self._registry.execute(context, call.name, call.input)
        except Exception as exc:
            self._logger.error("tool %s failed: %s", call.name, exc)
            return _ToolOutcome(call=call, result=ToolResult.error(call.id, str(exc)), error=str(exc))
        return _ToolOutcome(call=call, result=ToolResult(tool_use_id=call.id, content=result))


def _emit(events: EventStream | None, event_type: EventType, data: Mapping[str, Any]) -> None:
    if events is not None:
        events.emit(event_type, data)


def _emit_tool_results(events: EventStream | None, outcomes: list[_ToolOutcome], tool_message: Message) -> None:
    if events is None:
        return
    for outcome, block in zip(outcomes, tool_message.content, strict=True):
        data: dict[str, Any] = {"tool": outcome.call.name, "tool_use_id": outcome.call.id}
        if outcome.error is not None:
            data["is_error"] = True
            data["error"] = outcome.error
        else:
            # decoded from the block so the event payload is plain JSON
            assert isinstance(block, ToolResultBlock)
            data["result"] = json.loads(block.content)
        events.emit(EventType.TOOL_RESULT, data)


__all__ = [
    "AgentLoop",
    "HistoryMessage",
    "MAX_ITERATIONS_MESSAGE",
    "RunInput",
    "RunResult",
    "RunStatus",
]
