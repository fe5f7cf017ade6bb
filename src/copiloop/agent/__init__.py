"""Agent loop, progress events and self-correction."""

from __future__ import annotations

from .correction import (  # noqa: F401
    CorrectionResult,
    CorrectionStrategy,
    RetryExhaustedError,
    SelfCorrector,
    UnparsableResponseError,
    parse_with_correction,
    with_correction,
)
from .events import Event, EventStream, EventType, format_sse  # noqa: F401
from .loop import AgentLoop, HistoryMessage, RunInput, RunResult, RunStatus  # noqa: F401
from .prompts import SessionMode, build_system_prompt  # noqa: F401
