"""Logging setup for copiloop.

Each agent session can write to ``~/.copiloop/sessions/<session>/log.txt``.
The session logger is isolated (no propagation) and avoids duplicate handlers
across repeated initializations.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

from copiloop.config import LogLevel
from copiloop.paths import get_copiloop_home

LOGGER_NAMESPACE = "copiloop"
MAX_LOG_PAYLOAD_CHARS = 2000


def session_log_path(session_id: str, base_dir: Path | None = None) -> Path:
    if not session_id or session_id in (".", "..") or "/" in session_id or "\\" in session_id:
        raise ValueError(f"invalid session id: {session_id!r}")
    base = base_dir or (get_copiloop_home() / "sessions")
    return base / session_id / "log.txt"


def configure_session_logger(
    session_id: str,
    *,
    log_level: LogLevel | str = LogLevel.INFO,
    base_dir: Path | None = None,
) -> logging.Logger:
    """Configure and return a file logger scoped to a session.

    Subsequent calls with the same session_id return the same logger without
    duplicating handlers.
    """

    logger = logging.getLogger(f"{LOGGER_NAMESPACE}.session.{session_id}")

    level_value = to_logging_level(log_level)
    logger.setLevel(level_value)
    logger.propagate = False

    if not logger.handlers:
        path = session_log_path(session_id, base_dir)
        path.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setLevel(level_value)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)

    return logger


def configure_console_logging(*, debug_enabled: bool, level: LogLevel | str) -> None:
    root_level = logging.INFO if debug_enabled else logging.WARNING

    logging.basicConfig(
        level=root_level,
        stream=sys.__stderr__,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )

    logging.getLogger(LOGGER_NAMESPACE).setLevel(to_logging_level(level))

    # Silence noisy client libraries on the console.
    for noisy in ("httpx", "httpcore"):
        logger = logging.getLogger(noisy)
        logger.setLevel(logging.WARNING)
        logger.propagate = False


def to_logging_level(value: LogLevel | str) -> int:
    mapping = {
        LogLevel.DEBUG: logging.DEBUG,
        LogLevel.INFO: logging.INFO,
        LogLevel.WARNING: logging.WARNING,
        LogLevel.ERROR: logging.ERROR,
    }
    if isinstance(value, LogLevel):
        return mapping[value]
    if isinstance(value, str):
        try:
            return mapping[LogLevel(value)]
        except ValueError:
            return logging.WARNING
    return logging.WARNING


def stringify(obj: Any, *, limit: int = MAX_LOG_PAYLOAD_CHARS) -> str:
    """Render a payload for a log line, truncating large values."""

    try:
        text = json.dumps(obj, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        text = repr(obj)

    if len(text) > limit:
        return f"{text[:limit]}... [truncated]"
    return text


__all__ = [
    "configure_console_logging",
    "configure_session_logger",
    "session_log_path",
    "stringify",
    "to_logging_level",
]
