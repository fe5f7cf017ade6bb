"""Configuration models and enums for copiloop.

Single source of truth for settings and defaults. Values resolve in order:
CLI overrides, environment, ``config.toml``, built-in defaults.
"""

from __future__ import annotations

import os
import stat
import tomllib
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from copiloop.paths import default_config_path


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


DEFAULT_BASE_URL = "https://api.anthropic.com"
DEFAULT_MODEL_ID = "claude-sonnet-4-20250514"
EXPECTED_FILE_MODE = stat.S_IRUSR | stat.S_IWUSR  # 0o600


class AgentConfig(BaseModel):
    """Limits and sampling parameters for one agent run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_iterations: int = Field(default=20, ge=1)
    max_tokens: int = Field(default=4096, gt=0)
    temperature: float = Field(default=0.3, ge=0.0, le=1.0)
    history_limit: int = Field(default=20, ge=0)


class CorrectionConfig(BaseModel):
    """Retry policy for the self-corrector."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: int = Field(default=3, ge=0)
    retry_on_parse_error: bool = True
    retry_on_validation: bool = True
    retry_on_tool_error: bool = True


class Settings(BaseModel):
    """Resolved copiloop settings."""

    model_config = ConfigDict(frozen=True, validate_default=True, extra="forbid")

    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL_ID
    log_level: LogLevel = LogLevel.INFO
    agent: AgentConfig = Field(default_factory=AgentConfig)
    correction: CorrectionConfig = Field(default_factory=CorrectionConfig)
    event_buffer_size: int = Field(default=100, gt=0)

    @field_validator("api_key")
    @classmethod
    def _strip_api_key(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped if stripped else None

    @field_validator("model")
    @classmethod
    def _validate_model(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("model cannot be empty")
        return value.strip()

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, value: str) -> str:
        cleaned = value.strip().rstrip("/")
        if not cleaned:
            raise ValueError("base_url cannot be empty")
        return cleaned


def load_settings(
    cli_overrides: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
    config_path: Path | str | None = None,
) -> Settings:
    env = os.environ if env is None else env
    cli_overrides = cli_overrides or {}
    path = Path(config_path) if config_path else default_config_path()

    config_data: dict[str, Any] = {}
    if path.exists():
        config_data = _read_toml(path)
        if _get_config_value(config_data, "auth", "api_key"):
            _ensure_permissions(path)

    api_key = _first_value(
        _clean_str(cli_overrides.get("api_key")),
        _clean_str(env.get("ANTHROPIC_API_KEY")),
        _clean_str(_get_config_value(config_data, "auth", "api_key")),
    )

    base_url = _first_value(
        _clean_str(cli_overrides.get("base_url")),
        _clean_str(env.get("ANTHROPIC_BASE_URL")),
        _clean_str(_get_config_value(config_data, "model", "base_url")),
        DEFAULT_BASE_URL,
    )

    model = _first_value(
        _clean_str(cli_overrides.get("model")),
        _clean_str(env.get("ANTHROPIC_MODEL")),
        _clean_str(_get_config_value(config_data, "model", "id")),
        DEFAULT_MODEL_ID,
    )

    log_level = _coerce_enum(
        _first_value(
            _clean_str(cli_overrides.get("log_level")),
            _clean_str(_get_config_value(config_data, "logging", "log_level")),
        ),
        LogLevel,
        LogLevel.INFO,
    )

    agent_section = _section(config_data, "agent")
    agent_values = {key: agent_section[key] for key in AgentConfig.model_fields if key in agent_section}
    if cli_overrides.get("max_iterations") is not None:
        agent_values["max_iterations"] = cli_overrides["max_iterations"]

    correction_section = _section(config_data, "correction")
    correction_values = {
        key: correction_section[key] for key in CorrectionConfig.model_fields if key in correction_section
    }

    event_buffer_size = _first_value(agent_section.get("event_buffer_size"), 100)

    return Settings(
        api_key=api_key,
        base_url=base_url,
        model=model,
        log_level=log_level,
        agent=AgentConfig(**agent_values),
        correction=CorrectionConfig(**correction_values),
        event_buffer_size=event_buffer_size,
    )


def _ensure_permissions(path: Path) -> None:
    current_mode = stat.S_IMODE(path.stat().st_mode)
    if current_mode != EXPECTED_FILE_MODE:
        path.chmod(EXPECTED_FILE_MODE)


def _read_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _section(config: Mapping[str, Any], name: str) -> dict[str, Any]:
    section_data = config.get(name)
    return section_data if isinstance(section_data, dict) else {}


def _get_config_value(config: Mapping[str, Any], section: str, key: str) -> Any:
    return _section(config, section).get(key)


def _clean_str(value: Any) -> Any:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped if stripped else None
    return value


def _first_value(*candidates: Any) -> Any:
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


def _coerce_enum(value: Any, enum_cls: type[Enum], default: Enum) -> Any:
    if value is None:
        return default
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.lower())
        except ValueError:
            return default
    return default


__all__ = [
    "AgentConfig",
    "CorrectionConfig",
    "DEFAULT_BASE_URL",
    "DEFAULT_MODEL_ID",
    "LogLevel",
    "Settings",
    "load_settings",
]
