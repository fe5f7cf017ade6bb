"""Common path utilities for copiloop."""

from __future__ import annotations

import os
from pathlib import Path


def get_copiloop_home() -> Path:
    """Return the base copiloop directory, honoring COPILOOP_HOME if set."""

    env_path = os.environ.get("COPILOOP_HOME")
    return Path(env_path).expanduser() if env_path else Path.home() / ".copiloop"


def default_config_path() -> Path:
    return get_copiloop_home() / "config.toml"


__all__ = ["get_copiloop_home", "default_config_path"]
