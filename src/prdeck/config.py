"""Configuration loading for prdeck.

Settings come from an optional TOML file in the config directory, with
environment variables taking precedence for secrets and editor selection.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from prdeck.errors import ConfigError
from prdeck.paths import get_global_config_path

CONTAINER_ENV_VARS = ("PRDECK_CONTAINER", "container", "REMOTE_CONTAINERS", "CODESPACES")


@dataclass
class CIConfig:
    """CI provider settings."""

    circleci_token: str | None = None

    @property
    def circleci_configured(self) -> bool:
        return bool(self.circleci_token)


@dataclass
class UIConfig:
    """Timing knobs for the dashboard loop (seconds)."""

    refresh_interval: float = 30.0
    poll_interval: float = 30.0
    input_timeout: float = 0.05
    feedback_seconds: float = 2.0
    spinner_interval: float = 0.08


@dataclass
class EditorConfig:
    """External editor settings."""

    command: str = "vim"


@dataclass
class Config:
    """Complete prdeck configuration."""

    ci: CIConfig = field(default_factory=CIConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    editor: EditorConfig = field(default_factory=EditorConfig)
    in_container: bool = False


def detect_container() -> bool:
    """Check whether we're running inside a container without a GUI browser."""
    if any(os.environ.get(name) for name in CONTAINER_ENV_VARS):
        return True
    return Path("/.dockerenv").exists()


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _float(section: dict[str, Any], key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{key} must be a number, got {value!r}")
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value!r}")
    return float(value)


def parse_config(data: dict[str, Any]) -> Config:
    """Build a Config from parsed TOML data, applying environment overrides."""
    ci_data = _section(data, "ci")
    ui_data = _section(data, "ui")
    editor_data = _section(data, "editor")

    defaults = UIConfig()
    ui = UIConfig(
        refresh_interval=_float(ui_data, "refresh_interval", defaults.refresh_interval),
        poll_interval=_float(ui_data, "poll_interval", defaults.poll_interval),
        input_timeout=_float(ui_data, "input_timeout", defaults.input_timeout),
        feedback_seconds=_float(ui_data, "feedback_seconds", defaults.feedback_seconds),
    )

    token = os.environ.get("CIRCLECI_TOKEN") or ci_data.get("circleci_token") or None

    # Editor priority: $EDITOR, $VISUAL, config file, vim
    editor = (
        os.environ.get("EDITOR")
        or os.environ.get("VISUAL")
        or editor_data.get("command")
        or EditorConfig().command
    )

    return Config(
        ci=CIConfig(circleci_token=token),
        ui=ui,
        editor=EditorConfig(command=editor),
        in_container=detect_container(),
    )


def load_config(path: Path | None = None) -> Config:
    """Load config from the given path or the global config file.

    A missing file is not an error; defaults plus environment are used.
    """
    config_path = path or get_global_config_path()
    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to read {config_path}: {e}") from e
    return parse_config(data)
