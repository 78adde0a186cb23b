"""XDG-compliant path management for prdeck.

Respects XDG Base Directory Specification:
- XDG_CONFIG_HOME: Config files and the cache database (default: ~/.config)
- XDG_STATE_HOME: State files such as the debug log (default: ~/.local/state)

Also supports PRDECK_CONFIG_DIR and PRDECK_STATE_DIR for full override.
"""

from __future__ import annotations

import os
from pathlib import Path


def get_config_dir() -> Path:
    """Get the prdeck config directory.

    Priority:
    1. PRDECK_CONFIG_DIR env var (full override)
    2. XDG_CONFIG_HOME/prdeck
    3. ~/.config/prdeck (default)
    """
    if override := os.environ.get("PRDECK_CONFIG_DIR"):
        return Path(override).expanduser()

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / "prdeck"

    return Path.home() / ".config" / "prdeck"


def get_state_dir() -> Path:
    """Get the prdeck state directory.

    Priority:
    1. PRDECK_STATE_DIR env var (full override)
    2. XDG_STATE_HOME/prdeck
    3. ~/.local/state/prdeck (default)
    """
    if override := os.environ.get("PRDECK_STATE_DIR"):
        return Path(override).expanduser()

    xdg_state = os.environ.get("XDG_STATE_HOME")
    if xdg_state:
        return Path(xdg_state) / "prdeck"

    return Path.home() / ".local" / "state" / "prdeck"


def get_global_config_path() -> Path:
    """Get the global config file path."""
    return get_config_dir() / "config.toml"


def get_cache_path() -> Path:
    """Get the SQLite cache file path."""
    return get_config_dir() / "cache.db"


def get_log_path() -> Path:
    """Get the debug log file path."""
    return get_state_dir() / "prdeck.log"


def ensure_state_dir() -> Path:
    """Ensure state directory exists and return it."""
    state_dir = get_state_dir()
    state_dir.mkdir(parents=True, exist_ok=True)
    return state_dir
