"""Debug log for prdeck.

The dashboard owns the terminal, so nothing may be printed while it runs.
Diagnostics go to a timestamped file in the state directory instead.
"""

from __future__ import annotations

import contextlib
import time

from prdeck.paths import ensure_state_dir, get_log_path


def log(msg: str) -> None:
    """Append a timestamped message to the prdeck debug log."""
    with contextlib.suppress(OSError):
        ensure_state_dir()
        with open(get_log_path(), "a") as f:
            f.write(f"{time.strftime('%Y-%m-%d %H:%M:%S')} {msg}\n")
