"""Time-based triggers checked once per main loop iteration."""

from __future__ import annotations

from prdeck import messages as m
from prdeck.config import Config
from prdeck.state import AppState


def should_poll_actions(state: AppState, config: Config, now: float) -> bool:
    """Poll CI while a workflows view shows unfinished jobs."""
    view = state.workflows
    return (
        view is not None
        and view.poll_enabled
        and not view.loading
        and now - state.last_actions_poll >= config.ui.poll_interval
    )


def should_refresh_main(state: AppState, config: Config, now: float) -> bool:
    """Refresh the active list only on the bare main screen."""
    return (
        state.view is None
        and state.active_popup is None
        and not state.is_loading
        and now - state.last_main_refresh >= config.ui.refresh_interval
    )


def due_messages(state: AppState, config: Config, now: float) -> list[m.Message]:
    due: list[m.Message] = []
    if should_poll_actions(state, config, now):
        due.append(m.RefreshActions())
    if should_refresh_main(state, config, now):
        due.append(m.Refresh())
    return due
