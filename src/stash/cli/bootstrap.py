# src/stash/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- constructs the one TaskStore for the process and injects it into AppState,
- builds the notification collaborator.
"""

from __future__ import annotations

import logging
import time

from ..config import get_settings
from ..core.notifications import LogNotifier
from ..core.ports import Clock
from ..core.state import AppState
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, clock: Clock | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    try:
        _ensure_local_dirs(settings)
    except OSError:
        # TaskStore logs and degrades on its own if the path is unusable.
        logger.exception("Failed to create data directories under %s", settings.data_dir)

    clock = clock or time.time
    store = TaskStore(settings.tasks_db_path, clock=clock)
    state = AppState(settings=settings, task_store=store, clock=clock)
    state.input_tier = getattr(settings, "default_tier", state.input_tier)
    state.reload()
    logger.info("Loaded %d active task(s)", len(state.tasks))
    return state


def create_notifier(settings) -> LogNotifier:
    # Only the interactive console drains notices; headless runs just log them.
    return LogNotifier(
        enabled=bool(getattr(settings, "notifications_enabled", True)),
        queue_notices=bool(getattr(settings, "console_enabled", False)),
    )
