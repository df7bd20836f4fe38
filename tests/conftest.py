# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from stash.core.state import AppState
from stash.tasks.task_models import Tier
from stash.tasks.task_store import TaskStore

from .fakes import FakeClock, FakeNotifier


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="stash-test",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "stash.sqlite3",
        log_dir=tmp_path,
        export_path=tmp_path / "export" / "stash-export.json",
        escalation_enabled=True,
        notifications_enabled=True,
        escalation_initial_delay_seconds=0.0,
        escalation_interval_seconds=0.01,
        default_tier=Tier.L1,
        console_enabled=False,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(settings: SimpleNamespace, clock: FakeClock) -> TaskStore:
    return TaskStore(settings.tasks_db_path, clock=clock)


@pytest.fixture()
def state(settings: SimpleNamespace, store: TaskStore, clock: FakeClock) -> AppState:
    """
    AppState wired to a real SQLite TaskStore and a fake clock.

    The store's correctness is part of what we want to test, so it is not faked.
    """
    s = AppState(settings=settings, task_store=store, clock=clock)
    s.reload()
    return s


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()
