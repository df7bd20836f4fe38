# tests/test_config.py

from __future__ import annotations

import os
from pathlib import Path

import pytest

from stash.cli.bootstrap import create_initial_state, create_notifier
from stash.config import Settings
from stash.tasks.task_models import Tier

from .fakes import FakeClock


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in list(os.environ):
        if name.startswith("STASH_"):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env: pytest.MonkeyPatch) -> None:
    s = Settings.from_env()
    assert s.app_name == "stash"
    assert s.escalation_enabled is True
    assert s.notifications_enabled is True
    assert s.escalation_initial_delay_seconds == 60.0
    assert s.escalation_interval_seconds == 300.0
    assert s.default_tier is Tier.L1
    assert s.tasks_db_path == Path(".local/stash") / "stash.sqlite3"


def test_env_overrides(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    clean_env.setenv("STASH_ESCALATION_ENABLED", "off")
    clean_env.setenv("STASH_NOTIFICATIONS_ENABLED", "0")
    clean_env.setenv("STASH_ESCALATION_INTERVAL", "30")
    clean_env.setenv("STASH_ESCALATION_INITIAL_DELAY", "not-a-number")
    clean_env.setenv("STASH_DEFAULT_TIER", "L3")
    clean_env.setenv("STASH_DATA_DIR", str(tmp_path))

    s = Settings.from_env()
    assert s.escalation_enabled is False
    assert s.notifications_enabled is False
    assert s.escalation_interval_seconds == 30.0
    assert s.escalation_initial_delay_seconds == 60.0
    assert s.default_tier is Tier.L3
    assert s.tasks_db_path == tmp_path / "stash.sqlite3"
    assert s.export_path == tmp_path / "stash-export.json"


def test_bootstrap_wires_store_and_state(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    clean_env.setenv("STASH_DATA_DIR", str(tmp_path / "data"))
    clean_env.setenv("STASH_DEFAULT_TIER", "mem")
    clean_env.setenv("STASH_NOTIFICATIONS_ENABLED", "false")
    settings = Settings.from_env()
    clock = FakeClock()

    state = create_initial_state(settings=settings, clock=clock)
    assert settings.tasks_db_path.exists()
    assert state.input_tier is Tier.MEM

    task = state.add_task("wired")
    assert task is not None
    assert task.created_at == clock.now

    # A second state over the same file sees the same data.
    again = create_initial_state(settings=settings, clock=clock)
    assert [t.title for t in again.tasks] == ["wired"]

    assert create_notifier(settings).enabled is False
