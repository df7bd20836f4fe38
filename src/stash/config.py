# src/stash/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Nothing required at import time; every value has a default.
- The engine only reads these values; it never writes them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .tasks.task_models import Tier

ENV_PREFIX = "STASH"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_tier(name: str, default: Tier) -> Tier:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return Tier.parse(raw)
    except ValueError:
        return default


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool

    # ---- Escalation / notifications ----
    escalation_enabled: bool
    notifications_enabled: bool
    escalation_initial_delay_seconds: float
    escalation_interval_seconds: float

    # ---- Input ----
    default_tier: Tier

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path
    log_dir: Path
    export_path: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "stash") or "stash"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        escalation_enabled = _env_bool(_k("ESCALATION_ENABLED"), True)
        notifications_enabled = _env_bool(_k("NOTIFICATIONS_ENABLED"), True)
        escalation_initial_delay_seconds = _env_float(_k("ESCALATION_INITIAL_DELAY"), 60.0)
        escalation_interval_seconds = _env_float(_k("ESCALATION_INTERVAL"), 300.0)

        default_tier = _env_tier(_k("DEFAULT_TIER"), Tier.L1)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/stash"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "stash.sqlite3")
        log_dir = _env_path(_k("LOG_DIR"), data_dir)
        export_path = _env_path(_k("EXPORT_PATH"), data_dir / "stash-export.json")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            escalation_enabled=escalation_enabled,
            notifications_enabled=notifications_enabled,
            escalation_initial_delay_seconds=escalation_initial_delay_seconds,
            escalation_interval_seconds=escalation_interval_seconds,
            default_tier=default_tier,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            log_dir=log_dir,
            export_path=export_path,
        )


SETTINGS = Settings.from_env()

# ---- Optional local overrides (never committed) ----
# Prefer .env; use config_local.py only for the two feature switches.
try:
    import config_local as _config_local  # type: ignore

    if hasattr(_config_local, "ESCALATION_ENABLED"):
        object.__setattr__(SETTINGS, "escalation_enabled", bool(_config_local.ESCALATION_ENABLED))  # type: ignore[misc]
    if hasattr(_config_local, "NOTIFICATIONS_ENABLED"):
        object.__setattr__(SETTINGS, "notifications_enabled", bool(_config_local.NOTIFICATIONS_ENABLED))  # type: ignore[misc]
except ImportError:
    pass


def get_settings() -> Settings:
    return SETTINGS
