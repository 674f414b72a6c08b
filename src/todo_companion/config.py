# src/todo_companion/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Nothing required at import time; every value has a default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "TODO"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except ImportError:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
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


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    log_dir: Path
    tasks_db_path: Path

    # ---- Storage / live queries ----
    sqlite_timeout_seconds: float
    live_stop_timeout_seconds: float
    seed_sample_data: bool

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "todo-companion") or "todo-companion"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/todo"))
        log_dir = _env_path(_k("LOG_DIR"), data_dir)
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")

        sqlite_timeout_seconds = max(0.0, _env_float(_k("SQLITE_TIMEOUT_SECONDS"), 30.0))
        # How long a live list keeps its store subscription after the last observer leaves.
        live_stop_timeout_seconds = max(0.0, _env_float(_k("LIVE_STOP_TIMEOUT_SECONDS"), 5.0))
        seed_sample_data = _env_bool(_k("SEED_SAMPLE_DATA"), False)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            log_dir=log_dir,
            tasks_db_path=tasks_db_path,
            sqlite_timeout_seconds=sqlite_timeout_seconds,
            live_stop_timeout_seconds=live_stop_timeout_seconds,
            seed_sample_data=seed_sample_data,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
