# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from todo_companion.core.state import AppState
from todo_companion.tasks.task_query_engine import TaskQueryEngine
from todo_companion.tasks.task_repository import TaskRepository
from todo_companion.tasks.task_store import TaskStore

from .fakes import FakeClock


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        data_dir=tmp_path,
        log_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        sqlite_timeout_seconds=5.0,
        live_stop_timeout_seconds=0.0,
        seed_sample_data=False,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(start=1_700_000_000.0)


@pytest.fixture()
def store(settings: SimpleNamespace, clock: FakeClock) -> TaskStore:
    return TaskStore(settings.tasks_db_path, timeout=settings.sqlite_timeout_seconds, clock=clock)


@pytest.fixture()
def repo(store: TaskStore) -> TaskRepository:
    return TaskRepository(store)


@pytest.fixture()
def state(settings: SimpleNamespace, store: TaskStore, repo: TaskRepository) -> AppState:
    """
    AppState wired around a real SQLite store.

    NOTE: We keep the real TaskStore here because its correctness is part of
    what we want to test.
    """
    return AppState(
        settings=settings,
        store=store,
        repo=repo,
        engine=TaskQueryEngine(repo, stop_timeout=0.0),
    )
