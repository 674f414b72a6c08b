# src/todo_companion/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the task store, repository and console query engine into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.state import AppState
from ..tasks.task_api import seed_sample_tasks
from ..tasks.task_query_engine import TaskQueryEngine
from ..tasks.task_repository import TaskRepository
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = TaskStore(
        settings.tasks_db_path,
        timeout=float(getattr(settings, "sqlite_timeout_seconds", 30.0)),
    )
    repo = TaskRepository(store)
    engine = TaskQueryEngine(
        repo,
        stop_timeout=float(getattr(settings, "live_stop_timeout_seconds", 5.0)),
    )
    return AppState(settings=settings, store=store, repo=repo, engine=engine)


async def prepare_state(state: AppState) -> None:
    """Async part of startup (runs inside the event loop)."""
    if getattr(state.settings, "seed_sample_data", False):
        added = await seed_sample_tasks(state.repo)
        if added:
            logger.info("Sample data added (%d tasks).", added)


async def shutdown_state(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.engine.aclose()
    except Exception:
        logger.exception("Failed to close the query engine.")

    # TaskStore uses short-lived sqlite connections per call; close() is a hook only.
    state.store.close()
