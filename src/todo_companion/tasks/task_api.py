# src/todo_companion/tasks/task_api.py

from __future__ import annotations

import logging
import time

from ..core.ports import TaskRepo
from ..errors import TaskValidationError
from .task_models import Task, TaskQuery, new_task_id
from .task_query_engine import TaskListStream, TaskQueryEngine

logger = logging.getLogger(__name__)

SAMPLE_TASKS: tuple[tuple[str, str, bool, float | None], ...] = (
    (
        "Welcome to Todo Companion!",
        "This is a sample task. Edit it, complete it or delete it.",
        False,
        None,
    ),
    ("Buy groceries", "Milk, bread, eggs, and fruits", False, 24 * 60 * 60.0),
    ("Completed task example", "This shows how completed tasks look", True, None),
)


def create_task(
    title: str,
    note: str = "",
    due_at: float | None = None,
    *,
    task_id: str | None = None,
    is_done: bool = False,
) -> Task:
    """
    Build a new Task value with a fresh key.

    Timestamps are left for the store to assign on save.
    """
    if not title or not title.strip():
        raise TaskValidationError("title is required")
    return Task(
        id=task_id or new_task_id(),
        title=title.strip(),
        note=(note or "").strip(),
        is_done=is_done,
        due_at=due_at,
    )


def observe_tasks(repo: TaskRepo, query: TaskQuery, *, stop_timeout: float = 0.0) -> TaskListStream:
    """
    Live, deduplicated task list for fixed criteria.

    Use TaskQueryEngine directly when the criteria change over time.
    """
    engine = TaskQueryEngine(repo, query, stop_timeout=stop_timeout)
    return engine.observe()


async def get_task(repo: TaskRepo, task_id: str) -> Task | None:
    return await repo.get_by_id(task_id)


async def save_task(repo: TaskRepo, task: Task) -> Task:
    return await repo.save(task)


async def delete_task(repo: TaskRepo, task: Task | str) -> bool:
    if isinstance(task, Task):
        return await repo.delete(task)
    return await repo.delete_by_id(task)


async def toggle_task(repo: TaskRepo, task_id: str) -> Task | None:
    return await repo.toggle_completion(task_id)


async def seed_sample_tasks(repo: TaskRepo, *, now_ts: float | None = None) -> int:
    """Insert the sample tasks, but only into an empty store. Returns how many were added."""
    if await repo.count() > 0:
        return 0

    if now_ts is None:
        now_ts = time.time()

    added = 0
    for title, note, is_done, due_in in SAMPLE_TASKS:
        due_at = now_ts + due_in if due_in is not None else None
        await repo.save(create_task(title, note, due_at, is_done=is_done))
        added += 1

    logger.info("Seeded %d sample tasks", added)
    return added
