# src/todo_companion/tasks/task_repository.py

"""
Async task repository.

Sits between callers on the event loop and the synchronous TaskStore:
- storage calls run in worker threads (asyncio.to_thread), never on the loop,
- mutations are serialized by one asyncio.Lock, and a mutation is finished
  only after every affected LiveQuery has been invalidated,
- live lists are handed out as LiveQuery objects.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import partial

from ..errors import StorageError
from .live_query import LiveQuery
from .task_models import Task, TaskChange, task_matches_text, validate_task
from .task_store import TaskStore

logger = logging.getLogger(__name__)


class TaskRepository:
    def __init__(self, store: TaskStore) -> None:
        self._store = store
        self._write_lock = asyncio.Lock()
        self._observers: set[LiveQuery] = set()

    @property
    def store(self) -> TaskStore:
        return self._store

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    # ---- ChangeNotifier ----

    def register(self, query: LiveQuery) -> None:
        self._observers.add(query)
        logger.debug("LiveQuery registered %s (active=%d)", query.label, len(self._observers))

    def unregister(self, query: LiveQuery) -> None:
        self._observers.discard(query)
        logger.debug("LiveQuery unregistered %s (active=%d)", query.label, len(self._observers))

    def _dispatch(self, change: TaskChange) -> int:
        woken = 0
        for query in list(self._observers):
            if query.affected_by(change):
                query.invalidate()
                woken += 1
        logger.debug("Change id=%s invalidated %d/%d live queries", change.task_id, woken, len(self._observers))
        return woken

    # ---- live reads ----

    def get_all(self) -> LiveQuery:
        return LiveQuery(self, self._store.list_tasks, predicate=lambda _task: True, label="all")

    def get_by_status(self, is_done: bool) -> LiveQuery:
        done = bool(is_done)
        return LiveQuery(
            self,
            partial(self._store.list_tasks_by_status, done),
            predicate=lambda task: task.is_done == done,
            label="done" if done else "active",
        )

    def search(self, text: str) -> LiveQuery:
        needle = text or ""
        if not needle.strip():
            return self.get_all()
        return LiveQuery(
            self,
            partial(self._store.search_tasks, needle),
            predicate=lambda task: task_matches_text(task, needle),
            label=f"search:{needle!r}",
        )

    # ---- point reads ----

    async def get_by_id(self, task_id: str) -> Task | None:
        return await asyncio.to_thread(self._store.get_task, task_id)

    async def count(self) -> int:
        return await asyncio.to_thread(self._store.count_tasks)

    # ---- writes ----

    async def _mutate(self, write: Callable[[], TaskChange | None]) -> TaskChange | None:
        async with self._write_lock:
            change = await asyncio.to_thread(write)
            if change is not None:
                self._dispatch(change)
            return change

    def _run_write(self, write: Callable[[], TaskChange | None]) -> Awaitable[TaskChange | None]:
        # Shielded: once started, a write always finishes its dispatch even if
        # the awaiting caller is cancelled.
        return asyncio.shield(self._mutate(write))

    async def save(self, task: Task) -> Task:
        validate_task(task)
        change = await self._run_write(partial(self._store.upsert_task, task))
        if change is None or change.after is None:
            raise StorageError(f"save of task {task.id} produced no row")
        return change.after

    async def delete(self, task: Task) -> bool:
        return await self.delete_by_id(task.id)

    async def delete_by_id(self, task_id: str) -> bool:
        change = await self._run_write(partial(self._store.delete_task, task_id))
        return change is not None

    async def toggle_completion(self, task_id: str) -> Task | None:
        change = await self._run_write(partial(self._store.toggle_task, task_id))
        return change.after if change is not None else None
