# src/todo_companion/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the query engine and the CLI glue.

The engine depends on Protocols instead of the concrete repository.
This keeps the storage swappable and makes testing easier.
"""

from typing import Protocol

from ..tasks.task_models import Task


class LiveTaskList(Protocol):
    """An async iterator of task snapshots that can be closed."""

    def __aiter__(self) -> LiveTaskList: ...
    async def __anext__(self) -> list[Task]: ...
    async def aclose(self) -> None: ...


class TaskSource(Protocol):
    """Live reads the query engine switches between."""

    def get_all(self) -> LiveTaskList: ...
    def get_by_status(self, is_done: bool) -> LiveTaskList: ...
    def search(self, text: str) -> LiveTaskList: ...


class TaskRepo(TaskSource, Protocol):
    """Full repository surface used by the task API and commands."""

    async def get_by_id(self, task_id: str) -> Task | None: ...
    async def count(self) -> int: ...
    async def save(self, task: Task) -> Task: ...
    async def delete(self, task: Task) -> bool: ...
    async def delete_by_id(self, task_id: str) -> bool: ...
    async def toggle_completion(self, task_id: str) -> Task | None: ...

