# src/todo_companion/tasks/task_models.py

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import StrEnum

from ..errors import TaskValidationError


class TaskFilter(StrEnum):
    """Status filter used when no search text is active."""

    ALL = "all"
    ACTIVE = "active"
    DONE = "done"

    @classmethod
    def parse(cls, raw: str | None) -> TaskFilter:
        if raw is None or not raw.strip():
            return cls.ALL
        try:
            return cls(raw.strip().lower())
        except ValueError:
            raise TaskValidationError(f"unknown filter: {raw!r}") from None


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    title: str
    note: str = ""
    is_done: bool = False
    due_at: float | None = None

    # Owned by the store: whatever the caller passes here is overwritten on save.
    created_at: float = 0.0
    updated_at: float = 0.0


@dataclass(frozen=True, slots=True)
class TaskQuery:
    """
    Criteria for a live task list.

    A non-blank search wins over the status filter.
    """

    search: str = ""
    filter: TaskFilter = field(default=TaskFilter.ALL)

    def normalized(self) -> TaskQuery:
        search = self.search if self.is_search else ""
        return TaskQuery(search=search, filter=TaskFilter(self.filter))

    @property
    def is_search(self) -> bool:
        return bool((self.search or "").strip())


@dataclass(frozen=True, slots=True)
class TaskChange:
    """One persisted mutation: the row before and after (None = absent)."""

    before: Task | None
    after: Task | None

    @property
    def task_id(self) -> str:
        task = self.after or self.before
        return task.id if task is not None else ""


def text_matches(haystack: str | None, needle: str) -> bool:
    """Case-insensitive substring test shared by SQL search and change routing."""
    if not haystack:
        return False
    return needle.casefold() in haystack.casefold()


def task_matches_text(task: Task, text: str) -> bool:
    return text_matches(task.title, text) or text_matches(task.note, text)


def new_task_id() -> str:
    return uuid.uuid4().hex


def validate_task(task: Task) -> None:
    if not task.id or not str(task.id).strip():
        raise TaskValidationError("task id is required")
    if not task.title or not task.title.strip():
        raise TaskValidationError("title is required")
