# tests/test_task_api.py

from __future__ import annotations

import asyncio

import pytest

from todo_companion.errors import TaskValidationError
from todo_companion.tasks import task_api
from todo_companion.tasks.task_models import TaskFilter, TaskQuery
from todo_companion.tasks.task_repository import TaskRepository


def test_create_task_assigns_fresh_keys_and_strips_text() -> None:
    a = task_api.create_task("  Buy milk ", " 2 liters ")
    b = task_api.create_task("Buy milk")

    assert a.id and b.id and a.id != b.id
    assert a.title == "Buy milk"
    assert a.note == "2 liters"
    assert a.is_done is False
    assert a.due_at is None


def test_create_task_keeps_explicit_id() -> None:
    assert task_api.create_task("x", task_id="fixed").id == "fixed"


@pytest.mark.parametrize("title", ["", "   "])
def test_create_task_requires_title(title: str) -> None:
    with pytest.raises(TaskValidationError):
        task_api.create_task(title)


@pytest.mark.asyncio
async def test_save_get_toggle_delete_round(repo: TaskRepository) -> None:
    saved = await task_api.save_task(repo, task_api.create_task("Call dad", task_id="dad"))
    assert await task_api.get_task(repo, "dad") == saved

    toggled = await task_api.toggle_task(repo, "dad")
    assert toggled is not None and toggled.is_done is True

    assert await task_api.delete_task(repo, "dad") is True
    assert await task_api.get_task(repo, "dad") is None


@pytest.mark.asyncio
async def test_delete_accepts_instance(repo: TaskRepository) -> None:
    saved = await task_api.save_task(repo, task_api.create_task("Walk dog"))

    assert await task_api.delete_task(repo, saved) is True
    assert await task_api.delete_task(repo, saved) is False


@pytest.mark.asyncio
async def test_toggle_missing_key_returns_none(repo: TaskRepository) -> None:
    assert await task_api.toggle_task(repo, "nope") is None
    assert await repo.count() == 0


@pytest.mark.asyncio
async def test_observe_tasks_follows_fixed_criteria(repo: TaskRepository) -> None:
    await task_api.save_task(repo, task_api.create_task("Open", task_id="open"))

    stream = task_api.observe_tasks(repo, TaskQuery(filter=TaskFilter.DONE))
    async with stream:
        assert await asyncio.wait_for(anext(stream), 1.0) == []

        await task_api.toggle_task(repo, "open")
        snapshot = await asyncio.wait_for(anext(stream), 1.0)
        assert [t.id for t in snapshot] == ["open"]

    assert repo.observer_count == 0


@pytest.mark.asyncio
async def test_seed_only_fills_an_empty_store(repo: TaskRepository) -> None:
    added = await task_api.seed_sample_tasks(repo, now_ts=1_000.0)
    assert added == len(task_api.SAMPLE_TASKS)
    assert await repo.count() == added

    assert await task_api.seed_sample_tasks(repo, now_ts=2_000.0) == 0
    assert await repo.count() == added


@pytest.mark.asyncio
async def test_seeded_tasks_carry_status_and_due(repo: TaskRepository) -> None:
    await task_api.seed_sample_tasks(repo, now_ts=1_000.0)

    async with repo.get_all() as live:
        tasks = await asyncio.wait_for(anext(live), 1.0)

    by_title = {t.title: t for t in tasks}
    assert by_title["Completed task example"].is_done is True
    assert by_title["Buy groceries"].due_at == 1_000.0 + 24 * 60 * 60
    assert by_title["Welcome to Todo Companion!"].due_at is None
