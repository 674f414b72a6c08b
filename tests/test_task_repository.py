# tests/test_task_repository.py

from __future__ import annotations

import asyncio

import pytest

from todo_companion.errors import StorageError, TaskValidationError
from todo_companion.tasks.task_models import Task
from todo_companion.tasks.task_repository import TaskRepository
from todo_companion.tasks.task_store import TaskStore


async def _next(live, timeout: float = 1.0):
    return await asyncio.wait_for(anext(live), timeout)


async def _assert_quiet(live, timeout: float = 0.05) -> None:
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(anext(live), timeout)


@pytest.mark.asyncio
async def test_empty_store_yields_empty_snapshot_immediately(repo: TaskRepository) -> None:
    async with repo.get_all() as live:
        assert await _next(live) == []


@pytest.mark.asyncio
async def test_done_filter_scenario_milk_and_dad(repo: TaskRepository) -> None:
    a = await repo.save(Task(id="A", title="Buy milk", is_done=False))
    b = await repo.save(Task(id="B", title="Call dad", is_done=True))

    async with repo.get_by_status(True) as done:
        assert [t.id for t in await _next(done)] == ["B"]

        toggled = await repo.toggle_completion(a.id)
        assert toggled is not None and toggled.is_done is True

        snapshot = await _next(done)
        assert [t.id for t in snapshot] == ["A", "B"]
        assert snapshot[1] == b


@pytest.mark.asyncio
async def test_every_mutation_re_emits_full_snapshot(repo: TaskRepository) -> None:
    async with repo.get_all() as live:
        assert await _next(live) == []

        await repo.save(Task(id="t1", title="one"))
        assert [t.title for t in await _next(live)] == ["one"]

        await repo.save(Task(id="t1", title="uno"))
        assert [t.title for t in await _next(live)] == ["uno"]

        await repo.toggle_completion("t1")
        assert [t.is_done for t in await _next(live)] == [True]

        await repo.delete_by_id("t1")
        assert await _next(live) == []


@pytest.mark.asyncio
async def test_unrelated_change_does_not_wake_filtered_query(repo: TaskRepository) -> None:
    await repo.save(Task(id="done", title="Finished", is_done=True))

    async with repo.get_by_status(True) as done:
        assert [t.id for t in await _next(done)] == ["done"]

        await repo.save(Task(id="open", title="Still open"))
        await _assert_quiet(done)

        # Toggling the open task moves it into the done list.
        await repo.toggle_completion("open")
        assert [t.id for t in await _next(done)] == ["open", "done"]


@pytest.mark.asyncio
async def test_changes_between_pulls_are_coalesced(repo: TaskRepository) -> None:
    async with repo.get_all() as live:
        assert await _next(live) == []

        for i in range(5):
            await repo.save(Task(id=f"t{i}", title=f"task {i}"))

        snapshot = await _next(live)
        assert [t.id for t in snapshot] == ["t4", "t3", "t2", "t1", "t0"]
        await _assert_quiet(live)


@pytest.mark.asyncio
async def test_blank_search_behaves_like_get_all(repo: TaskRepository) -> None:
    await repo.save(Task(id="a", title="Alpha"))
    await repo.save(Task(id="b", title="Beta", is_done=True))

    async with repo.get_all() as all_live, repo.search("") as blank, repo.search("   ") as spaces:
        expected = await _next(all_live)
        assert await _next(blank) == expected
        assert await _next(spaces) == expected
        assert blank.label == "all"


@pytest.mark.asyncio
async def test_search_live_query_tracks_matches(repo: TaskRepository) -> None:
    await repo.save(Task(id="a", title="Buy milk"))

    async with repo.search("MILK") as live:
        assert [t.id for t in await _next(live)] == ["a"]

        await repo.save(Task(id="b", title="Bake", note="needs milk"))
        assert [t.id for t in await _next(live)] == ["b", "a"]

        await repo.save(Task(id="a", title="Buy water"))
        assert [t.id for t in await _next(live)] == ["b"]


@pytest.mark.asyncio
async def test_new_subscription_starts_from_current_state(repo: TaskRepository) -> None:
    await repo.save(Task(id="a", title="A"))
    async with repo.get_all() as first:
        assert len(await _next(first)) == 1

    await repo.save(Task(id="b", title="B"))
    async with repo.get_all() as second:
        assert [t.id for t in await _next(second)] == ["b", "a"]


@pytest.mark.asyncio
async def test_closed_query_stops_and_unregisters(repo: TaskRepository) -> None:
    live = repo.get_all()
    assert await _next(live) == []
    assert repo.observer_count == 1

    await live.aclose()
    await live.aclose()
    assert repo.observer_count == 0

    await repo.save(Task(id="a", title="A"))
    with pytest.raises(StopAsyncIteration):
        await anext(live)


@pytest.mark.asyncio
async def test_close_wakes_a_parked_consumer(repo: TaskRepository) -> None:
    live = repo.get_all()
    assert await _next(live) == []

    waiter = asyncio.create_task(anext(live))
    await asyncio.sleep(0.01)
    await live.aclose()

    with pytest.raises(StopAsyncIteration):
        await waiter


@pytest.mark.asyncio
async def test_get_by_id_and_missing(repo: TaskRepository) -> None:
    saved = await repo.save(Task(id="a", title="A", note="n"))
    assert await repo.get_by_id("a") == saved
    assert await repo.get_by_id("zzz") is None


@pytest.mark.asyncio
async def test_save_round_trips_text_exactly(repo: TaskRepository) -> None:
    saved = await repo.save(Task(id="t1", title=" Buy milk ", note=" 2 liters\n"))
    got = await repo.get_by_id("t1")

    assert got == saved
    assert got is not None
    assert (got.title, got.note) == (" Buy milk ", " 2 liters\n")


@pytest.mark.asyncio
async def test_search_keeps_surrounding_spaces(repo: TaskRepository) -> None:
    await repo.save(Task(id="a", title="Call daddy"))
    await repo.save(Task(id="b", title="Call dad now"))

    async with repo.search("dad ") as live:
        assert [t.id for t in await _next(live)] == ["b"]

        # The predicate matches the untrimmed text too.
        await repo.save(Task(id="a", title="Call daddy", note="ask dad first"))
        assert [t.id for t in await _next(live)] == ["a", "b"]


@pytest.mark.asyncio
async def test_delete_by_instance_and_absent_key(repo: TaskRepository) -> None:
    saved = await repo.save(Task(id="a", title="A"))

    assert await repo.delete(saved) is True
    assert await repo.delete(saved) is False
    assert await repo.delete_by_id("never-existed") is False
    assert await repo.count() == 0


@pytest.mark.asyncio
async def test_noop_writes_do_not_notify(repo: TaskRepository) -> None:
    async with repo.get_all() as live:
        assert await _next(live) == []

        assert await repo.delete_by_id("missing") is False
        assert await repo.toggle_completion("missing") is None
        await _assert_quiet(live)


@pytest.mark.asyncio
async def test_whitespace_title_rejected_before_storage(repo: TaskRepository, store: TaskStore) -> None:
    async with repo.get_all() as live:
        assert await _next(live) == []

        with pytest.raises(TaskValidationError):
            await repo.save(Task(id="a", title=" "))

        assert store.count_tasks() == 0
        await _assert_quiet(live)


@pytest.mark.asyncio
async def test_concurrent_toggles_are_serialized(repo: TaskRepository) -> None:
    original = await repo.save(Task(id="a", title="A"))

    results = await asyncio.gather(*(repo.toggle_completion("a") for _ in range(10)))

    stamps = [r.updated_at for r in results if r is not None]
    assert len(stamps) == 10
    assert len(set(stamps)) == 10
    final = await repo.get_by_id("a")
    assert final is not None
    assert final.is_done is original.is_done
    assert final.updated_at == max(stamps)


@pytest.mark.asyncio
async def test_cancelled_caller_still_completes_write_and_notify(repo: TaskRepository) -> None:
    async with repo.get_all() as live:
        assert await _next(live) == []

        saving = asyncio.create_task(repo.save(Task(id="a", title="A")))
        await asyncio.sleep(0)
        saving.cancel()
        with pytest.raises(asyncio.CancelledError):
            await saving

        assert [t.id for t in await _next(live)] == ["a"]


@pytest.mark.asyncio
async def test_storage_failure_terminates_live_query(repo: TaskRepository, store: TaskStore, monkeypatch) -> None:
    def boom() -> list[Task]:
        raise StorageError("disk on fire")

    monkeypatch.setattr(store, "list_tasks", boom)
    live = repo.get_all()

    with pytest.raises(StorageError):
        await _next(live)
    assert live.closed
    assert repo.observer_count == 0
    with pytest.raises(StopAsyncIteration):
        await anext(live)


@pytest.mark.asyncio
async def test_storage_failure_propagates_to_writer(repo: TaskRepository, store: TaskStore, monkeypatch) -> None:
    def boom(task: Task):
        raise StorageError("read-only file system")

    monkeypatch.setattr(store, "upsert_task", boom)

    with pytest.raises(StorageError):
        await repo.save(Task(id="a", title="A"))
