# tests/test_completion.py
import asyncio
import threading

import pytest

from conftest import T0, all_tasks, get_task, insert_task
from storesched.domain.models import TaskRecord
from storesched.domain.states import CompletionOutcome
from storesched.engine import HandlerRegistry
from storesched.engine.recovery import release_owned
from storesched.engine.worker import Worker
from storesched.storage import SQLiteDB, TaskRepo


def _boom(params):
    raise RuntimeError("boom")


@pytest.fixture()
def registry() -> HandlerRegistry:
    registry = HandlerRegistry()
    registry.register("ok", lambda params: "done")
    registry.register("boom", _boom)
    return registry


@pytest.fixture()
def worker(db: SQLiteDB, registry: HandlerRegistry, clock) -> Worker:
    return Worker(db, registry, "node-a", clock=clock)


def _running_task(db: SQLiteDB, **fields):
    fields.setdefault("owner", "node-a")
    fields.setdefault("running", True)
    fields.setdefault("captured_at", T0 - 1000)
    return get_task(db, insert_task(db, **fields))


def test_one_shot_success_deletes_record(db: SQLiteDB, worker: Worker):
    record = _running_task(db, name="ok")

    assert worker.run(record) == CompletionOutcome.COMPLETED
    assert all_tasks(db) == []


def test_one_shot_failure_keeps_record_due_and_idle(db: SQLiteDB, worker: Worker):
    record = _running_task(db, name="boom", scheduled_time=T0 - 30_000)

    assert worker.run(record) == CompletionOutcome.RETRY

    after = get_task(db, record.id)
    assert after.running is False
    assert after.owner == "node-a"
    assert after.scheduled_time == T0 - 30_000


@pytest.mark.parametrize("name", ["ok", "boom", "missing"])
def test_repeating_task_advances_on_any_outcome(db: SQLiteDB, worker: Worker, clock, name: str):
    record = _running_task(
        db,
        name=name,
        params={"n": 1},
        scheduled_time=T0 - 500,
        repeat_interval=1000,
        unique_key="tick",
    )
    clock.advance(42)

    assert worker.run(record) == CompletionOutcome.RESCHEDULED

    remaining = all_tasks(db)
    assert len(remaining) == 1
    successor = remaining[0]
    assert successor.id != record.id
    assert successor.scheduled_time == T0 - 500 + 1000
    assert successor.owner == "node-a"
    assert successor.running is False
    assert successor.captured_at == T0 + 42
    assert successor.params == {"n": 1}
    assert successor.unique_key == "tick"
    assert successor.repeat_interval == 1000


def test_async_handlers_are_awaited(db: SQLiteDB, registry: HandlerRegistry, worker: Worker):
    calls = []

    async def _handler(params):
        await asyncio.sleep(0)
        calls.append(params)

    registry.register("async", _handler)
    record = _running_task(db, name="async", params="x")

    assert worker.run(record) == CompletionOutcome.COMPLETED
    assert calls == ["x"]


def test_failed_async_handler_is_retried(db: SQLiteDB, registry: HandlerRegistry, worker: Worker):
    async def _handler(params):
        raise ValueError("nope")

    registry.register("async-boom", _handler)
    record = _running_task(db, name="async-boom")

    assert worker.run(record) == CompletionOutcome.RETRY
    assert get_task(db, record.id).running is False


def test_handler_failure_is_logged(db: SQLiteDB, worker: Worker, caplog):
    record = _running_task(db, name="boom")
    with caplog.at_level("ERROR", logger="storesched"):
        worker.run(record)
    assert any("Failed to run task" in r.getMessage() for r in caplog.records)


def test_finalizing_a_cancelled_task_writes_nothing(db: SQLiteDB, worker: Worker):
    record = _running_task(db, name="boom")
    with db.session() as conn:
        conn.execute("DELETE FROM scheduled_tasks;")

    assert worker.run(record) == CompletionOutcome.SUPERSEDED
    assert all_tasks(db) == []


@pytest.mark.parametrize("name", ["ok", "boom"])
def test_repeating_task_owned_elsewhere_is_not_advanced(db: SQLiteDB, worker: Worker, name: str):
    record = _running_task(db, name=name, repeat_interval=1000, owner="node-b", running=False)

    assert worker.run(record) == CompletionOutcome.SUPERSEDED

    remaining = all_tasks(db)
    assert [r.id for r in remaining] == [record.id]
    assert remaining[0].owner == "node-b"
    assert remaining[0].scheduled_time == T0


def test_released_failure_is_left_unowned(db: SQLiteDB, worker: Worker):
    record = _running_task(db, name="boom")
    with db.session() as conn:
        release_owned(TaskRepo(conn), "node-a")

    assert worker.run(record) == CompletionOutcome.SUPERSEDED

    after = get_task(db, record.id)
    assert after.owner is None
    assert after.running is False


def test_released_success_is_still_deleted(db: SQLiteDB, worker: Worker):
    record = _running_task(db, name="ok")
    with db.session() as conn:
        release_owned(TaskRepo(conn), "node-a")

    assert worker.run(record) == CompletionOutcome.COMPLETED
    assert all_tasks(db) == []


def _blocking_registry():
    started = threading.Event()
    release = threading.Event()
    calls = []

    def _slow(params):
        calls.append(params)
        started.set()
        release.wait(timeout=5)

    registry = HandlerRegistry()
    registry.register("slow", _slow)
    return registry, started, release, calls


def test_cancel_during_run_stops_the_recurrence(db: SQLiteDB, make_scheduler):
    registry, started, release, calls = _blocking_registry()
    node = make_scheduler("node-a", registry=registry)
    task_id = node.schedule_task("slow", {"v": 1}, T0, repeat_interval=60_000)

    assert len(node.run_sweep()) == 1
    assert started.wait(timeout=5)
    assert node.cancel_task(task_id) is True

    release.set()
    assert node.wait_for_dispatches(timeout_s=5)

    assert calls == [{"v": 1}]
    assert all_tasks(db) == []


def test_unique_key_replace_during_run_keeps_only_the_new_task(db: SQLiteDB, make_scheduler):
    registry, started, release, calls = _blocking_registry()
    node = make_scheduler("node-a", registry=registry)
    old_id = node.schedule_task("slow", {"v": 1}, T0, repeat_interval=60_000, unique_key="k")

    assert len(node.run_sweep()) == 1
    assert started.wait(timeout=5)
    new_id = node.schedule_task("slow", {"v": 2}, T0 + 5000, unique_key="k")

    release.set()
    assert node.wait_for_dispatches(timeout_s=5)

    remaining = [r for r in all_tasks(db) if r.unique_key == "k"]
    assert len(remaining) == 1
    assert remaining[0].id == new_id != old_id
    assert remaining[0].params == {"v": 2}
    assert remaining[0].scheduled_time == T0 + 5000
    assert remaining[0].repeat_interval is None


def test_unsaved_record_is_rejected(worker: Worker):
    unsaved = TaskRecord(name="ok", params=None, scheduled_time=T0, owner="node-a", running=True)

    with pytest.raises(ValueError, match="unsaved"):
        worker.run(unsaved)
    with pytest.raises(ValueError, match="not been stored"):
        unsaved.to_view()
