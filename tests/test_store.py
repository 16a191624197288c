from __future__ import annotations

from datetime import datetime, timezone

import pytest

from features.tasks.errors import TaskNotFound
from features.tasks.models import Task, TaskStatus
from features.tasks.store import TaskStore
from workflows.engine import PipelineEngine


def _task(task_id: str, status: TaskStatus = TaskStatus.RUNNING, completed: int = 0) -> Task:
    return Task(
        id=task_id,
        project="acme-app",
        started_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        started_monotonic=0.0,
        status=status,
        completed=completed,
    )


def test_add_and_get():
    store = TaskStore()
    task = store.add(_task("task-1"))

    assert store.get("task-1") is task
    assert "task-1" in store
    assert len(store) == 1
    assert store.created_count == 1


def test_get_unknown_raises():
    with pytest.raises(TaskNotFound):
        TaskStore().get("task-404")


def test_duplicate_id_is_rejected():
    store = TaskStore()
    store.add(_task("task-1"))

    with pytest.raises(ValueError):
        store.add(_task("task-1"))
    assert store.created_count == 1


def test_list_tasks_summaries():
    store = TaskStore()
    store.add(_task("task-1", TaskStatus.COMPLETED, completed=12))
    failed = store.add(_task("task-2", TaskStatus.FAILED, completed=2))
    failed.error = "boom"

    rows = {row.id: row for row in store.list_tasks()}

    assert rows["task-1"].progress == "12/12"
    assert rows["task-1"].error is None
    assert rows["task-2"].status is TaskStatus.FAILED
    assert rows["task-2"].progress == "2/12"
    assert rows["task-2"].error == "boom"


def test_unbounded_store_keeps_everything():
    store = TaskStore()
    for i in range(50):
        store.add(_task(f"task-{i}", TaskStatus.COMPLETED))

    assert len(store) == 50
    assert store.evicted_count == 0


def test_retention_cap_evicts_oldest_finished_tasks():
    store = TaskStore(max_tasks=2)
    store.add(_task("task-1", TaskStatus.COMPLETED))
    store.add(_task("task-2", TaskStatus.FAILED))
    store.add(_task("task-3", TaskStatus.COMPLETED))

    assert [t.id for t in store.tasks()] == ["task-2", "task-3"]
    assert store.evicted_count == 1
    assert store.created_count == 3
    with pytest.raises(TaskNotFound):
        store.get("task-1")


def test_retention_cap_never_evicts_running_tasks():
    store = TaskStore(max_tasks=1)
    store.add(_task("task-1"))
    store.add(_task("task-2"))

    assert len(store) == 2
    assert store.evicted_count == 0


def test_negative_cap_is_rejected():
    with pytest.raises(ValueError):
        TaskStore(max_tasks=-1)


@pytest.mark.asyncio
async def test_listing_counts_started_and_retried_tasks(engine, clock):
    counts = []
    first = engine.start("acme-app", 50, fail_at_step=2)
    counts.append(len(engine.list_tasks()))
    engine.start("other-app", 50)
    counts.append(len(engine.list_tasks()))
    await clock.advance(0.1)
    engine.retry(first, step_delay_ms=50)
    counts.append(len(engine.list_tasks()))

    assert counts == [1, 2, 3]
    assert {row.id for row in engine.list_tasks()} >= {first}


def test_engines_do_not_share_tasks():
    assert PipelineEngine().store is not PipelineEngine().store
