"""
Progress snapshots for polling clients.

Reads only: building a snapshot never touches the task, so it is safe to
call as often as a client likes while the task's flow is running.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import config
from features.tasks.models import NO_FURTHER_STEP, STEP_LABELS, TaskStatus
from features.tasks.store import TaskStore
from utils.clock import Clock, SystemClock


@dataclass(frozen=True)
class ProgressSnapshot:
    task_id: str
    status: TaskStatus
    completed: int
    total: int
    percentage: int
    elapsed_ms: int
    current_step: str
    last_log: list[str]
    error: str | None = None
    lineage: str | None = None

    @property
    def progress(self) -> str:
        return f"{self.completed} of {self.total}"


def percent_complete(completed: int, total: int) -> int:
    """Whole-number percentage, rounding halves up."""
    if total <= 0:
        return 0
    return math.floor(completed * 100 / total + 0.5)


class ProgressReporter:
    def __init__(
        self,
        store: TaskStore,
        clock: Clock | None = None,
        log_tail: int = config.PROGRESS_LOG_TAIL,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.log_tail = log_tail

    def check_progress(self, task_id: str) -> ProgressSnapshot:
        """Return a point-in-time view of a task. Raises TaskNotFound."""
        task = self.store.get(task_id)
        completed = task.completed
        if completed < task.total:
            current_step = STEP_LABELS[completed]
        else:
            current_step = NO_FURTHER_STEP
        elapsed = self.clock.monotonic() - task.started_monotonic
        tail = task.log[-self.log_tail:] if self.log_tail > 0 else []
        return ProgressSnapshot(
            task_id=task.id,
            status=task.status,
            completed=completed,
            total=task.total,
            percentage=percent_complete(completed, task.total),
            elapsed_ms=max(0, round(elapsed * 1000)),
            current_step=current_step,
            last_log=[str(entry) for entry in tail],
            error=task.error,
            lineage=task.lineage,
        )
