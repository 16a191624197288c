"""
In-memory task store.

One TaskStore is created per engine and handed to every component that needs
it; there is no module-level registry. Tasks live here until the process
exits, unless a retention cap is configured, in which case the oldest
finished tasks are dropped to make room.
"""

from __future__ import annotations

import logging

from features.tasks.errors import TaskNotFound
from features.tasks.models import Task, TaskSummary

log = logging.getLogger(__name__)


class TaskStore:
    """Registry of tasks keyed by id, in creation order."""

    def __init__(self, max_tasks: int = 0):
        if max_tasks < 0:
            raise ValueError("max_tasks must be >= 0")
        self.max_tasks = max_tasks
        self._tasks: dict[str, Task] = {}
        self.created_count = 0
        self.evicted_count = 0

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def add(self, task: Task) -> Task:
        if task.id in self._tasks:
            raise ValueError(f"duplicate task id: {task.id}")
        self._tasks[task.id] = task
        self.created_count += 1
        log.info("[TASK] Registered: %s (%s)", task.id, task.project)
        self._evict()
        return task

    def get(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def tasks(self) -> list[Task]:
        return list(self._tasks.values())

    def list_tasks(self) -> list[TaskSummary]:
        return [
            TaskSummary(
                id=t.id,
                status=t.status,
                progress=t.progress,
                error=t.error,
                lineage=t.lineage,
            )
            for t in self._tasks.values()
        ]

    def _evict(self) -> None:
        if not self.max_tasks:
            return
        overflow = len(self._tasks) - self.max_tasks
        if overflow <= 0:
            return
        # Running tasks are owned by a live flow and are never dropped.
        victims = [t.id for t in self._tasks.values() if t.status.is_terminal][:overflow]
        for task_id in victims:
            del self._tasks[task_id]
            self.evicted_count += 1
            log.info("[TASK] Evicted: %s", task_id)
        if len(self._tasks) > self.max_tasks:
            log.warning(
                "Task store holds %d tasks (cap %d); the rest are still running",
                len(self._tasks), self.max_tasks,
            )
