"""
Pipeline engine — wires one TaskStore to the runner, reporter and retry
coordinator. Build one per application (or per test).
"""

from __future__ import annotations

import config
from features.tasks.models import TaskSummary
from features.tasks.progress import ProgressReporter
from features.tasks.store import TaskStore
from utils.clock import Clock, SystemClock
from workflows.pipeline import PipelineRunner
from workflows.retry import RetryCoordinator


class PipelineEngine:
    def __init__(self, clock: Clock | None = None, max_tasks: int = config.MAX_RETAINED_TASKS):
        self.clock = clock or SystemClock()
        self.store = TaskStore(max_tasks=max_tasks)
        self.runner = PipelineRunner(self.store, self.clock)
        self.reporter = ProgressReporter(self.store, self.clock)
        self.retries = RetryCoordinator(self.store, self.runner)

        # Operations callers use directly
        self.start = self.runner.start
        self.cancel = self.runner.cancel
        self.wait = self.runner.wait
        self.check_progress = self.reporter.check_progress
        self.retry = self.retries.retry

    def list_tasks(self) -> list[TaskSummary]:
        return self.store.list_tasks()

    async def aclose(self) -> None:
        await self.runner.aclose()
