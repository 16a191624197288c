"""
Retry Coordinator — continues the work of a finished task in a new task.

The original task is only read, never written. The new task records the
original's id in ``lineage`` and runs on the same flow as a fresh pipeline,
except that it never injects a failure.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass

import config
from features.tasks.errors import InvalidState
from features.tasks.models import LogKind, RetryMode, TaskStatus
from features.tasks.store import TaskStore
from workflows.pipeline import PipelineRunner

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryResult:
    new_task_id: str
    original_task_id: str
    mode: RetryMode
    resume_from_step: int
    total: int
    fix_failing_step: bool


class RetryCoordinator:
    def __init__(self, store: TaskStore, runner: PipelineRunner):
        self.store = store
        self.runner = runner

    def retry(
        self,
        task_id: str,
        mode: RetryMode | str = RetryMode.RESUME,
        fix_failing_step: bool = True,
        step_delay_ms: int = config.RETRY_STEP_DELAY_MS,
    ) -> RetryResult:
        """Create and launch a task that picks up where ``task_id`` stopped.

        ``resume`` starts after the original's last finished step and carries
        its step log forward; ``restart`` starts again from step 1.
        """
        mode = RetryMode(mode)
        config.check_step_delay(step_delay_ms)
        # raises before anything is registered when there is no loop
        loop = asyncio.get_running_loop()
        original = self.store.get(task_id)
        if original.status is TaskStatus.RUNNING:
            raise InvalidState(
                original.id, original.status.value,
                "Task is still running. Cancel it first.",
                code="still_running",
            )

        baseline = original.completed if mode is RetryMode.RESUME else 0
        clock = self.runner.clock
        task = self.runner.create_task(
            f"{original.id}-retry-{uuid.uuid4().hex[:6]}",
            original.project,
            completed=baseline,
            lineage=original.id,
        )
        task.append_log(
            clock.now(), LogKind.STARTED,
            f"Retry of {original.id} (mode: {mode.value}, startStep: {baseline + 1})",
        )
        if mode is RetryMode.RESUME:
            for entry in original.log:
                if entry.kind is LogKind.STEP_OK:
                    task.append_log(clock.now(), LogKind.RETAINED, f"[retained] {entry}")
                elif entry.kind is LogKind.RETAINED:
                    # carried forward from an earlier resume, already marked
                    task.append_log(clock.now(), LogKind.RETAINED, entry.message)

        # Only cosmetic: the step after the original's stopping point is
        # marked as fixed in the log.
        fixed_step = original.completed + 1 if fix_failing_step else None
        self.runner.launch(
            task,
            step_delay_ms,
            fixed_step=fixed_step,
            completion_message="✓ Pipeline completed on retry",
            loop=loop,
        )
        log.info(
            "[TASK] Retry: %s → %s (mode=%s, from step %d)",
            original.id, task.id, mode.value, baseline + 1,
        )
        return RetryResult(
            new_task_id=task.id,
            original_task_id=original.id,
            mode=mode,
            resume_from_step=baseline + 1,
            total=task.total,
            fix_failing_step=fix_failing_step,
        )
