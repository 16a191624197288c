"""
Pipeline Runner — starts build pipeline tasks and drives them step by step.

Each task gets its own asyncio task ("flow") that walks STEP_LABELS:

  1. check the task is still running (cancellation is observed here)
  2. run the simulated step (the only await point)
  3. check again, then record success, failure, or stop
  4. after the last step, mark the task completed

The flow is the only writer of ``completed`` and of the completed/failed
transitions. ``cancel`` is the one outside writer: it flips the status and
adds a log line, and the flow notices at its next check.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass

import config
from activities.simulate import StepFailure, run_step
from features.tasks.errors import InvalidState
from features.tasks.models import LogKind, Task, TaskStatus, TOTAL_STEPS
from features.tasks.store import TaskStore
from utils.clock import Clock, SystemClock

log = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "User requested cancellation"


@dataclass(frozen=True)
class CancelResult:
    task_id: str
    completed: int
    total: int
    reason: str
    status: TaskStatus = TaskStatus.CANCELLED

    @property
    def stopped_at(self) -> str:
        return f"{self.completed} of {self.total}"


class PipelineRunner:
    """Creates tasks in a TaskStore and runs them on the current event loop."""

    def __init__(self, store: TaskStore, clock: Clock | None = None):
        self.store = store
        self.clock = clock or SystemClock()
        self._flows: dict[str, asyncio.Task] = {}

    # ── Public operations ─────────────────────────────────────────────

    def start(
        self,
        project: str = config.DEFAULT_PROJECT,
        step_delay_ms: int = config.STEP_DELAY_MS,
        fail_at_step: int = 0,
    ) -> str:
        """Register a new task and launch its flow without waiting on it.

        ``fail_at_step`` is a 1-based step index that will fail, or 0 for a
        clean run. Must be called from inside a running event loop.
        """
        config.check_step_delay(step_delay_ms)
        if not 0 <= fail_at_step <= TOTAL_STEPS:
            raise ValueError(f"fail_at_step must be between 0 and {TOTAL_STEPS}, got {fail_at_step}")
        # raises before anything is registered when there is no loop
        loop = asyncio.get_running_loop()

        stamp = int(self.clock.now().timestamp() * 1000)
        task = self.create_task(f"task-{stamp}-{uuid.uuid4().hex[:4]}", project)
        task.append_log(self.clock.now(), LogKind.STARTED, f"Pipeline started for {project}")
        self.launch(task, step_delay_ms, fail_at_step=fail_at_step, loop=loop)
        log.info(
            "[TASK] Started: %s — %s (delay=%dms, fail_at=%d)",
            task.id, project, step_delay_ms, fail_at_step,
        )
        return task.id

    def cancel(self, task_id: str, reason: str = DEFAULT_CANCEL_REASON) -> CancelResult:
        """Request cooperative cancellation of a running task.

        The status changes immediately; the task's flow stops at its next
        step boundary.
        """
        task = self.store.get(task_id)
        if task.status is not TaskStatus.RUNNING:
            raise InvalidState(
                task.id, task.status.value,
                f'Task is "{task.status.value}", not running. Cannot cancel.',
            )
        task.status = TaskStatus.CANCELLED
        task.append_log(self.clock.now(), LogKind.CANCEL_REQUESTED, f"⊘ Cancellation requested: {reason}")
        log.info("[TASK] Cancel requested: %s at %s — %s", task.id, task.progress, reason)
        return CancelResult(task_id=task.id, completed=task.completed, total=task.total, reason=reason)

    async def wait(self, task_id: str) -> Task:
        """Wait for a task's flow to finish and return the task."""
        task = self.store.get(task_id)
        flow = self._flows.get(task_id)
        if flow is not None:
            await asyncio.shield(flow)
        return task

    async def aclose(self) -> None:
        """Cancel every flow that is still running and wait for them."""
        flows = [f for f in self._flows.values() if not f.done()]
        for flow in flows:
            flow.cancel()
        if flows:
            await asyncio.gather(*flows, return_exceptions=True)
            log.info("Stopped %d pipeline flow(s)", len(flows))

    # ── Shared with the retry coordinator ─────────────────────────────

    def create_task(
        self,
        task_id: str,
        project: str,
        completed: int = 0,
        lineage: str | None = None,
    ) -> Task:
        task = Task(
            id=task_id,
            project=project,
            started_at=self.clock.now(),
            started_monotonic=self.clock.monotonic(),
            completed=completed,
            lineage=lineage,
        )
        return self.store.add(task)

    def launch(
        self,
        task: Task,
        step_delay_ms: int,
        fail_at_step: int = 0,
        fixed_step: int | None = None,
        completion_message: str = "✓ Pipeline completed successfully",
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> asyncio.Task:
        """Spawn the flow that runs ``task`` from step ``completed + 1``."""
        flow = (loop or asyncio.get_running_loop()).create_task(
            self._drive(task, step_delay_ms / 1000, fail_at_step, fixed_step, completion_message),
            name=f"pipeline:{task.id}",
        )
        self._flows[task.id] = flow
        flow.add_done_callback(lambda _: self._flows.pop(task.id, None))
        return flow

    # ── Flow ──────────────────────────────────────────────────────────

    async def _drive(
        self,
        task: Task,
        delay_seconds: float,
        fail_at_step: int,
        fixed_step: int | None,
        completion_message: str,
    ) -> None:
        step = task.completed + 1
        try:
            for step in range(task.completed + 1, task.total + 1):
                if self._stopped(task, step):
                    return
                try:
                    label = await run_step(step, delay_seconds, self.clock, fail=step == fail_at_step)
                except StepFailure as e:
                    if self._stopped(task, step):
                        return
                    self._fail(task, f"✗ FAILED: {e.label} — {e}", str(e))
                    return
                if self._stopped(task, step):
                    return

                task.advance()
                suffix = " (fixed!)" if step == fixed_step else ""
                task.append_log(self.clock.now(), LogKind.STEP_OK, f"✓ [{step}/{task.total}] {label}{suffix}")
                log.info("[TASK] %s: step %d/%d done — %s", task.id, step, task.total, label)

            task.status = TaskStatus.COMPLETED
            task.append_log(self.clock.now(), LogKind.COMPLETED, completion_message)
            log.info("[TASK] Completed: %s", task.id)
        except asyncio.CancelledError:
            if task.status is TaskStatus.RUNNING:
                task.status = TaskStatus.CANCELLED
                task.append_log(
                    self.clock.now(), LogKind.CANCELLED,
                    f"✗ Cancelled at step {step}/{task.total} (engine shutting down)",
                )
            raise
        except Exception as e:
            log.error("Pipeline flow for %s crashed: %s", task.id, e, exc_info=True)
            if task.status is TaskStatus.RUNNING:
                self._fail(task, f"✗ FAILED: {e}", str(e))

    def _stopped(self, task: Task, step: int) -> bool:
        """True if the task was cancelled; logs that the flow saw it."""
        if task.status is TaskStatus.RUNNING:
            return False
        task.append_log(self.clock.now(), LogKind.CANCELLED, f"✗ Cancelled at step {step}/{task.total}")
        log.info("[TASK] Cancelled: %s at step %d/%d", task.id, step, task.total)
        return True

    def _fail(self, task: Task, line: str, error: str) -> None:
        task.status = TaskStatus.FAILED
        task.error = error
        task.append_log(self.clock.now(), LogKind.STEP_FAILED, line)
        log.error("[TASK] Failed: %s — %s", task.id, error)
