"""
Data models for the tasks feature.

A Task is one execution of the fixed build pipeline (STEP_LABELS). Tasks are
created by the pipeline runner or derived from an earlier task by the retry
coordinator, in which case ``lineage`` points back at the parent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# Shared by fresh runs and retries so step indices stay comparable.
STEP_LABELS: tuple[str, ...] = (
    "Cloning repository",
    "Installing dependencies",
    "Running linter",
    "Running unit tests",
    "Running integration tests",
    "Building frontend bundle",
    "Building backend bundle",
    "Optimizing assets",
    "Running security scan",
    "Generating documentation",
    "Creating deployment package",
    "Publishing artifacts",
)

TOTAL_STEPS = len(STEP_LABELS)

# currentStep value reported once every step has finished
NO_FURTHER_STEP = "(done)"


class TaskStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.RUNNING


class RetryMode(str, Enum):
    RESUME = "resume"
    RESTART = "restart"


class LogKind(str, Enum):
    STARTED = "started"
    STEP_OK = "step_ok"
    STEP_FAILED = "step_failed"
    CANCEL_REQUESTED = "cancel_requested"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    RETAINED = "retained"


@dataclass(frozen=True)
class LogEntry:
    """One timestamped line in a task's log."""
    at: datetime
    kind: LogKind
    message: str

    def __str__(self) -> str:
        if self.kind is LogKind.RETAINED:
            # already carries the original entry's timestamp
            return self.message
        return f"[{self.at.isoformat()}] {self.message}"


@dataclass
class Task:
    """A single run of the step sequence."""
    id: str
    project: str
    started_at: datetime
    started_monotonic: float
    status: TaskStatus = TaskStatus.RUNNING
    total: int = TOTAL_STEPS
    completed: int = 0
    log: list[LogEntry] = field(default_factory=list)
    error: str | None = None
    lineage: str | None = None

    @property
    def progress(self) -> str:
        return f"{self.completed}/{self.total}"

    def append_log(self, at: datetime, kind: LogKind, message: str) -> LogEntry:
        entry = LogEntry(at=at, kind=kind, message=message)
        self.log.append(entry)
        return entry

    def advance(self) -> None:
        """Mark the next step as finished."""
        if self.completed >= self.total:
            raise ValueError(f"task {self.id} has no step left to complete")
        self.completed += 1


@dataclass(frozen=True)
class TaskSummary:
    """Row returned by a task listing."""
    id: str
    status: TaskStatus
    progress: str
    error: str | None = None
    lineage: str | None = None
