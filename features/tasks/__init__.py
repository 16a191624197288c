"""
Tasks feature — pipeline task records, their store and progress snapshots.

Public API:
    from features.tasks import Task, TaskStatus, TaskStore, ProgressReporter
"""

from features.tasks.errors import InvalidState, TaskError, TaskNotFound
from features.tasks.models import (
    STEP_LABELS,
    TOTAL_STEPS,
    LogEntry,
    LogKind,
    RetryMode,
    Task,
    TaskStatus,
    TaskSummary,
)
from features.tasks.progress import ProgressReporter, ProgressSnapshot
from features.tasks.store import TaskStore

__all__ = [
    "STEP_LABELS",
    "TOTAL_STEPS",
    "InvalidState",
    "LogEntry",
    "LogKind",
    "ProgressReporter",
    "ProgressSnapshot",
    "RetryMode",
    "Task",
    "TaskError",
    "TaskNotFound",
    "TaskStatus",
    "TaskStore",
    "TaskSummary",
]
