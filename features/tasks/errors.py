"""
Errors raised by task operations.

Both are caller errors: the API layer turns them into structured JSON
responses, they never take down the process.
"""

from __future__ import annotations


class TaskError(Exception):
    """Base class for task operation errors."""

    code = "task_error"

    def __init__(self, task_id: str, message: str):
        super().__init__(message)
        self.task_id = task_id
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, "taskId": self.task_id}


class TaskNotFound(TaskError):
    code = "task_not_found"

    def __init__(self, task_id: str):
        super().__init__(task_id, f'No task with ID "{task_id}"')


class InvalidState(TaskError):
    """The operation is not allowed for the task's current status."""

    code = "invalid_state"

    def __init__(self, task_id: str, status: str, message: str, code: str | None = None):
        super().__init__(task_id, message)
        self.status = status
        if code:
            self.code = code
