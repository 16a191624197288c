"""
Pydantic request/response models for the pipeline API.

Field names are camelCase on the wire to match what polling clients expect.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

import config
from features.tasks.models import TOTAL_STEPS, RetryMode
from workflows.pipeline import DEFAULT_CANCEL_REASON


class PipelineStartRequest(BaseModel):
    project: str = config.DEFAULT_PROJECT
    stepDelayMs: int = Field(
        default=config.STEP_DELAY_MS,
        ge=config.MIN_STEP_DELAY_MS,
        le=config.MAX_STEP_DELAY_MS,
        description="Delay per step in ms",
    )
    failAtStep: int = Field(
        default=0, ge=0, le=TOTAL_STEPS,
        description="Inject failure at this step (0 = no failure)",
    )


class PipelineStartResponse(BaseModel):
    taskId: str
    status: str
    total: int
    message: str


class ProgressResponse(BaseModel):
    taskId: str
    status: str
    progress: str  # "3 of 12"
    percentage: str  # "25%"
    elapsedMs: int
    currentStep: str
    lastLog: list[str]
    error: str | None = None
    lineage: str | None = None


class CancelRequest(BaseModel):
    reason: str = DEFAULT_CANCEL_REASON


class CancelResponse(BaseModel):
    status: str
    taskId: str
    stoppedAt: str
    reason: str
    message: str


class RetryRequest(BaseModel):
    mode: RetryMode = RetryMode.RESUME
    fixFailingStep: bool = True
    stepDelayMs: int = Field(
        default=config.RETRY_STEP_DELAY_MS,
        ge=config.MIN_STEP_DELAY_MS,
        le=config.MAX_STEP_DELAY_MS,
    )


class RetryResponse(BaseModel):
    newTaskId: str
    originalTaskId: str
    mode: RetryMode
    resumeFromStep: int
    total: int
    fixFailingStep: bool
    message: str


class TaskListItem(BaseModel):
    id: str
    status: str
    progress: str  # "3/12"
    error: str | None = None
    lineage: str | None = None


class TaskListResponse(BaseModel):
    tasks: list[TaskListItem]
    total: int  # tasks currently retained
    created: int  # tasks ever created, evicted ones included
