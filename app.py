"""
FastAPI application — REST API for the build pipeline engine.

Endpoints:
  POST /pipeline/start             — Start a pipeline task
  GET  /pipeline/tasks             — List all tasks
  GET  /pipeline/{task_id}         — Poll a task's progress
  POST /pipeline/{task_id}/cancel  — Cancel a running task
  POST /pipeline/{task_id}/retry   — Resume or restart a finished task
  GET  /health                     — Health check
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import config
from features.tasks.errors import InvalidState, TaskError, TaskNotFound
from features.tasks.models import RetryMode
from models.schemas import (
    CancelRequest,
    CancelResponse,
    PipelineStartRequest,
    PipelineStartResponse,
    ProgressResponse,
    RetryRequest,
    RetryResponse,
    TaskListItem,
    TaskListResponse,
)
from workflows.engine import PipelineEngine

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)


def create_app(engine: PipelineEngine | None = None) -> FastAPI:
    """Build the API around ``engine`` (a fresh one if not given)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.engine = engine or PipelineEngine()
        log.info("Pipeline engine ready (retention cap: %s)", app.state.engine.store.max_tasks or "none")
        yield
        await app.state.engine.aclose()

    app = FastAPI(
        title="Pipeline Tasks",
        description="Background build pipelines with progress polling, cancellation and retry",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(TaskNotFound, _task_error_handler(404))
    app.add_exception_handler(InvalidState, _task_error_handler(409))
    _register_routes(app)
    return app


def _task_error_handler(status_code: int):
    async def handler(request: Request, exc: TaskError) -> JSONResponse:
        log.info("%s %s → %s: %s", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=status_code, content=exc.to_dict())
    return handler


def _engine(request: Request) -> PipelineEngine:
    return request.app.state.engine


def _register_routes(app: FastAPI) -> None:

    # ── Health ────────────────────────────────────────────────────────

    @app.get("/health")
    def health(request: Request):
        return {
            "status": "ok",
            "service": "pipeline-tasks",
            "tasks": len(_engine(request).store),
        }

    # ── Pipeline ──────────────────────────────────────────────────────

    @app.post("/pipeline/start", response_model=PipelineStartResponse)
    async def start_pipeline(req: PipelineStartRequest, request: Request):
        """Start a 12-step build pipeline in the background."""
        engine = _engine(request)
        task_id = engine.start(req.project, req.stepDelayMs, req.failAtStep)
        total = engine.store.get(task_id).total
        return PipelineStartResponse(
            taskId=task_id,
            status="running",
            total=total,
            message=f"Pipeline started with {total} steps. Poll GET /pipeline/{task_id} for progress.",
        )

    @app.get("/pipeline/tasks", response_model=TaskListResponse)
    async def list_tasks(request: Request):
        """List every known task, whatever its status."""
        engine = _engine(request)
        tasks = [
            TaskListItem(id=t.id, status=t.status.value, progress=t.progress, error=t.error, lineage=t.lineage)
            for t in engine.list_tasks()
        ]
        return TaskListResponse(tasks=tasks, total=len(tasks), created=engine.store.created_count)

    @app.get("/pipeline/{task_id}", response_model=ProgressResponse)
    async def check_progress(task_id: str, request: Request):
        """Current step, percentage and recent log lines of a task."""
        snap = _engine(request).check_progress(task_id)
        return ProgressResponse(
            taskId=snap.task_id,
            status=snap.status.value,
            progress=snap.progress,
            percentage=f"{snap.percentage}%",
            elapsedMs=snap.elapsed_ms,
            currentStep=snap.current_step,
            lastLog=snap.last_log,
            error=snap.error,
            lineage=snap.lineage,
        )

    @app.post("/pipeline/{task_id}/cancel", response_model=CancelResponse)
    async def cancel_task(task_id: str, request: Request, req: CancelRequest | None = None):
        """Cancel a running task; it stops at its current step."""
        req = req or CancelRequest()
        result = _engine(request).cancel(task_id, req.reason)
        return CancelResponse(
            status=result.status.value,
            taskId=result.task_id,
            stoppedAt=result.stopped_at,
            reason=result.reason,
            message=(
                "Task cancelled. Use POST /pipeline/start to start a new run, "
                f"or POST /pipeline/{result.task_id}/retry to retry from a specific step."
            ),
        )

    @app.post("/pipeline/{task_id}/retry", response_model=RetryResponse)
    async def retry_task(task_id: str, request: Request, req: RetryRequest | None = None):
        """Resume a failed or cancelled task, or restart it from step 1."""
        req = req or RetryRequest()
        result = _engine(request).retry(task_id, req.mode, req.fixFailingStep, req.stepDelayMs)
        if result.mode is RetryMode.RESUME:
            message = f"Resuming from step {result.resume_from_step}/{result.total}."
        else:
            message = "Restarting from step 1."
        return RetryResponse(
            newTaskId=result.new_task_id,
            originalTaskId=result.original_task_id,
            mode=result.mode,
            resumeFromStep=result.resume_from_step,
            total=result.total,
            fixFailingStep=result.fix_failing_step,
            message=f"{message} Poll GET /pipeline/{result.new_task_id} for progress.",
        )


app = create_app()
