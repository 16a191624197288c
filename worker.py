"""
Console driver — runs one pipeline in-process and prints its progress.

Usage:
    python worker.py --project acme-app --delay 200 --fail-at 3 --retry resume
    python worker.py --cancel-after 4
"""

from __future__ import annotations

import argparse
import asyncio
import logging

import config
from features.tasks.models import TOTAL_STEPS, RetryMode
from workflows.engine import PipelineEngine

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)


async def follow(engine: PipelineEngine, task_id: str, poll_seconds: float, cancel_after: int = 0) -> None:
    """Print a progress line on every poll until the task finishes."""
    last = None
    while True:
        snap = engine.check_progress(task_id)
        line = f"{snap.task_id}: {snap.status.value} {snap.progress} ({snap.percentage}%) — {snap.current_step}"
        if line != last:
            print(line)
            last = line
        if cancel_after and snap.completed >= cancel_after and not snap.status.is_terminal:
            result = engine.cancel(task_id, f"cancelled from console after step {cancel_after}")
            print(f"{task_id}: cancel requested at {result.stopped_at}")
            cancel_after = 0
        if snap.status.is_terminal:
            await engine.wait(task_id)
            break
        await asyncio.sleep(poll_seconds)

    snap = engine.check_progress(task_id)
    for entry in snap.last_log:
        print(f"    {entry}")
    if snap.error:
        print(f"    error: {snap.error}")


async def main(args: argparse.Namespace) -> None:
    engine = PipelineEngine()
    poll = max(args.delay / 2000, 0.02)
    try:
        task_id = engine.start(args.project, args.delay, args.fail_at)
        await follow(engine, task_id, poll, cancel_after=args.cancel_after)

        if args.retry:
            result = engine.retry(task_id, args.retry, step_delay_ms=args.delay)
            print(f"retrying {task_id} as {result.new_task_id} from step {result.resume_from_step}")
            await follow(engine, result.new_task_id, poll)

        for summary in engine.list_tasks():
            print(f"{summary.id}  {summary.status.value:<10} {summary.progress:>6}  {summary.error or ''}")
    finally:
        await engine.aclose()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a simulated build pipeline")
    parser.add_argument("--project", default=config.DEFAULT_PROJECT)
    parser.add_argument("--delay", type=int, default=config.STEP_DELAY_MS, help="step delay in ms")
    parser.add_argument("--fail-at", type=int, default=0, choices=range(0, TOTAL_STEPS + 1),
                        metavar=f"0..{TOTAL_STEPS}", help="step that fails (0 = none)")
    parser.add_argument("--cancel-after", type=int, default=0, help="cancel once this many steps are done")
    parser.add_argument("--retry", choices=[m.value for m in RetryMode],
                        help="retry the task once it has stopped")
    args = parser.parse_args(argv)
    try:
        config.check_step_delay(args.delay)
    except ValueError as e:
        parser.error(str(e))
    return args


if __name__ == "__main__":
    asyncio.run(main(parse_args()))
