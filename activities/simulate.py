"""
Activity: Simulated Build Step — stands in for real work by waiting out the
step delay. Nothing external is executed.
"""

from __future__ import annotations

import logging

from features.tasks.models import STEP_LABELS
from utils.clock import Clock

log = logging.getLogger(__name__)


class StepFailure(Exception):
    """A simulated step exited with an error."""

    def __init__(self, step: int, label: str, exit_code: int = 1):
        self.step = step
        self.label = label
        self.exit_code = exit_code
        super().__init__(
            f'Step {step} "{label}" failed: simulated error (exit code {exit_code})'
        )


async def run_step(step: int, delay_seconds: float, clock: Clock, fail: bool = False) -> str:
    """
    Run step ``step`` (1-based) of the pipeline.

    Suspends for ``delay_seconds`` on the given clock, then raises StepFailure
    if ``fail`` is set.

    Returns:
        The step's label.
    """
    label = STEP_LABELS[step - 1]
    log.debug("Step %d/%d: %s (%.3fs)", step, len(STEP_LABELS), label, delay_seconds)
    await clock.sleep(delay_seconds)
    if fail:
        raise StepFailure(step, label)
    return label
