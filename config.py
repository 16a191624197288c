"""
Configuration — loads settings from environment / .env file.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()

# Logging
LOG_LEVEL = os.getenv("PIPELINE_LOG_LEVEL", "INFO").upper()

# Pipeline defaults
DEFAULT_PROJECT = os.getenv("PIPELINE_DEFAULT_PROJECT", "acme-app")
STEP_DELAY_MS = int(os.getenv("PIPELINE_STEP_DELAY_MS", "500"))
RETRY_STEP_DELAY_MS = int(os.getenv("PIPELINE_RETRY_STEP_DELAY_MS", "300"))

# Bounds accepted for a per-step delay (milliseconds)
MIN_STEP_DELAY_MS = 50
MAX_STEP_DELAY_MS = 5_000

# Task store retention (0 = keep every task for the life of the process)
MAX_RETAINED_TASKS = int(os.getenv("PIPELINE_MAX_RETAINED_TASKS", "0"))

# Number of log lines returned by a progress check
PROGRESS_LOG_TAIL = int(os.getenv("PIPELINE_PROGRESS_LOG_TAIL", "5"))


def check_step_delay(step_delay_ms: int) -> int:
    """Raise ValueError if a step delay is outside the accepted bounds."""
    if not MIN_STEP_DELAY_MS <= step_delay_ms <= MAX_STEP_DELAY_MS:
        raise ValueError(
            f"step delay must be between {MIN_STEP_DELAY_MS} and "
            f"{MAX_STEP_DELAY_MS} ms, got {step_delay_ms}"
        )
    return step_delay_ms
