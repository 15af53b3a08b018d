"""
Timeout policy for jobs waiting on an external effect.
"""

from __future__ import annotations

import time

from .types import JobState

# How long a job may wait for spawned tasks to start running
DEFAULT_WAIT_TIME = 5 * 60.0


def elapsed_since_transition(state: JobState, now: float | None = None) -> float:
    """Seconds since the job entered its current stage."""
    if now is None:
        now = time.time()
    return now - state.ts


def is_timed_out(state: JobState, threshold: float, now: float | None = None) -> bool:
    """Check if the job has been in its current stage for longer than ``threshold`` seconds.

    A timestamp in the future (negative elapsed time) never counts as timed out.
    """
    elapsed = elapsed_since_transition(state, now)
    if elapsed < 0:
        return False
    return elapsed > threshold


__all__ = [
    "DEFAULT_WAIT_TIME",
    "elapsed_since_transition",
    "is_timed_out",
]
