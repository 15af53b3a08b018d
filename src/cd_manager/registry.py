"""
In-memory index of known job states.

The registry is shared by every job's transition primitive and by the
notification layer, which asks it "what else is running". It never gates
execution; it only reports.
"""

from __future__ import annotations

import threading
from typing import Callable, Iterable

from .jobs.types import JobState, JobType

JobMatcher = Callable[[JobState], bool]


class ActiveJobRegistry:
    """Latest known JobState per job id.

    Thread-safe via threading.Lock. No awaits happen while the lock is
    held, so the same instance is safe to share between asyncio tasks and
    worker threads. Updates are last-writer-wins per id and visible to the
    writer as soon as ``record`` returns.
    """

    def __init__(self, states: Iterable[JobState] | None = None):
        self._jobs: dict[str, JobState] = {}
        self._lock = threading.Lock()
        if states:
            self.load(states)

    def record(self, state: JobState) -> None:
        """Store ``state`` as the latest snapshot of its job."""
        with self._lock:
            self._jobs[state.id] = state

    def load(self, states: Iterable[JobState]) -> None:
        """Record many states at once (e.g. when seeding from the database)."""
        with self._lock:
            for state in states:
                self._jobs[state.id] = state

    def get(self, job_id: str) -> JobState | None:
        with self._lock:
            return self._jobs.get(job_id)

    def remove(self, job_id: str) -> bool:
        """Forget a job. Returns True if it was known."""
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def jobs_by_matcher(self, matcher: JobMatcher) -> list[JobState]:
        """Return every known job for which ``matcher`` is true.

        The predicate runs on a snapshot taken under the lock, so a slow or
        re-entrant matcher never blocks writers.
        """
        with self._lock:
            snapshot = list(self._jobs.values())
        return [state for state in snapshot if matcher(state)]

    def active_jobs(
        self,
        job_type: JobType | None = None,
        exclude_id: str | None = None,
    ) -> list[JobState]:
        """Non-terminal jobs, optionally of one type and excluding one id."""
        return self.jobs_by_matcher(
            lambda js: js.stage.is_active
            and (job_type is None or js.type == job_type)
            and js.id != exclude_id
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs


__all__ = [
    "ActiveJobRegistry",
    "JobMatcher",
]
