"""
Generic stage table for jobs that launch backend tasks and poll them.

    queued   -> dequeued   always (timestamp preserved)
    dequeued -> started    launch succeeded, task ids recorded
    dequeued -> failed     launch failed
    started  -> waiting    tasks running
    started  -> failed     not running after ``startup_timeout``
    waiting  -> completed  tasks stopped
    waiting  -> failed     still running after ``completion_timeout``
    other    -> failed     unexpected stage

While a condition has not been met and has not timed out, the state is
returned unchanged.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import ClassVar

from ..errors import (
    CompletionTimeoutError,
    ExternalCallError,
    JobTimeoutError,
    StartupTimeoutError,
    UnexpectedStateError,
)
from .base import Job
from .timeouts import DEFAULT_WAIT_TIME, elapsed_since_transition, is_timed_out
from .types import JobParams, JobStage, JobState, format_job


class TaskJob(Job):
    """Base for job variants driven by spawned backend tasks."""

    startup_timeout: ClassVar[float] = DEFAULT_WAIT_TIME
    completion_timeout: ClassVar[float]

    @abstractmethod
    async def launch(self, state: JobState, now: float) -> JobParams:
        """Start the job's tasks and return params recording them."""
        ...

    @abstractmethod
    async def check(self, state: JobState, expected_running: bool) -> bool:
        """Check whether the job's tasks are all running (or all stopped)."""
        ...

    async def advance(self, state: JobState, *, now: float | None = None) -> JobState:
        now = self._now(now)
        stage = state.stage

        if stage.is_terminal:
            self.ctx.logger.warning(
                f"{type(self).__name__}: advance called on terminal job",
                job_id=state.id,
                stage=stage.value,
            )
            return state

        if stage == JobStage.QUEUED:
            # No preparation needed. Keep the timestamp so that "dequeued"
            # sits at the same point on the timeline as "queued".
            return await self._advance(state, JobStage.DEQUEUED, state.ts)

        if stage == JobStage.DEQUEUED:
            try:
                params = await self.launch(state, now)
            except Exception as e:
                return await self._advance(state, JobStage.FAILED, now, self._wrap(e, state, "launch"))
            return await self._advance(state.with_params(params), JobStage.STARTED, now)

        if stage == JobStage.STARTED:
            return await self._poll(state, now, expected_running=True)

        if stage == JobStage.WAITING:
            return await self._poll(state, now, expected_running=False)

        return await self._advance(
            state,
            JobStage.FAILED,
            now,
            UnexpectedStateError(
                f"{type(self).__name__}: unexpected state: {format_job(state)}",
                context=self._error_context(state, "advance"),
            ),
        )

    async def _poll(self, state: JobState, now: float, *, expected_running: bool) -> JobState:
        try:
            matched = await self.check(state, expected_running)
        except Exception as e:
            return await self._advance(state, JobStage.FAILED, now, self._wrap(e, state, "check"))

        if matched:
            next_stage = JobStage.WAITING if expected_running else JobStage.COMPLETED
            return await self._advance(state, next_stage, now)

        timeout_error = self._timeout_error(state, now, expected_running)
        if timeout_error is not None:
            return await self._advance(state, JobStage.FAILED, now, timeout_error)

        # Come back later to check again
        return state

    def _timeout_error(self, state: JobState, now: float, expected_running: bool) -> JobTimeoutError | None:
        threshold = self.startup_timeout if expected_running else self.completion_timeout
        if not is_timed_out(state, threshold, now):
            return None
        elapsed = elapsed_since_transition(state, now)
        cls = StartupTimeoutError if expected_running else CompletionTimeoutError
        what = "start" if expected_running else "finish"
        return cls(
            f"tasks did not {what} within {threshold:.0f}s (waited {elapsed:.0f}s)",
            threshold=threshold,
            context=self._error_context(state, "check"),
        )

    def _wrap(self, exc: Exception, state: JobState, operation: str):
        return ExternalCallError.wrap(exc, operation=operation, context=self._error_context(state, operation))


__all__ = ["TaskJob"]
