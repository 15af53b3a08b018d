"""
Stage transition primitive shared by all job variants.

A transition materializes the next JobState, writes it through to the
database, records it in the active job registry, and forwards it to the
notification dispatcher, in that order.
"""

from __future__ import annotations

from ..errors import ErrorContext, PersistenceError
from ..logging import StructuredLogger, TransitionLog, get_logger, timed
from ..notifs.base import NotificationDispatcher
from ..registry import ActiveJobRegistry
from ..store import JobDatabase
from .types import JobStage, JobState


class StageTransitioner:
    """Materializes, persists, and announces stage changes.

    Persistence policy:
    - fail-open (default): a failed database write is logged and the new
      state is still recorded, announced, and returned.
    - fail-closed: a failed database write raises PersistenceError and the
      registry and notifier are left untouched, so the caller keeps the
      previous state and may retry the step.

    Notification failures are always logged and never raised.

    A fail-closed write failure after a side effect (such as a launched
    task) leaves the caller with a state that does not know about it, and
    advancing that state again repeats the side effect. The params of the
    unsaved state are carried in the error context (``extra["params"]``) so
    the caller can recover task ids instead of relaunching.
    """

    def __init__(
        self,
        db: JobDatabase,
        registry: ActiveJobRegistry,
        notifier: NotificationDispatcher,
        *,
        fail_closed: bool = False,
        logger: StructuredLogger | None = None,
    ):
        self._db = db
        self._registry = registry
        self._notifier = notifier
        self._fail_closed = fail_closed
        self._logger = logger or get_logger()

    @property
    def registry(self) -> ActiveJobRegistry:
        return self._registry

    @property
    def fail_closed(self) -> bool:
        return self._fail_closed

    async def advance(
        self,
        state: JobState,
        stage: JobStage,
        ts: float,
        error: BaseException | None = None,
    ) -> JobState:
        """Move ``state`` to ``stage`` at time ``ts`` and return the new state.

        Raises:
            PersistenceError: Only in fail-closed mode, if the write-through fails
        """
        next_state = state.transition_to(stage, ts, error)
        record = TransitionLog(
            job_id=state.id,
            job_type=state.type.value,
            from_stage=state.stage.value,
            to_stage=stage.value,
            ts=ts,
            error=next_state.error,
            error_code=next_state.error_code,
        )

        with timed() as timer:
            try:
                await self._db.save_job(next_state)
            except Exception as e:
                record.persisted = False
                err = PersistenceError(
                    f"failed to save job: {e}",
                    context=ErrorContext(
                        job_id=state.id,
                        job_type=state.type.value,
                        stage=stage.value,
                        operation="save_job",
                        extra={"params": next_state.params.to_dict()},
                    ),
                    cause=e,
                )
                self._logger.log_error(err, fail_closed=self._fail_closed)
                if self._fail_closed:
                    raise err from e

            # Must be visible before notification content is generated
            self._registry.record(next_state)

            try:
                self._notifier.notify_job(next_state)
            except Exception as e:
                record.notified = False
                self._logger.log_error(e, f"Failed to notify job {state.id}: {e}")

        record.duration_ms = timer.elapsed_ms
        self._logger.log_transition(record)
        return next_state


__all__ = ["StageTransitioner"]
