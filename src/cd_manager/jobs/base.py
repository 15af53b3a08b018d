"""
Job variant base class and per-type dispatch.

Each job type owns one variant class implementing ``advance``. Variants
register themselves with ``register_job`` and are selected by type when a
job is constructed.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, ClassVar, TypeVar

from ..deployment.base import Deployment
from ..errors import ErrorContext, UnknownJobTypeError
from ..logging import StructuredLogger, get_logger
from ..store import JobDatabase
from .transition import StageTransitioner
from .types import JobStage, JobState, JobType


@dataclass
class JobContext:
    """Dependencies shared by every job variant."""
    db: JobDatabase
    deployment: Deployment
    transitioner: StageTransitioner
    env: str = "dev"
    clock: Callable[[], float] = time.time
    logger: StructuredLogger = field(default_factory=get_logger)


class Job(ABC):
    """A per-type step function over JobState.

    ``advance`` must be safe to call repeatedly while the job is not
    terminal. Returning the input state unchanged means "nothing happened
    yet, call again later". Failures are recorded on the returned state
    rather than raised.
    """

    job_type: ClassVar[JobType]

    def __init__(self, ctx: JobContext):
        self.ctx = ctx

    @abstractmethod
    async def advance(self, state: JobState, *, now: float | None = None) -> JobState:
        """Run one step of the job and return the resulting state."""
        ...

    def _now(self, now: float | None) -> float:
        return self.ctx.clock() if now is None else now

    async def _advance(
        self,
        state: JobState,
        stage: JobStage,
        ts: float,
        error: BaseException | None = None,
    ) -> JobState:
        return await self.ctx.transitioner.advance(state, stage, ts, error)

    def _error_context(self, state: JobState, operation: str | None = None) -> ErrorContext:
        return ErrorContext(
            job_id=state.id,
            job_type=state.type.value,
            stage=state.stage.value,
            operation=operation,
        )


JOB_VARIANTS: dict[JobType, type[Job]] = {}

J = TypeVar("J", bound=type[Job])


def register_job(job_type: JobType) -> Callable[[J], J]:
    """Class decorator registering the variant that advances ``job_type`` jobs."""

    def decorator(cls: J) -> J:
        cls.job_type = job_type
        JOB_VARIANTS[job_type] = cls
        return cls

    return decorator


def create_job(job_type: JobType, ctx: JobContext) -> Job:
    """Construct the variant registered for ``job_type``.

    Raises:
        UnknownJobTypeError: If no variant handles the type
    """
    cls = JOB_VARIANTS.get(job_type)
    if cls is None:
        raise UnknownJobTypeError(
            f"no job variant registered for {job_type.value}",
            context=ErrorContext(job_type=job_type.value),
        )
    return cls(ctx)


__all__ = [
    "Job",
    "JobContext",
    "JOB_VARIANTS",
    "register_job",
    "create_job",
]
