"""
Job engine: wires the collaborators together and drives jobs.

The engine owns no policy about *when* jobs are advanced beyond a simple
fixed-interval loop; schedulers with their own cadence call ``advance``
directly.
"""

from __future__ import annotations

import asyncio
import time
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Callable

from .config import Settings
from .deployment.base import Deployment
from .deployment.ecs import EcsDeployment, EcsSettings
from .jobs.base import Job, JobContext, create_job
from .jobs.transition import StageTransitioner
from .jobs.types import JobParams, JobState, JobType
from .logging import StructuredLogger, configure_logging, get_logger
from .notifs.base import LoggingNotifier, NotificationDispatcher
from .notifs.discord import DiscordNotifier
from .registry import ActiveJobRegistry
from .storage.postgres import PostgresJobDatabase
from .store import InMemoryJobDatabase, JobDatabase, JobFilter


class JobEngine:
    """Submits jobs and advances them through their variant's stage table.

    The engine is responsible for:
    - Creating queued jobs (submission path)
    - Dispatching ``advance`` to the variant registered for the job type
    - Serializing ``advance`` calls per job id
    - Seeding the active job registry from the database
    """

    def __init__(
        self,
        db: JobDatabase,
        deployment: Deployment,
        notifier: NotificationDispatcher,
        *,
        registry: ActiveJobRegistry | None = None,
        env: str = "dev",
        fail_closed: bool = False,
        poll_interval: float = 10.0,
        clock: Callable[[], float] = time.time,
        logger: StructuredLogger | None = None,
    ):
        self.db = db
        self.notifier = notifier
        self.registry = registry if registry is not None else ActiveJobRegistry()
        self.poll_interval = poll_interval
        self._logger = logger or get_logger()
        self.transitioner = StageTransitioner(
            db,
            self.registry,
            notifier,
            fail_closed=fail_closed,
            logger=self._logger,
        )
        self.ctx = JobContext(
            db=db,
            deployment=deployment,
            transitioner=self.transitioner,
            env=env,
            clock=clock,
            logger=self._logger,
        )
        self._variants: dict[JobType, Job] = {}
        # Entries vanish once no caller holds the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def job_for(self, job_type: JobType) -> Job:
        """Variant for ``job_type``.

        Raises:
            UnknownJobTypeError: If no variant handles the type
        """
        job = self._variants.get(job_type)
        if job is None:
            job = self._variants[job_type] = create_job(job_type, self.ctx)
        return job

    async def submit(
        self,
        job_type: JobType,
        params: JobParams,
        *,
        job_id: str | None = None,
    ) -> JobState:
        """Create a queued job, persist it, and announce it.

        Unlike stage transitions, a failed write here is raised: a job that
        was never stored has not been submitted.

        Raises:
            UnknownJobTypeError: If no variant can advance the job type.
                Nothing is stored or announced.
        """
        self.job_for(job_type)
        kwargs = {"id": job_id} if job_id else {}
        state = JobState(type=job_type, params=params, ts=self.ctx.clock(), **kwargs)
        await self.db.save_job(state)
        self.registry.record(state)
        try:
            self.notifier.notify_job(state)
        except Exception as e:
            self._logger.log_error(e, f"Failed to notify job {state.id}: {e}")
        self._logger.info(f"Job {state.id} queued", job_id=state.id, job_type=job_type.value)
        return state

    async def advance(self, state: JobState, *, now: float | None = None) -> JobState:
        """Advance ``state`` by one step, never concurrently for the same job id.

        If the registry already holds a newer snapshot of the job (another
        caller advanced it while this one waited), that snapshot is returned
        and the variant is not called.
        """
        lock = self._locks.get(state.id)
        if lock is None:
            lock = self._locks[state.id] = asyncio.Lock()
        async with lock:
            latest = self.registry.get(state.id)
            if latest is not None and _is_newer(latest, state):
                self._logger.debug(
                    f"Job {state.id} already advanced to {latest.stage.value}",
                    job_id=state.id,
                    stale_stage=state.stage.value,
                )
                return latest
            with self._logger.job_context(job_id=state.id, job_type=state.type.value):
                next_state = await self.job_for(state.type).advance(state, now=now)
        return next_state

    async def run_until_terminal(
        self,
        state: JobState,
        *,
        poll_interval: float | None = None,
        max_ticks: int | None = None,
    ) -> JobState:
        """Advance ``state`` at a fixed interval until it is terminal.

        Stops early after ``max_ticks`` calls and returns the latest state.
        """
        interval = self.poll_interval if poll_interval is None else poll_interval
        ticks = 0
        while not state.stage.is_terminal:
            if max_ticks is not None and ticks >= max_ticks:
                break
            next_state = await self.advance(state)
            ticks += 1
            if next_state is state:
                # Nothing changed yet
                await asyncio.sleep(interval)
            state = next_state
        return state

    async def load_active(self, limit: int = 1000) -> list[JobState]:
        """Seed the registry with the jobs the database knows are in progress."""
        jobs = await self.db.list_jobs(JobFilter(active_only=True, limit=limit))
        self.registry.load(jobs)
        return jobs

    async def aclose(self) -> None:
        await self.notifier.aclose()


def _is_newer(latest: JobState, state: JobState) -> bool:
    # Queued -> dequeued keeps the timestamp, so equal ts with a different snapshot is newer too
    return latest.ts > state.ts or (latest.ts == state.ts and latest != state)


@asynccontextmanager
async def open_engine(settings: Settings) -> AsyncIterator[JobEngine]:
    """Build the production engine from settings.

    Uses PostgreSQL when a DSN is configured (in-memory storage otherwise),
    the ECS task backend, and Discord notifications when any webhook is
    configured.
    """
    logger = configure_logging(
        level=settings.logging.level,
        json_output=settings.logging.format == "json",
    )

    db: JobDatabase
    if settings.database.dsn:
        db = await PostgresJobDatabase.connect(
            settings.database.dsn,
            table_prefix=settings.database.table_prefix,
        )
    else:
        db = InMemoryJobDatabase()

    registry = ActiveJobRegistry()
    notifier: NotificationDispatcher
    if settings.discord.enabled:
        notifier = DiscordNotifier(db, registry, settings.discord, settings.env, logger=logger)
    else:
        notifier = LoggingNotifier(logger)

    ecs_settings = EcsSettings(region_name=settings.aws.region, launch_type=settings.aws.launch_type)
    try:
        async with EcsDeployment(ecs_settings) as deployment:
            engine = JobEngine(
                db,
                deployment,
                notifier,
                registry=registry,
                env=settings.env.value,
                fail_closed=settings.fail_closed_persistence,
                poll_interval=settings.poll_interval,
                logger=logger,
            )
            await engine.load_active()
            try:
                yield engine
            finally:
                await engine.aclose()
    finally:
        await db.close()


__all__ = [
    "JobEngine",
    "open_engine",
]
