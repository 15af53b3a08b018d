"""
Job database interface and in-memory implementation.

This module provides the JobDatabase interface that the transition
primitive writes through to, plus the deploy commit-hash lookup that the
notification layer uses.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .jobs.types import DeployComponent, JobStage, JobState, JobType


@dataclass
class JobFilter:
    """Filter criteria for listing jobs."""
    job_type: JobType | None = None
    stage: JobStage | set[JobStage] | None = None
    active_only: bool = False
    limit: int = 100
    offset: int = 0
    order_desc: bool = True

    def matches(self, job: JobState) -> bool:
        """Check if a job matches this filter."""
        if self.job_type and job.type != self.job_type:
            return False
        if self.active_only and not job.stage.is_active:
            return False
        if self.stage:
            if isinstance(self.stage, set):
                if job.stage not in self.stage:
                    return False
            elif job.stage != self.stage:
                return False
        return True


class JobDatabase(ABC):
    """Abstract interface for job persistence.

    Implementations must be safe for concurrent access from many jobs.
    """

    @abstractmethod
    async def save_job(self, job: JobState) -> None:
        """Persist ``job`` as the latest state of its id and keep it in the job history."""
        ...

    @abstractmethod
    async def get_job(self, job_id: str) -> JobState | None:
        """Get the latest state of a job by id."""
        ...

    @abstractmethod
    async def list_jobs(self, filter: JobFilter | None = None) -> list[JobState]:
        """List latest job states matching the filter, most recent transition first."""
        ...

    @abstractmethod
    async def job_history(self, job_id: str) -> list[JobState]:
        """All states ever saved for a job, oldest first."""
        ...

    @abstractmethod
    async def get_deploy_hashes(self) -> dict[DeployComponent, str]:
        """Commit hashes currently deployed, per component."""
        ...

    @abstractmethod
    async def update_deploy_hash(self, component: DeployComponent, sha: str) -> None:
        """Record the commit hash deployed for a component."""
        ...

    async def close(self) -> None:
        """Release resources held by the database."""


class InMemoryJobDatabase(JobDatabase):
    """In-memory job database.

    Suitable for testing and single-process deployments.
    Thread-safe via asyncio.Lock.
    """

    def __init__(self, deploy_hashes: dict[DeployComponent, str] | None = None):
        self._jobs: dict[str, JobState] = {}
        self._history: dict[str, list[JobState]] = {}
        self._deploy_hashes: dict[DeployComponent, str] = dict(deploy_hashes or {})
        self._lock = asyncio.Lock()

    async def save_job(self, job: JobState) -> None:
        async with self._lock:
            self._jobs[job.id] = job
            self._history.setdefault(job.id, []).append(job)

    async def get_job(self, job_id: str) -> JobState | None:
        async with self._lock:
            return self._jobs.get(job_id)

    async def list_jobs(self, filter: JobFilter | None = None) -> list[JobState]:
        filter = filter or JobFilter()
        async with self._lock:
            jobs = [j for j in self._jobs.values() if filter.matches(j)]
        jobs.sort(key=lambda j: j.ts, reverse=filter.order_desc)
        return jobs[filter.offset:filter.offset + filter.limit]

    async def job_history(self, job_id: str) -> list[JobState]:
        async with self._lock:
            return list(self._history.get(job_id, []))

    async def get_deploy_hashes(self) -> dict[DeployComponent, str]:
        async with self._lock:
            return dict(self._deploy_hashes)

    async def update_deploy_hash(self, component: DeployComponent, sha: str) -> None:
        async with self._lock:
            self._deploy_hashes[component] = sha


__all__ = [
    "JobDatabase",
    "InMemoryJobDatabase",
    "JobFilter",
]
