"""
Shared test fixtures and fakes for cd-manager tests.

This module provides:
- A scripted fake task backend
- A recording notification dispatcher
- A database whose writes can be made to fail
- A fixed clock
"""

from __future__ import annotations

import itertools
from typing import Any

import pytest

from cd_manager.deployment.base import Deployment
from cd_manager.jobs.base import JobContext
from cd_manager.jobs.transition import StageTransitioner
from cd_manager.jobs.types import JobState
from cd_manager.notifs.base import NotificationDispatcher
from cd_manager.registry import ActiveJobRegistry
from cd_manager.store import InMemoryJobDatabase

FIXED_NOW = 1_700_000_000.0


# =============================================================================
# Fakes
# =============================================================================


class FakeDeployment(Deployment):
    """Task backend whose task statuses are set by the test."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.launches: list[dict[str, Any]] = []
        self.checks: list[tuple[str, bool, tuple[str, ...]]] = []
        self.status: dict[str, str] = {}
        self.launch_error: Exception | None = None
        self.check_error: Exception | None = None
        self.next_task_id: str | None = None

    async def launch_task(self, cluster, family, container, network_config_parameter, overrides=None):
        if self.launch_error is not None:
            raise self.launch_error
        task_id = self.next_task_id or f"task-{next(self._ids)}"
        self.next_task_id = None
        self.launches.append({
            "cluster": cluster,
            "family": family,
            "container": container,
            "network_config_parameter": network_config_parameter,
            "overrides": overrides,
            "task_id": task_id,
        })
        self.status[task_id] = "PENDING"
        return task_id

    async def check_task(self, cluster, expected_running, *task_ids):
        self.checks.append((cluster, expected_running, task_ids))
        if self.check_error is not None:
            raise self.check_error
        wanted = "RUNNING" if expected_running else "STOPPED"
        return all(self.status.get(t) == wanted for t in task_ids)

    def set_all(self, status: str) -> None:
        for task_id in self.status:
            self.status[task_id] = status


class RecordingNotifier(NotificationDispatcher):
    """Records every notified state and what the registry showed at that moment."""

    def __init__(self, registry: ActiveJobRegistry | None = None, fail: bool = False):
        self.registry = registry
        self.fail = fail
        self.jobs: list[JobState] = []
        self.registry_views: list[JobState | None] = []

    def notify_job(self, *jobs: JobState) -> None:
        if self.fail:
            raise RuntimeError("notifier down")
        for job in jobs:
            self.jobs.append(job)
            if self.registry is not None:
                self.registry_views.append(self.registry.get(job.id))


class FlakyDatabase(InMemoryJobDatabase):
    """In-memory database whose saves fail while ``fail_saves`` is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_saves = False

    async def save_job(self, job: JobState) -> None:
        if self.fail_saves:
            raise ConnectionError("database unavailable")
        await super().save_job(job)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def db() -> FlakyDatabase:
    return FlakyDatabase()


@pytest.fixture
def registry() -> ActiveJobRegistry:
    return ActiveJobRegistry()


@pytest.fixture
def notifier(registry) -> RecordingNotifier:
    return RecordingNotifier(registry)


@pytest.fixture
def deployment() -> FakeDeployment:
    return FakeDeployment()


@pytest.fixture
def transitioner(db, registry, notifier) -> StageTransitioner:
    return StageTransitioner(db, registry, notifier)


@pytest.fixture
def ctx(db, deployment, transitioner) -> JobContext:
    return JobContext(
        db=db,
        deployment=deployment,
        transitioner=transitioner,
        env="qa",
        clock=lambda: FIXED_NOW,
    )
