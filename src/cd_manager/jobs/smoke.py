"""
Smoke test job: runs the smoke test suite as a single backend task.
"""

from __future__ import annotations

import dataclasses

from ..errors import ParameterShapeError
from .base import register_job
from .task import TaskJob
from .types import JobState, JobType, SmokeTestParams

# Allow up to 15 minutes for smoke tests to run
SMOKE_TEST_FAILURE_TIME = 15 * 60.0

CLUSTER_NAME = "ceramic-qa-tests"
FAMILY_PREFIX = "ceramic-qa-tests-smoke--"
CONTAINER_NAME = "ceramic-qa-tests-smoke"
NETWORK_CONFIGURATION_PARAMETER = "/ceramic-qa-tests-smoke/network_configuration"


@register_job(JobType.TEST_SMOKE)
class SmokeTestJob(TaskJob):
    """Launches the smoke tests and waits for them to finish."""

    completion_timeout = SMOKE_TEST_FAILURE_TIME

    async def launch(self, state: JobState, now: float) -> SmokeTestParams:
        task_id = await self.ctx.deployment.launch_task(
            CLUSTER_NAME,
            FAMILY_PREFIX + self.ctx.env,
            CONTAINER_NAME,
            NETWORK_CONFIGURATION_PARAMETER,
            None,
        )
        return dataclasses.replace(state.params, task_id=task_id, start=now)

    async def check(self, state: JobState, expected_running: bool) -> bool:
        task_id = state.params.task_id
        if not task_id:
            raise ParameterShapeError(
                "smoke test job has no task id",
                context=self._error_context(state, "check"),
            )
        return await self.ctx.deployment.check_task(CLUSTER_NAME, expected_running, task_id)


__all__ = ["SmokeTestJob"]
