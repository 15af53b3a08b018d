"""
End-to-end test job: runs the e2e suite once per network configuration.
"""

from __future__ import annotations

import dataclasses

from ..errors import ParameterShapeError
from .base import register_job
from .task import TaskJob
from .types import E2ETestParams, JobState, JobType

# Allow up to 1 hour for all e2e test configurations to run
E2E_TEST_FAILURE_TIME = 60 * 60.0

CLUSTER_NAME = "ceramic-qa-tests"
FAMILY_PREFIX = "ceramic-qa-tests-e2e_tests--"
CONTAINER_NAME = "ceramic-qa-tests-e2e_tests"
NETWORK_CONFIGURATION_PARAMETER = "/ceramic-qa-tests-e2e_tests/network_configuration"

TEST_CONFIGS = ("private-public", "local_client-public", "local_node-private")


@register_job(JobType.TEST_E2E)
class E2ETestJob(TaskJob):
    """Launches one test task per configuration and waits for all of them."""

    completion_timeout = E2E_TEST_FAILURE_TIME

    async def launch(self, state: JobState, now: float) -> E2ETestParams:
        # Launches are sequential; a failure part way fails the whole job
        task_ids = []
        for config in TEST_CONFIGS:
            task_ids.append(await self.ctx.deployment.launch_task(
                CLUSTER_NAME,
                FAMILY_PREFIX + self.ctx.env,
                CONTAINER_NAME,
                NETWORK_CONFIGURATION_PARAMETER,
                {"NODE_ENV": config},
            ))
        return dataclasses.replace(state.params, task_ids=tuple(task_ids), start=now)

    async def check(self, state: JobState, expected_running: bool) -> bool:
        task_ids = state.params.task_ids
        if len(task_ids) != len(TEST_CONFIGS):
            raise ParameterShapeError(
                f"e2e test job expects {len(TEST_CONFIGS)} task ids, has {len(task_ids)}",
                context=self._error_context(state, "check"),
            )
        return await self.ctx.deployment.check_task(CLUSTER_NAME, expected_running, *task_ids)


__all__ = ["E2ETestJob"]
