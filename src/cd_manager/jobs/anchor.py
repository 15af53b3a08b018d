"""
Anchor job: runs one pass of the anchor worker.
"""

from __future__ import annotations

import dataclasses

from ..errors import ParameterShapeError
from .base import register_job
from .task import TaskJob
from .types import AnchorParams, JobState, JobType

# An anchor pass can take a while when the request backlog is large
ANCHOR_FAILURE_TIME = 3 * 60 * 60.0

CONTAINER_NAME = "cas_anchor"


def cluster_name(env: str) -> str:
    return f"ceramic-{env}-cas"


@register_job(JobType.ANCHOR)
class AnchorJob(TaskJob):
    """Launches an anchor worker task and waits for it to exit."""

    completion_timeout = ANCHOR_FAILURE_TIME

    async def launch(self, state: JobState, now: float) -> AnchorParams:
        cluster = cluster_name(self.ctx.env)
        task_id = await self.ctx.deployment.launch_task(
            cluster,
            f"{cluster}-anchor",
            CONTAINER_NAME,
            f"/{cluster}/network_configuration",
            None,
        )
        return dataclasses.replace(state.params, task_id=task_id, start=now)

    async def check(self, state: JobState, expected_running: bool) -> bool:
        task_id = state.params.task_id
        if not task_id:
            raise ParameterShapeError(
                "anchor job has no task id",
                context=self._error_context(state, "check"),
            )
        return await self.ctx.deployment.check_task(cluster_name(self.ctx.env), expected_running, task_id)


__all__ = ["AnchorJob"]
