"""
Amazon ECS task backend.

Tasks are started with ``run_task`` using the latest active revision of a
task definition family. The network configuration for each task family is
kept as a JSON document in an SSM parameter.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from aiobotocore.session import get_session
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import ErrorContext, ExternalCallError
from .base import Deployment

RUNNING = "RUNNING"
STOPPED = "STOPPED"


@dataclass(frozen=True)
class EcsSettings:
    region_name: str

    launch_type: str = "FARGATE"

    # Timeouts
    connect_timeout: int = 10
    read_timeout: int = 60

    max_pool_connections: int = 16


class EcsDeployment(Deployment):
    """
    aiobotocore-based task backend.

    Use as an async context manager:

        async with EcsDeployment(EcsSettings(region_name="us-east-2")) as d:
            task_id = await d.launch_task(...)
    """

    def __init__(self, settings: EcsSettings):
        self.settings = settings

        self._session = get_session()
        self._ecs_cm = None
        self._ssm_cm = None
        self._ecs = None
        self._ssm = None

        self._cfg = Config(
            region_name=settings.region_name,
            connect_timeout=settings.connect_timeout,
            read_timeout=settings.read_timeout,
            retries={"max_attempts": 0, "mode": "standard"},  # jobs retry by polling
            max_pool_connections=settings.max_pool_connections,
        )

    async def __aenter__(self) -> EcsDeployment:
        # Credentials are resolved by botocore's standard chain:
        # env vars, ~/.aws, instance role, ECS task role, etc.
        self._ecs_cm = self._session.create_client("ecs", config=self._cfg)
        self._ecs = await self._ecs_cm.__aenter__()
        self._ssm_cm = self._session.create_client("ssm", config=self._cfg)
        self._ssm = await self._ssm_cm.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._ssm_cm:
            await self._ssm_cm.__aexit__(exc_type, exc, tb)
        if self._ecs_cm:
            await self._ecs_cm.__aexit__(exc_type, exc, tb)
        self._ecs_cm = self._ssm_cm = None
        self._ecs = self._ssm = None

    async def close(self) -> None:
        await self.__aexit__(None, None, None)

    def _require_clients(self) -> None:
        if not self._ecs or not self._ssm:
            raise RuntimeError("EcsDeployment must be used inside 'async with EcsDeployment(...)'")

    async def _network_configuration(self, parameter: str) -> dict[str, Any]:
        resp = await self._ssm.get_parameter(Name=parameter)
        return json.loads(resp["Parameter"]["Value"])

    async def launch_task(
        self,
        cluster: str,
        family: str,
        container: str,
        network_config_parameter: str,
        overrides: dict[str, str] | None = None,
    ) -> str:
        self._require_clients()
        context = ErrorContext(operation="launch_task", extra={"cluster": cluster, "family": family})
        try:
            network_configuration = await self._network_configuration(network_config_parameter)
            kwargs: dict[str, Any] = {
                "cluster": cluster,
                "taskDefinition": family,
                "count": 1,
                "launchType": self.settings.launch_type,
                "networkConfiguration": network_configuration,
            }
            if overrides:
                kwargs["overrides"] = {
                    "containerOverrides": [{
                        "name": container,
                        "environment": [{"name": k, "value": v} for k, v in overrides.items()],
                    }],
                }
            resp = await self._ecs.run_task(**kwargs)
        except (ClientError, BotoCoreError, ValueError, KeyError) as e:
            raise ExternalCallError.wrap(e, operation="launch_task", context=context) from e

        tasks = resp.get("tasks") or []
        if not tasks:
            failures = resp.get("failures") or []
            reasons = ", ".join(f.get("reason", "unknown") for f in failures) or "no task started"
            raise ExternalCallError(f"launch_task: {reasons}", context=context)
        return tasks[0]["taskArn"]

    async def check_task(
        self,
        cluster: str,
        expected_running: bool,
        *task_ids: str,
    ) -> bool:
        self._require_clients()
        if not task_ids:
            return False
        try:
            resp = await self._ecs.describe_tasks(cluster=cluster, tasks=list(task_ids))
        except (ClientError, BotoCoreError) as e:
            raise ExternalCallError.wrap(
                e,
                operation="check_task",
                context=ErrorContext(operation="check_task", extra={"cluster": cluster}),
            ) from e

        statuses = [t.get("lastStatus") for t in resp.get("tasks") or []]
        missing = len(task_ids) - len(statuses)
        if expected_running:
            return missing == 0 and all(s == RUNNING for s in statuses)
        # Stopped tasks are eventually expunged and reported as missing
        return all(s == STOPPED for s in statuses)


__all__ = [
    "EcsDeployment",
    "EcsSettings",
]
