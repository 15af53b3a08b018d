"""
Task-control backend interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class Deployment(ABC):
    """Launches containerized tasks and reports their status.

    Both calls may be slow and may fail. Implementations raise
    ExternalCallError (or any exception, which jobs wrap) on failure and
    never retry internally; jobs retry by polling.
    """

    @abstractmethod
    async def launch_task(
        self,
        cluster: str,
        family: str,
        container: str,
        network_config_parameter: str,
        overrides: dict[str, str] | None = None,
    ) -> str:
        """Start one task and return its identifier.

        Args:
            cluster: Cluster to run the task in
            family: Task definition family (latest active revision is used)
            container: Name of the container the overrides apply to
            network_config_parameter: Name of the stored network configuration
            overrides: Environment variables to set on the container
        """
        ...

    @abstractmethod
    async def check_task(
        self,
        cluster: str,
        expected_running: bool,
        *task_ids: str,
    ) -> bool:
        """Check whether every task matches the expectation.

        Returns True when all tasks are running (``expected_running``) or
        all tasks have stopped (not ``expected_running``).
        """
        ...

    async def close(self) -> None:
        """Release backend clients."""


__all__ = ["Deployment"]
