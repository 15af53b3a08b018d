"""
Notification dispatcher interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..jobs.types import JobState, format_job
from ..logging import StructuredLogger, get_logger


class NotificationDispatcher(ABC):
    """Receives every JobState produced by the engine.

    ``notify_job`` is fire-and-forget: it must return promptly, and the
    engine neither waits for delivery nor reacts to its outcome. Anything
    read from shared state (such as the active job registry) should be read
    before returning so that the notification reflects the moment of the
    transition.
    """

    @abstractmethod
    def notify_job(self, *jobs: JobState) -> None:
        """Announce one or more job states."""
        ...

    async def aclose(self) -> None:
        """Wait for pending deliveries and release resources."""


class LoggingNotifier(NotificationDispatcher):
    """Writes notifications to the log. Used when no channels are configured."""

    def __init__(self, logger: StructuredLogger | None = None):
        self._logger = logger or get_logger()

    def notify_job(self, *jobs: JobState) -> None:
        for job in jobs:
            self._logger.info(f"Notification: {format_job(job)}", event_type="notification")


__all__ = [
    "NotificationDispatcher",
    "LoggingNotifier",
]
