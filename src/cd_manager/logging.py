"""
Structured logging for cd-manager.

Every record carries the job it belongs to. ``StructuredLogger.job_context``
binds a job id, type and stage for the duration of an ``advance`` call, and
each record written inside it is tagged with those fields, in JSON (one
object per line) or as ``key=value`` text.
"""

from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from .errors import JobError


@dataclass(frozen=True)
class LogContext:
    """Job correlation fields bound by ``job_context``."""

    trace_id: str | None = None
    job_id: str | None = None
    job_type: str | None = None
    stage: str | None = None

    def bind(self, **fields: str | None) -> LogContext:
        return replace(self, **{k: v for k, v in fields.items() if v is not None})

    def fields(self) -> dict[str, str]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class TransitionLog:
    """Log record for a job stage transition."""

    job_id: str
    job_type: str
    from_stage: str
    to_stage: str
    ts: float

    # Outcome of the write-through and fan-out
    persisted: bool = True
    notified: bool = True

    error: str | None = None
    error_code: str | None = None
    duration_ms: float | None = None

    @property
    def clean(self) -> bool:
        return self.persisted and self.notified and self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


# Per asyncio task / thread, so concurrent jobs never see each other's fields
_current_context: ContextVar[LogContext] = ContextVar("cd_manager_log_context", default=LogContext())


class StructuredLogger:
    """
    Logger that tags records with the current job.

    Example:
        ```python
        logger = get_logger()

        with logger.job_context(job_id=state.id, job_type=state.type.value):
            logger.info("launching smoke tests", cluster=CLUSTER_NAME)
        ```
    """

    def __init__(
        self,
        name: str = "cd_manager",
        level: str = "INFO",
        json_output: bool = True,
        stream: Any = None,
    ):
        self.name = name
        self._logger = logging.getLogger(name)
        self._logger.setLevel(level.upper())

        if not self._logger.handlers:
            handler = logging.StreamHandler(stream or sys.stdout)
            handler.setFormatter(JSONFormatter() if json_output else KeyValueFormatter())
            self._logger.addHandler(handler)

    @property
    def context(self) -> LogContext:
        return _current_context.get()

    @contextmanager
    def job_context(self, trace_id: str | None = None, **fields: str | None) -> Iterator[str]:
        """Bind job fields (job_id, job_type, stage) until the block exits. Yields the trace id."""
        trace_id = trace_id or uuid.uuid4().hex[:16]
        token = _current_context.set(self.context.bind(trace_id=trace_id, **fields))
        try:
            yield trace_id
        finally:
            _current_context.reset(token)

    def _log(self, level: int, message: str, fields: dict[str, Any]) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, message, extra={"fields": {**self.context.fields(), **fields}})

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, message, fields)

    def log_transition(self, transition: TransitionLog) -> None:
        """Log a stage change. Unpersisted, unannounced or failed transitions log at WARNING."""
        self._log(
            logging.INFO if transition.clean else logging.WARNING,
            f"Job {transition.job_id} {transition.from_stage} -> {transition.to_stage}",
            {"event_type": "transition", **transition.to_dict()},
        )

    def log_error(self, error: BaseException, message: str | None = None, **fields: Any) -> None:
        fields = {"event_type": "error", "error_type": type(error).__name__, **fields}
        if isinstance(error, JobError):
            fields["error_code"] = error.code.value
            fields["error_context"] = error.context.to_dict()
        self._log(logging.ERROR, message or f"Error: {error}", fields)


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **getattr(record, "fields", {}),
        }
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


class KeyValueFormatter(logging.Formatter):
    """``time LEVEL message key=value ...`` for terminals."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-8s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = getattr(record, "fields", {})
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        return line


@dataclass
class Timer:
    start: float = field(default_factory=time.perf_counter)
    elapsed_ms: float = 0.0


@contextmanager
def timed() -> Iterator[Timer]:
    """Measure the block; ``elapsed_ms`` is set when it exits."""
    timer = Timer()
    try:
        yield timer
    finally:
        timer.elapsed_ms = (time.perf_counter() - timer.start) * 1000


_default_logger: StructuredLogger | None = None


def get_logger(name: str = "cd_manager") -> StructuredLogger:
    """Get or create the shared structured logger."""
    global _default_logger
    if _default_logger is None or _default_logger.name != name:
        _default_logger = StructuredLogger(name)
    return _default_logger


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    name: str = "cd_manager",
    stream: Any = None,
) -> StructuredLogger:
    """Configure the shared logger, replacing any handlers it already has."""
    global _default_logger
    logging.getLogger(name).handlers.clear()
    _default_logger = StructuredLogger(name, level=level, json_output=json_output, stream=stream)
    return _default_logger


__all__ = [
    "LogContext",
    "TransitionLog",
    "StructuredLogger",
    "JSONFormatter",
    "KeyValueFormatter",
    "Timer",
    "timed",
    "get_logger",
    "configure_logging",
]
