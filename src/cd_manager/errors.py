"""
Error taxonomy for cd-manager.

This module provides a hierarchical exception system with:
- Error codes for programmatic handling
- Structured context for debugging
- Wrapping of arbitrary backend exceptions into job errors

Errors raised while a job is being advanced are not propagated to the
driver. They are recorded on the failed JobState (``error`` and
``error_code``) by the transition primitive.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standardized error codes for job failures."""

    # External call errors (1xxx)
    EXTERNAL_CALL = "ERR_1000"
    PERSISTENCE = "ERR_1001"
    NOTIFICATION = "ERR_1002"

    # Timeout errors (2xxx)
    TIMEOUT = "ERR_2000"
    STARTUP_TIMEOUT = "ERR_2001"
    COMPLETION_TIMEOUT = "ERR_2002"

    # State machine errors (3xxx)
    UNEXPECTED_STATE = "ERR_3000"
    PARAMETER_SHAPE = "ERR_3001"
    UNKNOWN_JOB_TYPE = "ERR_3002"

    # Configuration errors (6xxx)
    CONFIG_ERROR = "ERR_6000"

    # Internal errors (9xxx)
    INTERNAL_ERROR = "ERR_9000"


@dataclass
class ErrorContext:
    """Structured context for error debugging."""

    job_id: str | None = None
    job_type: str | None = None
    stage: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "job_type": self.job_type,
            "stage": self.stage,
            "operation": self.operation,
            **self.extra,
        }


class JobError(Exception):
    """
    Base exception for all job engine errors.

    Attributes:
        code: Standardized error code for programmatic handling
        message: Human-readable error message
        context: Structured debugging context
        cause: Original exception that caused this error
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.context = context or ErrorContext()
        self.cause = cause

    def __str__(self) -> str:
        parts = [f"[{self.code.value}] {self.message}"]
        if self.context.job_id:
            parts.append(f"(job_id={self.context.job_id})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code.value,
            "message": self.message,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


# =============================================================================
# External Call Errors
# =============================================================================


class ExternalCallError(JobError):
    """A task backend or persistence call returned failure."""

    code = ErrorCode.EXTERNAL_CALL

    @classmethod
    def wrap(
        cls,
        exc: BaseException,
        *,
        operation: str | None = None,
        context: ErrorContext | None = None,
    ) -> JobError:
        """Convert an arbitrary exception into a job error.

        Job errors pass through unchanged so that their code is preserved.
        """
        if isinstance(exc, JobError):
            return exc
        context = context or ErrorContext()
        if operation and not context.operation:
            context.operation = operation
        prefix = f"{operation}: " if operation else ""
        return cls(f"{prefix}{type(exc).__name__}: {exc}", context=context, cause=exc)


class PersistenceError(ExternalCallError):
    """Writing a job state through to the database failed."""

    code = ErrorCode.PERSISTENCE


# =============================================================================
# Timeout Errors
# =============================================================================


class JobTimeoutError(JobError):
    """A job waited on an external effect for longer than allowed."""

    code = ErrorCode.TIMEOUT

    def __init__(
        self,
        message: str,
        *,
        threshold: float | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.threshold = threshold


class StartupTimeoutError(JobTimeoutError):
    """Spawned tasks did not start running in time."""

    code = ErrorCode.STARTUP_TIMEOUT


class CompletionTimeoutError(JobTimeoutError):
    """Spawned tasks did not finish in time."""

    code = ErrorCode.COMPLETION_TIMEOUT


# =============================================================================
# State Machine Errors
# =============================================================================


class UnexpectedStateError(JobError):
    """A variant was advanced from a stage its table does not handle."""

    code = ErrorCode.UNEXPECTED_STATE


class ParameterShapeError(JobError):
    """A params value is absent or of the wrong shape for the job type."""

    code = ErrorCode.PARAMETER_SHAPE


class UnknownJobTypeError(JobError):
    """No job variant is registered for the requested job type."""

    code = ErrorCode.UNKNOWN_JOB_TYPE


class ConfigurationError(JobError):
    """Invalid or missing configuration."""

    code = ErrorCode.CONFIG_ERROR


__all__ = [
    "ErrorCode",
    "ErrorContext",
    "JobError",
    "ExternalCallError",
    "PersistenceError",
    "JobTimeoutError",
    "StartupTimeoutError",
    "CompletionTimeoutError",
    "UnexpectedStateError",
    "ParameterShapeError",
    "UnknownJobTypeError",
    "ConfigurationError",
]
