"""
Job types for the deployment manager.

This module defines the JobStage and JobType enums, the per-type
parameter records, and the JobState dataclass that form the core of the
job lifecycle system.
"""

from __future__ import annotations

import dataclasses
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from ..errors import ExternalCallError, ParameterShapeError


class JobStage(str, Enum):
    """Job lifecycle stages.

    Stage transitions for task-based jobs:
    - QUEUED -> DEQUEUED (no preparation needed)
    - DEQUEUED -> STARTED (tasks launched)
    - STARTED -> WAITING (tasks running)
    - WAITING -> COMPLETED (tasks stopped)
    - * -> FAILED (backend error, timeout, unexpected stage)

    CANCELED is only ever written from outside the engine. DELAYED and
    SKIPPED belong to the shared vocabulary but no task job produces them.
    """
    QUEUED = "queued"
    DEQUEUED = "dequeued"
    STARTED = "started"
    WAITING = "waiting"
    DELAYED = "delayed"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELED = "canceled"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        """Check if this is a terminal stage."""
        return self in TERMINAL_STAGES

    @property
    def is_active(self) -> bool:
        """Check if the job is still in progress."""
        return not self.is_terminal


TERMINAL_STAGES: frozenset[JobStage] = frozenset({
    JobStage.FAILED,
    JobStage.CANCELED,
    JobStage.COMPLETED,
})


class JobType(str, Enum):
    """Closed set of job types known to the manager."""
    DEPLOY = "deploy"
    ANCHOR = "anchor"
    TEST_E2E = "test_e2e"
    TEST_SMOKE = "test_smoke"

    @property
    def display_name(self) -> str:
        return _JOB_NAMES[self]


_JOB_NAMES = {
    JobType.DEPLOY: "deployment",
    JobType.ANCHOR: "anchor worker",
    JobType.TEST_E2E: "e2e tests",
    JobType.TEST_SMOKE: "smoke tests",
}


class DeployComponent(str, Enum):
    """Components that can be deployed."""
    CERAMIC = "ceramic"
    CAS = "cas"
    IPFS = "ipfs"


# =============================================================================
# Parameters
# =============================================================================


@dataclass(frozen=True)
class DeployParams:
    """Parameters of a deployment job."""
    component: DeployComponent
    sha: str
    manual: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"component": self.component.value, "sha": self.sha, "manual": self.manual}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeployParams:
        try:
            return cls(
                component=DeployComponent(data["component"]),
                sha=str(data["sha"]),
                manual=bool(data.get("manual", False)),
            )
        except (KeyError, ValueError) as e:
            raise ParameterShapeError(f"Invalid deploy params: {data!r}", cause=e) from e


@dataclass(frozen=True)
class TaskParams:
    """Parameters shared by jobs that spawn a single backend task.

    ``task_id`` and ``start`` stay unset until the task is launched.
    """
    task_id: str | None = None
    start: float | None = None
    manual: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"task_id": self.task_id, "start": self.start, "manual": self.manual}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskParams:
        return cls(
            task_id=data.get("task_id"),
            start=data.get("start"),
            manual=bool(data.get("manual", False)),
        )


@dataclass(frozen=True)
class AnchorParams(TaskParams):
    """Parameters of an anchor worker job."""


@dataclass(frozen=True)
class SmokeTestParams(TaskParams):
    """Parameters of a smoke test job."""


@dataclass(frozen=True)
class E2ETestParams:
    """Parameters of an end-to-end test job (one task per test configuration)."""
    task_ids: tuple[str, ...] = ()
    start: float | None = None
    manual: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"task_ids": list(self.task_ids), "start": self.start, "manual": self.manual}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> E2ETestParams:
        return cls(
            task_ids=tuple(data.get("task_ids") or ()),
            start=data.get("start"),
            manual=bool(data.get("manual", False)),
        )


JobParams = Union[DeployParams, AnchorParams, E2ETestParams, SmokeTestParams]

PARAMS_BY_TYPE: dict[JobType, type] = {
    JobType.DEPLOY: DeployParams,
    JobType.ANCHOR: AnchorParams,
    JobType.TEST_E2E: E2ETestParams,
    JobType.TEST_SMOKE: SmokeTestParams,
}


# =============================================================================
# Job State
# =============================================================================


@dataclass(frozen=True)
class JobState:
    """Snapshot of one job at its most recent stage transition.

    Instances are never mutated: every transition produces a copy, so an
    older snapshot stays valid for logging and history.
    """
    type: JobType
    params: JobParams
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    stage: JobStage = JobStage.QUEUED
    ts: float = field(default_factory=time.time)  # time of the last transition
    error: str | None = None
    error_code: str | None = None

    def __post_init__(self) -> None:
        expected = PARAMS_BY_TYPE.get(self.type)
        if expected is None or type(self.params) is not expected:
            raise ParameterShapeError(
                f"{self.type.value} job requires {getattr(expected, '__name__', '?')}, "
                f"got {type(self.params).__name__}"
            )

    def transition_to(
        self,
        stage: JobStage,
        ts: float,
        error: BaseException | None = None,
    ) -> JobState:
        """Create a new JobState at ``stage`` with timestamp ``ts``."""
        updates: dict[str, Any] = {"stage": stage, "ts": ts}
        if error is not None:
            err = ExternalCallError.wrap(error)
            updates["error"] = str(err)
            updates["error_code"] = err.code.value
        return dataclasses.replace(self, **updates)

    def with_params(self, params: JobParams) -> JobState:
        """Create a new JobState with replaced params (same stage and ts)."""
        return dataclasses.replace(self, params=params)

    @property
    def manual(self) -> bool:
        return self.params.manual

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "type": self.type.value,
            "stage": self.stage.value,
            "ts": self.ts,
            "params": self.params.to_dict(),
            "error": self.error,
            "error_code": self.error_code,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobState:
        """Deserialize from dictionary."""
        job_type = JobType(data["type"])
        return cls(
            id=data["id"],
            type=job_type,
            stage=JobStage(data.get("stage", "queued")),
            ts=float(data["ts"]),
            params=PARAMS_BY_TYPE[job_type].from_dict(data.get("params") or {}),
            error=data.get("error"),
            error_code=data.get("error_code"),
        )


def format_job(state: JobState) -> str:
    """One-line description of a job for logs and error messages."""
    parts = [f"{state.type.value}/{state.id}", f"stage={state.stage.value}", f"ts={state.ts:.3f}"]
    parts.extend(f"{k}={v}" for k, v in state.params.to_dict().items() if v not in (None, (), [], False))
    if state.error:
        parts.append(f"error={state.error!r}")
    return " ".join(parts)


__all__ = [
    "JobStage",
    "JobType",
    "DeployComponent",
    "TERMINAL_STAGES",
    "DeployParams",
    "TaskParams",
    "AnchorParams",
    "SmokeTestParams",
    "E2ETestParams",
    "JobParams",
    "PARAMS_BY_TYPE",
    "JobState",
    "format_job",
]
