"""
Job system for the deployment manager.

This module provides the job lifecycle state machine:
- JobState: Immutable per-step job snapshot
- StageTransitioner: Shared persist-and-announce transition primitive
- Job variants: One step function per job type, selected by type
- is_timed_out: Timeout policy for waiting stages
"""

from .types import (
    JobStage,
    JobType,
    DeployComponent,
    TERMINAL_STAGES,
    DeployParams,
    TaskParams,
    AnchorParams,
    SmokeTestParams,
    E2ETestParams,
    JobParams,
    PARAMS_BY_TYPE,
    JobState,
    format_job,
)
from .timeouts import (
    DEFAULT_WAIT_TIME,
    elapsed_since_transition,
    is_timed_out,
)
from .transition import StageTransitioner
from .base import (
    Job,
    JobContext,
    JOB_VARIANTS,
    register_job,
    create_job,
)
from .task import TaskJob

# Importing the variants registers them
from .anchor import AnchorJob
from .e2e import E2ETestJob
from .smoke import SmokeTestJob

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
    "DEFAULT_WAIT_TIME",
    "elapsed_since_transition",
    "is_timed_out",
    "StageTransitioner",
    "Job",
    "JobContext",
    "JOB_VARIANTS",
    "register_job",
    "create_job",
    "TaskJob",
    "AnchorJob",
    "E2ETestJob",
    "SmokeTestJob",
]
