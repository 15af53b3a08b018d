"""
cd-manager: job state machine for deployment and test pipelines.

Jobs (deploys, anchors, e2e tests, smoke tests) move through a bounded
sequence of stages while the engine polls an external task backend until
each job reaches a terminal outcome.

Quick start:
    ```python
    from cd_manager import JobEngine, JobType, SmokeTestParams

    engine = JobEngine(db, deployment, notifier, env="qa")
    job = await engine.submit(JobType.TEST_SMOKE, SmokeTestParams())
    job = await engine.run_until_terminal(job)
    ```
"""

from .errors import (
    ErrorCode,
    ErrorContext,
    JobError,
    ExternalCallError,
    PersistenceError,
    JobTimeoutError,
    StartupTimeoutError,
    CompletionTimeoutError,
    UnexpectedStateError,
    ParameterShapeError,
    UnknownJobTypeError,
    ConfigurationError,
)
from .jobs import (
    JobStage,
    JobType,
    DeployComponent,
    DeployParams,
    AnchorParams,
    SmokeTestParams,
    E2ETestParams,
    JobState,
    format_job,
    is_timed_out,
    StageTransitioner,
    Job,
    JobContext,
    register_job,
    create_job,
    TaskJob,
    AnchorJob,
    E2ETestJob,
    SmokeTestJob,
)
from .registry import ActiveJobRegistry
from .store import JobDatabase, InMemoryJobDatabase, JobFilter
from .deployment import Deployment, EcsDeployment, EcsSettings
from .notifs import NotificationDispatcher, LoggingNotifier, DiscordNotifier
from .config import EnvType, Settings, load_env
from .engine import JobEngine, open_engine

__version__ = "0.1.0"

__all__ = [
    # Errors
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
    # Jobs
    "JobStage",
    "JobType",
    "DeployComponent",
    "DeployParams",
    "AnchorParams",
    "SmokeTestParams",
    "E2ETestParams",
    "JobState",
    "format_job",
    "is_timed_out",
    "StageTransitioner",
    "Job",
    "JobContext",
    "register_job",
    "create_job",
    "TaskJob",
    "AnchorJob",
    "E2ETestJob",
    "SmokeTestJob",
    # Registry & storage
    "ActiveJobRegistry",
    "JobDatabase",
    "InMemoryJobDatabase",
    "JobFilter",
    # Backends
    "Deployment",
    "EcsDeployment",
    "EcsSettings",
    "NotificationDispatcher",
    "LoggingNotifier",
    "DiscordNotifier",
    # Config & engine
    "EnvType",
    "Settings",
    "load_env",
    "JobEngine",
    "open_engine",
]
