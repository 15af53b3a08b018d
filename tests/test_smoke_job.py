"""
Tests for the smoke test job variant.
"""

import pytest

from cd_manager.errors import ErrorCode
from cd_manager.jobs.smoke import (
    CLUSTER_NAME,
    CONTAINER_NAME,
    FAMILY_PREFIX,
    NETWORK_CONFIGURATION_PARAMETER,
    SMOKE_TEST_FAILURE_TIME,
    SmokeTestJob,
)
from cd_manager.jobs.timeouts import DEFAULT_WAIT_TIME
from cd_manager.jobs.types import JobStage, JobState, JobType, SmokeTestParams

from conftest import FIXED_NOW

T0 = 1_000.0


def _state(stage=JobStage.QUEUED, ts=T0, task_id=None) -> JobState:
    return JobState(
        type=JobType.TEST_SMOKE,
        params=SmokeTestParams(task_id=task_id, start=T0 if task_id else None),
        stage=stage,
        ts=ts,
        id="smoke-1",
    )


@pytest.fixture
def job(ctx) -> SmokeTestJob:
    return SmokeTestJob(ctx)


class TestSmokeStageTable:
    """Test each row of the smoke test stage table."""

    @pytest.mark.asyncio
    async def test_queued_to_dequeued_keeps_timestamp(self, job):
        result = await job.advance(_state(), now=T0 + 50)

        assert result.stage == JobStage.DEQUEUED
        assert result.ts == T0

    @pytest.mark.asyncio
    async def test_dequeued_launches_task(self, job, deployment):
        deployment.next_task_id = "task-123"
        now = T0 + 10

        result = await job.advance(_state(JobStage.DEQUEUED), now=now)

        assert result.stage == JobStage.STARTED
        assert result.ts == now
        assert result.params.task_id == "task-123"
        assert result.params.start == now
        assert deployment.launches == [{
            "cluster": CLUSTER_NAME,
            "family": FAMILY_PREFIX + "qa",
            "container": CONTAINER_NAME,
            "network_config_parameter": NETWORK_CONFIGURATION_PARAMETER,
            "overrides": None,
            "task_id": "task-123",
        }]

    @pytest.mark.asyncio
    async def test_started_not_running_within_timeout_is_unchanged(self, job, deployment, notifier):
        state = _state(JobStage.STARTED, task_id="task-123")
        deployment.status["task-123"] = "PENDING"

        result = await job.advance(state, now=T0 + DEFAULT_WAIT_TIME)

        assert result is state
        assert notifier.jobs == []
        assert deployment.checks == [(CLUSTER_NAME, True, ("task-123",))]

    @pytest.mark.asyncio
    async def test_started_not_running_past_timeout_fails(self, job, deployment):
        deployment.status["task-123"] = "PENDING"

        result = await job.advance(_state(JobStage.STARTED, task_id="task-123"), now=T0 + DEFAULT_WAIT_TIME + 1)

        assert result.stage == JobStage.FAILED
        assert result.error_code == ErrorCode.STARTUP_TIMEOUT.value

    @pytest.mark.asyncio
    async def test_started_running_moves_to_waiting(self, job, deployment):
        deployment.status["task-123"] = "RUNNING"

        result = await job.advance(_state(JobStage.STARTED, task_id="task-123"), now=T0 + 5)

        assert result.stage == JobStage.WAITING
        assert result.ts == T0 + 5

    @pytest.mark.asyncio
    async def test_waiting_stopped_completes(self, job, deployment):
        deployment.status["task-123"] = "STOPPED"

        result = await job.advance(_state(JobStage.WAITING, task_id="task-123"), now=T0 + 60)

        assert result.stage == JobStage.COMPLETED
        assert result.error is None
        assert deployment.checks == [(CLUSTER_NAME, False, ("task-123",))]

    @pytest.mark.asyncio
    async def test_waiting_running_within_timeout_is_unchanged(self, job, deployment):
        state = _state(JobStage.WAITING, task_id="task-123")
        deployment.status["task-123"] = "RUNNING"

        assert await job.advance(state, now=T0 + SMOKE_TEST_FAILURE_TIME) is state

    @pytest.mark.asyncio
    async def test_waiting_running_past_timeout_fails(self, job, deployment):
        deployment.status["task-123"] = "RUNNING"

        result = await job.advance(
            _state(JobStage.WAITING, task_id="task-123"),
            now=T0 + SMOKE_TEST_FAILURE_TIME + 1,
        )

        assert result.stage == JobStage.FAILED
        assert result.error_code == ErrorCode.COMPLETION_TIMEOUT.value


class TestSmokeFailures:
    """Test failure paths."""

    @pytest.mark.asyncio
    async def test_launch_failure(self, job, deployment, db):
        deployment.launch_error = RuntimeError("no capacity")

        result = await job.advance(_state(JobStage.DEQUEUED), now=T0 + 1)

        assert result.stage == JobStage.FAILED
        assert result.error_code == ErrorCode.EXTERNAL_CALL.value
        assert "no capacity" in result.error
        assert await db.get_job(result.id) == result

    @pytest.mark.asyncio
    async def test_check_failure(self, job, deployment):
        deployment.check_error = RuntimeError("describe failed")

        result = await job.advance(_state(JobStage.WAITING, task_id="task-123"), now=T0 + 1)

        assert result.stage == JobStage.FAILED
        assert "describe failed" in result.error

    @pytest.mark.asyncio
    async def test_missing_task_id(self, job, deployment):
        result = await job.advance(_state(JobStage.STARTED), now=T0 + 1)

        assert result.stage == JobStage.FAILED
        assert result.error_code == ErrorCode.PARAMETER_SHAPE.value
        assert deployment.checks == []

    @pytest.mark.parametrize("stage", [JobStage.DELAYED, JobStage.SKIPPED])
    @pytest.mark.asyncio
    async def test_unexpected_stage(self, job, stage):
        result = await job.advance(_state(stage), now=T0 + 1)

        assert result.stage == JobStage.FAILED
        assert result.error_code == ErrorCode.UNEXPECTED_STATE.value

    @pytest.mark.parametrize("stage", [JobStage.COMPLETED, JobStage.FAILED, JobStage.CANCELED])
    @pytest.mark.asyncio
    async def test_terminal_stage_is_left_alone(self, job, stage, notifier, deployment):
        state = _state(stage, task_id="task-123")

        assert await job.advance(state, now=T0 + 1) is state
        assert notifier.jobs == []
        assert deployment.checks == []


class TestSmokeClock:
    @pytest.mark.asyncio
    async def test_uses_context_clock(self, job, deployment):
        result = await job.advance(_state(JobStage.DEQUEUED))

        assert result.ts == FIXED_NOW
        assert result.params.start == FIXED_NOW

    @pytest.mark.asyncio
    async def test_full_run(self, job, deployment, notifier):
        """queued -> dequeued -> started -> waiting -> completed."""
        state = await job.advance(_state(), now=T0)
        state = await job.advance(state, now=T0 + 1)
        deployment.set_all("RUNNING")
        state = await job.advance(state, now=T0 + 2)
        deployment.set_all("STOPPED")
        state = await job.advance(state, now=T0 + 3)

        assert state.stage == JobStage.COMPLETED
        assert [js.stage for js in notifier.jobs] == [
            JobStage.DEQUEUED,
            JobStage.STARTED,
            JobStage.WAITING,
            JobStage.COMPLETED,
        ]
