"""
Tests for JobState, job params, and stage classification.
"""

import pytest

from cd_manager.errors import (
    ErrorCode,
    ExternalCallError,
    ParameterShapeError,
    StartupTimeoutError,
)
from cd_manager.jobs.types import (
    AnchorParams,
    DeployComponent,
    DeployParams,
    E2ETestParams,
    JobStage,
    JobState,
    JobType,
    SmokeTestParams,
    TERMINAL_STAGES,
    format_job,
)


class TestJobStage:
    """Test stage classification."""

    def test_terminal_stages(self):
        """Only failed, canceled and completed are terminal."""
        assert TERMINAL_STAGES == {JobStage.FAILED, JobStage.CANCELED, JobStage.COMPLETED}
        for stage in JobStage:
            assert stage.is_terminal == (stage in TERMINAL_STAGES)
            assert stage.is_active != stage.is_terminal

    def test_values(self):
        assert JobStage("waiting") is JobStage.WAITING
        assert JobType("test_smoke") is JobType.TEST_SMOKE


class TestJobState:
    """Test JobState construction and transitions."""

    def test_defaults(self):
        state = JobState(type=JobType.TEST_SMOKE, params=SmokeTestParams())

        assert state.stage == JobStage.QUEUED
        assert state.id
        assert state.error is None
        assert state.params.task_id is None

    def test_unique_ids(self):
        a = JobState(type=JobType.ANCHOR, params=AnchorParams())
        b = JobState(type=JobType.ANCHOR, params=AnchorParams())
        assert a.id != b.id

    def test_params_must_match_type(self):
        """A smoke job cannot carry anchor params, even though they share fields."""
        with pytest.raises(ParameterShapeError):
            JobState(type=JobType.TEST_SMOKE, params=AnchorParams())

        with pytest.raises(ParameterShapeError):
            JobState(type=JobType.TEST_E2E, params=SmokeTestParams())

    def test_is_frozen(self):
        state = JobState(type=JobType.TEST_SMOKE, params=SmokeTestParams())
        with pytest.raises(AttributeError):
            state.stage = JobStage.FAILED  # type: ignore[misc]

    def test_transition_copies(self):
        """Transitions leave the original snapshot untouched."""
        state = JobState(type=JobType.TEST_SMOKE, params=SmokeTestParams(), ts=100.0)
        moved = state.transition_to(JobStage.DEQUEUED, 150.0)

        assert moved is not state
        assert moved.id == state.id
        assert moved.stage == JobStage.DEQUEUED
        assert moved.ts == 150.0
        assert state.stage == JobStage.QUEUED
        assert state.ts == 100.0

    def test_transition_records_error(self):
        state = JobState(type=JobType.TEST_SMOKE, params=SmokeTestParams())
        failed = state.transition_to(JobStage.FAILED, 1.0, StartupTimeoutError("too slow"))

        assert failed.error_code == ErrorCode.STARTUP_TIMEOUT.value
        assert "too slow" in failed.error

    def test_transition_wraps_foreign_error(self):
        state = JobState(type=JobType.TEST_SMOKE, params=SmokeTestParams())
        failed = state.transition_to(JobStage.FAILED, 1.0, RuntimeError("boom"))

        assert failed.error_code == ExternalCallError.code.value
        assert "boom" in failed.error

    def test_with_params(self):
        state = JobState(type=JobType.TEST_SMOKE, params=SmokeTestParams(), ts=5.0)
        updated = state.with_params(SmokeTestParams(task_id="t1", start=6.0))

        assert updated.params.task_id == "t1"
        assert updated.ts == 5.0
        assert updated.stage == state.stage

    def test_manual_flag(self):
        state = JobState(
            type=JobType.DEPLOY,
            params=DeployParams(component=DeployComponent.CAS, sha="abc", manual=True),
        )
        assert state.manual is True


class TestSerialization:
    """Test dictionary conversion."""

    def test_e2e_task_ids_restored_as_tuple(self):
        """Stored rows carry task ids as a JSON list."""
        state = JobState(
            type=JobType.TEST_E2E,
            params=E2ETestParams(task_ids=("a", "b", "c"), start=4.0),
            ts=42.0,
        ).transition_to(JobStage.FAILED, 43.0, RuntimeError("x"))

        data = state.to_dict()
        assert data["params"]["task_ids"] == ["a", "b", "c"]
        assert JobState.from_dict(data) == state

    def test_deploy_params_from_dict(self):
        params = DeployParams.from_dict({"component": "cas", "sha": "f" * 40, "manual": True})
        assert params == DeployParams(component=DeployComponent.CAS, sha="f" * 40, manual=True)

    def test_invalid_deploy_params(self):
        with pytest.raises(ParameterShapeError):
            DeployParams.from_dict({"component": "nope", "sha": "abc"})

        with pytest.raises(ParameterShapeError):
            DeployParams.from_dict({"component": "cas"})


class TestFormatJob:
    def test_includes_identity_and_params(self):
        state = JobState(type=JobType.TEST_SMOKE, params=SmokeTestParams(task_id="task-9"), id="j1", ts=1.5)
        text = format_job(state)

        assert "test_smoke/j1" in text
        assert "stage=queued" in text
        assert "task_id=task-9" in text
