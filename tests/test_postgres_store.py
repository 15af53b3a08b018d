"""
Tests for the PostgreSQL job database that need no server.
"""

import json
from datetime import datetime, timezone

import pytest

from cd_manager.jobs.types import E2ETestParams, JobStage, JobState, JobType
from cd_manager.storage.postgres import PostgresJobDatabase


class TestPostgresJobDatabase:
    """Test table naming and row conversion."""

    def test_table_names(self):
        db = PostgresJobDatabase(pool=None, table_prefix="cd_qa")

        assert db._jobs == "cd_qa_jobs"
        assert db._history == "cd_qa_job_history"
        assert db._hashes == "cd_qa_deploy_hashes"

    @pytest.mark.parametrize("prefix", ["cd-qa", "cd; DROP TABLE x", "cd qa"])
    def test_rejects_unsafe_prefix(self, prefix):
        with pytest.raises(ValueError):
            PostgresJobDatabase(pool=None, table_prefix=prefix)

    def test_row_conversion(self):
        db = PostgresJobDatabase(pool=None)
        state = JobState(
            type=JobType.TEST_E2E,
            params=E2ETestParams(task_ids=("a", "b", "c"), start=1_700_000_000.0),
            stage=JobStage.WAITING,
            ts=1_700_000_100.0,
        )

        job_id, job_type, stage, ts, params, error, error_code = db._job_to_row(state)
        assert ts == datetime.fromtimestamp(1_700_000_100.0, tz=timezone.utc)

        row = {
            "id": job_id,
            "type": job_type,
            "stage": stage,
            "ts": ts,
            "params": json.loads(params),
            "error": error,
            "error_code": error_code,
        }
        assert db._row_to_job(row) == state
