"""
Tests for the error taxonomy.
"""

from cd_manager.errors import (
    CompletionTimeoutError,
    ErrorCode,
    ErrorContext,
    ExternalCallError,
    JobError,
    JobTimeoutError,
    PersistenceError,
    StartupTimeoutError,
)


class TestJobError:
    """Test the base error type."""

    def test_str_includes_code_and_job(self):
        err = JobError("broken", context=ErrorContext(job_id="j1"))

        assert str(err) == "[ERR_9000] broken (job_id=j1)"

    def test_to_dict(self):
        cause = ValueError("bad")
        err = PersistenceError("write failed", context=ErrorContext(job_id="j1", operation="save_job"), cause=cause)

        data = err.to_dict()
        assert data["error_type"] == "PersistenceError"
        assert data["code"] == ErrorCode.PERSISTENCE.value
        assert data["context"]["operation"] == "save_job"
        assert data["cause"] == "bad"

    def test_hierarchy(self):
        assert issubclass(PersistenceError, ExternalCallError)
        assert issubclass(StartupTimeoutError, JobTimeoutError)
        assert issubclass(CompletionTimeoutError, JobTimeoutError)

    def test_timeout_threshold(self):
        err = CompletionTimeoutError("slow", threshold=900.0)

        assert err.threshold == 900.0
        assert err.code == ErrorCode.COMPLETION_TIMEOUT


class TestWrap:
    """Test conversion of foreign exceptions."""

    def test_wraps_foreign_exception(self):
        cause = TimeoutError("read timed out")
        err = ExternalCallError.wrap(cause, operation="check", context=ErrorContext(job_id="j1"))

        assert isinstance(err, ExternalCallError)
        assert err.cause is cause
        assert err.context.operation == "check"
        assert "check: TimeoutError: read timed out" in str(err)

    def test_passes_job_errors_through(self):
        original = StartupTimeoutError("slow")
        assert ExternalCallError.wrap(original, operation="check") is original
