"""Tests for the studio-jobs error hierarchy."""

import pytest

from studio_jobs.core.errors import (
    ConfigError,
    DatabaseError,
    ErrorCategory,
    JobPayloadError,
    ProjectNotFoundError,
    StudioJobsError,
    UnknownJobTypeError,
    ValidationError,
    WorkflowLockUnavailableError,
    categorize_error,
    is_retryable,
)


class TestMessages:
    def test_lock_unavailable_for_project_scope(self):
        err = WorkflowLockUnavailableError("project:prj_1", "storage_mutation")

        assert str(err) == "Workflow lock busy for project 'prj_1' (workflow='storage_mutation')."
        assert err.category is ErrorCategory.CONFLICT

    def test_lock_unavailable_for_root_scope(self):
        err = WorkflowLockUnavailableError("root:dropbox:main", "storage_mutation")

        assert str(err) == "Workflow lock busy for storage root 'dropbox:main' (workflow='storage_mutation')."

    def test_lock_unavailable_for_other_scope(self):
        err = WorkflowLockUnavailableError("tenant:acme", "storage_mutation")

        assert "scope 'tenant:acme'" in str(err)

    def test_unknown_job_type(self):
        assert str(UnknownJobTypeError("project.rename")) == "Unknown job_type_key: project.rename"

    def test_project_not_found_is_validation(self):
        err = ProjectNotFoundError("prj_9")

        assert isinstance(err, ValidationError)
        assert err.field == "project_id"
        assert err.to_dict()["field"] == "project_id"


class TestRetryable:
    @pytest.mark.parametrize(
        "error",
        [
            ValidationError("bad"),
            JobPayloadError("projectId is required"),
            ProjectNotFoundError("prj_1"),
            WorkflowLockUnavailableError("project:prj_1", "storage_mutation"),
            ConfigError("missing"),
        ],
    )
    def test_non_retryable(self, error):
        assert not is_retryable(error)

    @pytest.mark.parametrize(
        "error",
        [UnknownJobTypeError("x"), DatabaseError("down"), RuntimeError("boom"), TimeoutError()],
    )
    def test_retryable(self, error):
        assert is_retryable(error)

    def test_instance_override(self):
        assert is_retryable(ValidationError("flaky", retryable=True))


class TestContext:
    def test_with_context(self):
        err = StudioJobsError("failed").with_context(job_id="job_1", scope="project:prj_1")

        data = err.to_dict()
        assert data["context"]["job_id"] == "job_1"
        assert data["context"]["metadata"]["scope"] == "project:prj_1"

    def test_categorize_plain_errors(self):
        assert categorize_error(ConnectionError()) is ErrorCategory.NETWORK
        assert categorize_error(ValueError()) is ErrorCategory.VALIDATION
        assert categorize_error(KeyError()) is ErrorCategory.UNKNOWN
