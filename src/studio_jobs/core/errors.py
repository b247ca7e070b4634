"""
Structured error types for studio-jobs.

Every error raised by the job core extends :class:`StudioJobsError` and
carries a category, a ``retryable`` flag and structured context. The worker
uses the flag to decide how a failed job is finalized:

- **Retryable** errors (and plain Python exceptions) go through the job's
  attempt/backoff path until ``max_attempts`` is exhausted.
- **Non-retryable** errors (validation failures, workflow lock contention)
  finalize the job as ``failed`` immediately, since another attempt would
  fail the same way.

Business-rule blocks (ineligible project status, non-real data profile) are
never raised. They are recorded as runs with ``has_errors=True``.

Architecture:
    ::

        StudioJobsError (category, retryable, context, cause)
          ├── ValidationError          VALIDATION, never retryable
          │     ├── JobPayloadError
          │     └── ProjectNotFoundError
          ├── JobNotFoundError         VALIDATION, never retryable
          ├── UnknownJobTypeError      DISPATCH, retryable
          ├── WorkflowLockUnavailableError   CONFLICT, never retryable
          ├── ConfigError              CONFIG, never retryable
          └── DatabaseError            DATABASE, retryable

Tags:
    errors, error-hierarchy, retry-logic, studio-jobs

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure errors (usually transient)
    DATABASE = "DATABASE"
    NETWORK = "NETWORK"
    STORAGE = "STORAGE"

    # Caller errors
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"

    # Job core
    DISPATCH = "DISPATCH"  # No handler for a job type
    CONFLICT = "CONFLICT"  # Workflow lock held elsewhere

    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error."""

    job_id: str | None = None
    job_type_key: str | None = None
    project_id: str | None = None
    workflow: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key in ("job_id", "job_type_key", "project_id", "workflow"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result["metadata"] = dict(self.metadata)
        return result


class StudioJobsError(Exception):
    """
    Base exception for all studio-jobs errors.

    Subclasses set ``default_category`` and ``default_retryable`` to give
    sensible defaults for their domain; both can be overridden per instance.

    Examples:
        >>> error = StudioJobsError("Something went wrong")
        >>> error.retryable
        False
        >>> error.with_context(job_id="job_1").context.job_id
        'job_1'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StudioJobsError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(StudioJobsError):
    """
    Caller error: missing request fields, malformed payloads.

    Never retryable - the request must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(self, message: str, *, field: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        return result


class JobPayloadError(ValidationError):
    """A job payload could not be parsed into its typed form."""


class ProjectNotFoundError(ValidationError):
    """The project referenced by a request does not exist."""

    def __init__(self, project_id: str, **kwargs: Any):
        super().__init__(f"Project not found: {project_id}", field="project_id", **kwargs)
        self.project_id = project_id


class JobNotFoundError(StudioJobsError):
    """A finalize/update call referenced a job row that does not exist."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(self, job_id: str, **kwargs: Any):
        super().__init__(f"Job not found: {job_id}", **kwargs)
        self.job_id = job_id


# =============================================================================
# JOB CORE ERRORS
# =============================================================================


class UnknownJobTypeError(StudioJobsError):
    """
    No handler is registered for a claimed job's type.

    Marked retryable so the job follows the normal attempt/backoff path;
    it will fail identically on every attempt until ``max_attempts``.
    """

    default_category = ErrorCategory.DISPATCH
    default_retryable = True

    def __init__(self, job_type_key: str, **kwargs: Any):
        super().__init__(f"Unknown job_type_key: {job_type_key}", **kwargs)
        self.job_type_key = job_type_key


class WorkflowLockUnavailableError(StudioJobsError):
    """Another holder owns the workflow lease for this scope."""

    default_category = ErrorCategory.CONFLICT
    default_retryable = False

    def __init__(self, scope_id: str, kind: str, **kwargs: Any):
        super().__init__(f"Workflow lock busy for {_describe_scope(scope_id)} (workflow='{kind}').", **kwargs)
        self.scope_id = scope_id
        self.kind = kind


def _describe_scope(scope_id: str) -> str:
    prefix, _, rest = scope_id.partition(":")
    if prefix == "project" and rest:
        return f"project '{rest}'"
    if prefix == "root" and rest:
        return f"storage root '{rest}'"
    return f"scope '{scope_id}'"


# =============================================================================
# INFRASTRUCTURE ERRORS
# =============================================================================


class ConfigError(StudioJobsError):
    """Missing or invalid configuration. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class DatabaseError(StudioJobsError):
    """Database failure surfaced by a store."""

    default_category = ErrorCategory.DATABASE
    default_retryable = True


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Return ``False`` only for errors that explicitly opt out of retries.

    Plain exceptions raised by handlers or collaborators are treated as
    transient and retried through the job queue.
    """
    if isinstance(error, StudioJobsError):
        return error.retryable
    return True


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, StudioJobsError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StudioJobsError",
    "ValidationError",
    "JobPayloadError",
    "ProjectNotFoundError",
    "JobNotFoundError",
    "UnknownJobTypeError",
    "WorkflowLockUnavailableError",
    "ConfigError",
    "DatabaseError",
    "is_retryable",
    "categorize_error",
]
