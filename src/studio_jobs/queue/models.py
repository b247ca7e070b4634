"""Job queue value types.

:class:`Job` is an immutable snapshot of a ``jobs`` row as returned by the
store; handlers never mutate it and never touch the row directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from studio_jobs.core.timestamps import to_iso8601


class JobStatus(str, Enum):
    """Lifecycle states of a job row."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


# Job types dispatched by the worker (flat string match)
JOB_TYPE_PROJECT_BOOTSTRAP = "project.bootstrap"
JOB_TYPE_PROJECT_ARCHIVE = "project.archive"
JOB_TYPE_PROJECT_DELIVERY = "project.delivery"
JOB_TYPE_PROJECT_DELIVERY_EMAIL = "project.delivery_email"
JOB_TYPE_ROOT_INTEGRITY = "domain.root_integrity"

ENTITY_TYPE_PROJECT = "project"
ENTITY_TYPE_STORAGE_ROOT = "storage_root"


@dataclass(frozen=True)
class Job:
    """Snapshot of one queue row."""

    job_id: str
    job_type_key: str
    status: JobStatus
    payload: dict[str, Any] = field(default_factory=dict)
    attempt_count: int = 0
    max_attempts: int = 5
    run_after: datetime | None = None
    locked_by: str | None = None
    locked_until: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    last_error: str | None = None
    entity_type_key: str | None = None
    entity_key: str | None = None
    created_at: datetime | None = None

    @property
    def next_attempt(self) -> int:
        """Attempt number passed to ``mark_failed`` if this run fails."""
        return self.attempt_count + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "job_type_key": self.job_type_key,
            "status": self.status.value,
            "payload": self.payload,
            "attempt_count": self.attempt_count,
            "max_attempts": self.max_attempts,
            "run_after": to_iso8601(self.run_after),
            "locked_by": self.locked_by,
            "locked_until": to_iso8601(self.locked_until),
            "started_at": to_iso8601(self.started_at),
            "finished_at": to_iso8601(self.finished_at),
            "last_error": self.last_error,
            "entity_type_key": self.entity_type_key,
            "entity_key": self.entity_key,
            "created_at": to_iso8601(self.created_at),
        }


@dataclass(frozen=True)
class ExistingJob:
    """Queued/running job found by duplicate suppression."""

    job_id: str
    status: JobStatus


@dataclass(frozen=True)
class JobSummary:
    job_id: str
    status: JobStatus
    attempt_count: int
    run_after: datetime
    locked_until: datetime | None
    last_error: str | None = None
