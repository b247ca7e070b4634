"""Operator-facing job operations: enqueue, inspect, reset, requeue.

These are the only writes to ``jobs`` that happen outside the worker's
claim/finalize path. Enqueue is idempotent by convention: callers first
look for a queued/running job for the same entity with
:meth:`JobOps.find_existing_job` (best-effort duplicate suppression, not a
uniqueness constraint).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import insert, select, update
from sqlalchemy.orm import Session, sessionmaker

from studio_jobs.core.logging import get_logger
from studio_jobs.core.orm.tables import JobTable
from studio_jobs.core.timestamps import Clock, new_entity_id, utc_now
from studio_jobs.queue.models import ENTITY_TYPE_PROJECT, ExistingJob, JobStatus, JobSummary
from studio_jobs.queue.store import JobStore

logger = get_logger(__name__)

_jobs = JobTable.__table__
_ACTIVE = (JobStatus.QUEUED.value, JobStatus.RUNNING.value)


@dataclass(frozen=True)
class RequeueResult:
    was_dry_run: bool
    count: int


class JobOps:
    """Enqueue and maintenance operations on the job queue."""

    def __init__(
        self,
        sessions: sessionmaker[Session],
        store: JobStore | None = None,
        *,
        clock: Clock = utc_now,
        default_max_attempts: int = 5,
    ) -> None:
        self._sessions = sessions
        self._clock = clock
        self._store = store or JobStore(sessions, clock=clock)
        self._default_max_attempts = default_max_attempts

    def find_existing_job(self, job_type_key: str, entity_type_key: str, entity_key: str) -> ExistingJob | None:
        """Newest queued/running job of this type for the entity, if any."""
        stmt = (
            select(_jobs.c.job_id, _jobs.c.status_key)
            .where(
                _jobs.c.job_type_key == job_type_key,
                _jobs.c.entity_type_key == entity_type_key,
                _jobs.c.entity_key == entity_key,
                _jobs.c.status_key.in_(_ACTIVE),
            )
            .order_by(_jobs.c.created_at.desc())
            .limit(1)
        )
        with self._sessions() as session:
            row = session.execute(stmt).first()
        if row is None:
            return None
        return ExistingJob(job_id=row.job_id, status=JobStatus(row.status_key))

    def enqueue_job(
        self,
        job_type_key: str,
        payload: Mapping[str, Any],
        *,
        entity_type_key: str | None = None,
        entity_key: str | None = None,
        max_attempts: int | None = None,
        job_id: str | None = None,
    ) -> str:
        """Insert a ``queued`` job runnable immediately. Returns its id."""
        now = self._clock()
        job_id = job_id or new_entity_id("job")
        stmt = insert(_jobs).values(
            job_id=job_id,
            job_type_key=job_type_key,
            payload=dict(payload),
            status_key=JobStatus.QUEUED.value,
            attempt_count=0,
            max_attempts=max_attempts or self._default_max_attempts,
            run_after=now,
            entity_type_key=entity_type_key,
            entity_key=entity_key,
            created_at=now,
        )
        with self._sessions.begin() as session:
            session.execute(stmt)

        logger.info("job_enqueued", job_id=job_id, job_type_key=job_type_key, entity_key=entity_key)
        return job_id

    def list_jobs(self, job_type_key: str, entity_type_key: str, entity_key: str) -> list[JobSummary]:
        stmt = (
            select(
                _jobs.c.job_id,
                _jobs.c.status_key,
                _jobs.c.attempt_count,
                _jobs.c.run_after,
                _jobs.c.locked_until,
                _jobs.c.last_error,
            )
            .where(
                _jobs.c.job_type_key == job_type_key,
                _jobs.c.entity_type_key == entity_type_key,
                _jobs.c.entity_key == entity_key,
            )
            .order_by(_jobs.c.created_at.desc())
        )
        with self._sessions() as session:
            rows = session.execute(stmt).all()
        return [
            JobSummary(
                job_id=row.job_id,
                status=JobStatus(row.status_key),
                attempt_count=row.attempt_count,
                run_after=row.run_after,
                locked_until=row.locked_until,
                last_error=row.last_error,
            )
            for row in rows
        ]

    def reset_project_jobs(self, project_id: str, job_type_key: str) -> int:
        """Make the project's queued/running jobs of this type runnable now."""
        stmt = (
            update(_jobs)
            .where(
                _jobs.c.job_type_key == job_type_key,
                _jobs.c.entity_type_key == ENTITY_TYPE_PROJECT,
                _jobs.c.entity_key == project_id,
                _jobs.c.status_key.in_(_ACTIVE),
            )
            .values(
                status_key=JobStatus.QUEUED.value,
                run_after=self._clock(),
                locked_by=None,
                locked_until=None,
            )
        )
        with self._sessions.begin() as session:
            count = session.execute(stmt).rowcount or 0
        logger.info("project_jobs_reset", project_id=project_id, job_type_key=job_type_key, count=count)
        return count

    def requeue_stale_jobs(self, *, dry_run: bool = False) -> RequeueResult:
        """Run the reaper on demand, or just count its targets with ``dry_run``."""
        if dry_run:
            return RequeueResult(was_dry_run=True, count=self._store.count_stale_running_jobs())
        return RequeueResult(was_dry_run=False, count=self._store.reap_stale_running_jobs())
