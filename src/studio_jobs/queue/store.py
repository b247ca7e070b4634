"""Job Store: claim, finalize and reap rows of the ``jobs`` queue table.

Manifesto:
    Any number of worker processes poll the same table. Mutual exclusion on
    queue rows is delegated to the database, never to application locks:
    a claim is a single ``UPDATE ... WHERE job_id IN (candidate CTE)``
    whose candidate select uses ``FOR UPDATE SKIP LOCKED`` on PostgreSQL,
    so concurrent claimers skip rows another transaction is already taking.
    SQLite serializes writers, which gives the same guarantee there.

    Workers only touch job rows through this class. Handlers persist
    intermediate progress with :meth:`JobStore.update_payload`.

Lifecycle::

    queued ──try_claim_job──▶ running ──mark_succeeded──▶ succeeded
      ▲                          │
      │   mark_failed (retry)    │ mark_failed (attempts exhausted
      └──────────────────────────┤              or non-retryable)
      ▲                          ▼
      └──reap_stale_running_jobs─ running (lease expired)   failed

Tags:
    studio-jobs, queue, claim, lease, skip-locked, reaper

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import ColumnElement, and_, case, func, literal, null, or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from studio_jobs.core.errors import JobNotFoundError
from studio_jobs.core.logging import get_logger
from studio_jobs.core.orm.base import UTCDateTime
from studio_jobs.core.orm.tables import JobTable
from studio_jobs.core.timestamps import Clock, utc_now
from studio_jobs.queue.backoff import DEFAULT_BACKOFF, ExponentialBackoff
from studio_jobs.queue.models import Job, JobStatus

logger = get_logger(__name__)

STALE_RUNNING_AFTER = timedelta(minutes=60)

REAPED_EXPIRED_LOCK = "reaped stale running job (expired lock)"
REAPED_NO_LOCK = "reaped stale running job (no lock, started_at stale)"

_jobs = JobTable.__table__


def _ts(value: datetime) -> ColumnElement[Any]:
    """Bind a timestamp with the UTC-normalizing column type."""
    return literal(value, UTCDateTime())


def row_to_job(row: Mapping[str, Any]) -> Job:
    return Job(
        job_id=row["job_id"],
        job_type_key=row["job_type_key"],
        status=JobStatus(row["status_key"]),
        payload=dict(row["payload"] or {}),
        attempt_count=row["attempt_count"],
        max_attempts=row["max_attempts"],
        run_after=row["run_after"],
        locked_by=row["locked_by"],
        locked_until=row["locked_until"],
        started_at=row["started_at"],
        finished_at=row["finished_at"],
        last_error=row["last_error"],
        entity_type_key=row["entity_type_key"],
        entity_key=row["entity_key"],
        created_at=row["created_at"],
    )


class JobStore:
    """Owns every state transition of a job row.

    Args:
        sessions: ``sessionmaker`` bound to the queue database.
        clock: Time source; every ``now`` used in SQL comes from here.
        backoff: Retry delay policy used by :meth:`mark_failed`.
        stale_running_after: Age after which a lock-less running job is
            considered abandoned by the reaper.

    Example:
        >>> store = JobStore(session_factory(engine))
        >>> job = store.try_claim_job("worker-1", timedelta(minutes=2))
        >>> if job:
        ...     store.mark_succeeded(job.job_id)
    """

    def __init__(
        self,
        sessions: sessionmaker[Session],
        *,
        clock: Clock = utc_now,
        backoff: ExponentialBackoff = DEFAULT_BACKOFF,
        stale_running_after: timedelta = STALE_RUNNING_AFTER,
    ) -> None:
        self._sessions = sessions
        self._clock = clock
        self._backoff = backoff
        self._stale_running_after = stale_running_after

    @property
    def clock(self) -> Clock:
        return self._clock

    # ------------------------------------------------------------------ #
    # Claim
    # ------------------------------------------------------------------ #

    def try_claim_job(self, worker_id: str, lease_duration: timedelta) -> Job | None:
        """Atomically take the oldest eligible queued job, or return ``None``."""
        now = self._clock()

        candidate = (
            select(_jobs.c.job_id)
            .where(
                _jobs.c.status_key == JobStatus.QUEUED.value,
                _jobs.c.run_after <= _ts(now),
                or_(_jobs.c.locked_until.is_(None), _jobs.c.locked_until < _ts(now)),
            )
            .order_by(_jobs.c.created_at, _jobs.c.job_id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .cte("candidate")
        )

        stmt = (
            update(_jobs)
            .where(_jobs.c.job_id.in_(select(candidate.c.job_id)))
            .values(
                status_key=JobStatus.RUNNING.value,
                locked_by=worker_id,
                locked_until=_ts(now + lease_duration),
                started_at=func.coalesce(_jobs.c.started_at, _ts(now)),
                last_error=None,
            )
            .returning(*_jobs.c)
        )

        with self._sessions.begin() as session:
            row = session.execute(stmt).mappings().first()

        if row is None:
            return None
        return row_to_job(row)

    # ------------------------------------------------------------------ #
    # Reaper
    # ------------------------------------------------------------------ #

    def _stale_predicate(self, now: datetime) -> ColumnElement[bool]:
        cutoff = now - self._stale_running_after
        return and_(
            _jobs.c.status_key == JobStatus.RUNNING.value,
            or_(
                and_(_jobs.c.locked_until.is_not(None), _jobs.c.locked_until < _ts(now)),
                and_(
                    _jobs.c.locked_until.is_(None),
                    _jobs.c.started_at.is_not(None),
                    _jobs.c.started_at < _ts(cutoff),
                ),
            ),
        )

    def reap_stale_running_jobs(self) -> int:
        """Reset abandoned ``running`` jobs to ``queued``. Returns the count."""
        now = self._clock()
        stmt = (
            update(_jobs)
            .where(self._stale_predicate(now))
            .values(
                status_key=JobStatus.QUEUED.value,
                run_after=_ts(now),
                locked_by=None,
                locked_until=None,
                # SET expressions see the pre-update locked_until
                last_error=case(
                    (_jobs.c.locked_until.is_(None), REAPED_NO_LOCK),
                    else_=REAPED_EXPIRED_LOCK,
                ),
            )
        )
        with self._sessions.begin() as session:
            count = session.execute(stmt).rowcount or 0

        if count:
            logger.warning("jobs_reaped", count=count)
        return count

    def count_stale_running_jobs(self) -> int:
        """Number of jobs :meth:`reap_stale_running_jobs` would reset now."""
        stmt = select(func.count()).select_from(_jobs).where(self._stale_predicate(self._clock()))
        with self._sessions() as session:
            return int(session.execute(stmt).scalar_one())

    # ------------------------------------------------------------------ #
    # Finalization
    # ------------------------------------------------------------------ #

    def mark_succeeded(self, job_id: str) -> Job:
        now = self._clock()
        stmt = (
            update(_jobs)
            .where(_jobs.c.job_id == job_id)
            .values(
                status_key=JobStatus.SUCCEEDED.value,
                finished_at=_ts(now),
                locked_by=None,
                locked_until=None,
                last_error=None,
            )
            .returning(*_jobs.c)
        )
        with self._sessions.begin() as session:
            row = session.execute(stmt).mappings().first()
        if row is None:
            raise JobNotFoundError(job_id)
        return row_to_job(row)

    def mark_failed(
        self,
        job_id: str,
        new_attempt_count: int,
        error_text: str,
        *,
        retryable: bool = True,
    ) -> Job:
        """Record a failed attempt.

        Requeues with backoff while ``new_attempt_count < max_attempts``;
        otherwise (or when ``retryable`` is ``False``) the job becomes
        terminally ``failed``. ``error_text`` is stored in ``last_error`` and
        merged into the payload under ``lastError``.
        """
        now = self._clock()
        retry_at = now + self._backoff.delay_for(new_attempt_count)

        values: dict[str, Any] = {
            "attempt_count": new_attempt_count,
            "locked_by": None,
            "locked_until": None,
            "last_error": error_text,
        }
        if retryable:
            will_retry = _jobs.c.max_attempts > new_attempt_count
            values["status_key"] = case(
                (will_retry, JobStatus.QUEUED.value), else_=JobStatus.FAILED.value
            )
            values["run_after"] = case((will_retry, _ts(retry_at)), else_=_ts(now))
            values["finished_at"] = case((will_retry, null()), else_=_ts(now))
        else:
            values["status_key"] = JobStatus.FAILED.value
            values["run_after"] = _ts(now)
            values["finished_at"] = _ts(now)

        stmt = update(_jobs).where(_jobs.c.job_id == job_id).values(**values).returning(*_jobs.c)

        with self._sessions.begin() as session:
            row = session.execute(stmt).mappings().first()
            if row is None:
                raise JobNotFoundError(job_id)
            payload = {**(row["payload"] or {}), "lastError": error_text}
            session.execute(update(_jobs).where(_jobs.c.job_id == job_id).values(payload=payload))

        job = row_to_job({**row, "payload": payload})
        logger.info(
            "job_failed",
            job_id=job_id,
            attempt=new_attempt_count,
            max_attempts=job.max_attempts,
            status=job.status.value,
            run_after=job.run_after.isoformat() if job.run_after else None,
        )
        return job

    def update_payload(self, job_id: str, payload: Mapping[str, Any]) -> None:
        """Replace the job's payload document (progress kept across retries)."""
        stmt = update(_jobs).where(_jobs.c.job_id == job_id).values(payload=dict(payload))
        with self._sessions.begin() as session:
            if not session.execute(stmt).rowcount:
                raise JobNotFoundError(job_id)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_job(self, job_id: str) -> Job | None:
        with self._sessions() as session:
            row = session.execute(select(_jobs).where(_jobs.c.job_id == job_id)).mappings().first()
        return row_to_job(row) if row is not None else None
