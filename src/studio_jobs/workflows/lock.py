"""Workflow Lock: per-entity lease that serializes storage-mutating workflows.

Manifesto:
    The job queue guarantees one worker per *job*; nothing stops two jobs
    for the same project (an archive and a delivery, say) from running at
    once. Workflows that move files take a lease on ``project:<id>``
    first. Acquisition never waits: a busy scope returns ``None`` and the
    caller raises :class:`WorkflowLockUnavailableError`.

    Leases live in ``project_workflow_locks`` keyed by ``(scope_id, kind)``.
    Acquire deletes an expired row for the key, then insert-or-ignores;
    a TTL (default 6 hours) keeps a crashed holder from blocking a scope
    forever. The same holder re-acquiring refreshes its lease.

Example::

    lease = await lock.try_acquire(project_scope("prj_1"), KIND_STORAGE_MUTATION, job_id)
    if lease is None:
        raise WorkflowLockUnavailableError(...)
    async with lease:
        ...  # released on success, exception or cancellation

Tags:
    studio-jobs, workflows, distributed-locks, TTL
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Insert, and_, delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from studio_jobs.core.errors import ConfigError, ValidationError
from studio_jobs.core.logging import get_logger
from studio_jobs.core.orm.tables import WorkflowLockTable
from studio_jobs.core.timestamps import Clock, utc_now

logger = get_logger(__name__)

KIND_STORAGE_MUTATION = "storage_mutation"
DEFAULT_LOCK_TTL = timedelta(hours=6)
UNKNOWN_HOLDER = "unknown"

_locks = WorkflowLockTable.__table__


def project_scope(project_id: str) -> str:
    if not project_id or not project_id.strip():
        raise ValidationError("project_id is required for a project lock scope.", field="project_id")
    return f"project:{project_id.strip()}"


def root_scope(provider_key: str, root_key: str) -> str:
    if not provider_key or not provider_key.strip():
        raise ValidationError("provider_key is required for a root lock scope.", field="provider_key")
    if not root_key or not root_key.strip():
        raise ValidationError("root_key is required for a root lock scope.", field="root_key")
    return f"root:{provider_key.strip()}:{root_key.strip()}"


def _insert_or_ignore(dialect_name: str, values: dict[str, Any]) -> Insert:
    if dialect_name == "sqlite":
        return sqlite.insert(_locks).values(**values).on_conflict_do_nothing()
    if dialect_name == "postgresql":
        return postgresql.insert(_locks).values(**values).on_conflict_do_nothing()
    raise ConfigError(f"Workflow lock does not support dialect '{dialect_name}'.")


class WorkflowLease:
    """A held lease. Async context manager; :meth:`release` is idempotent."""

    def __init__(self, lock: WorkflowLock, scope_id: str, kind: str, holder_id: str, acquired_at: datetime) -> None:
        self.scope_id = scope_id
        self.kind = kind
        self.holder_id = holder_id
        self.acquired_at = acquired_at
        self._lock = lock
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        await asyncio.to_thread(self._lock.release, self.scope_id, self.kind, self.holder_id)

    async def __aenter__(self) -> WorkflowLease:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.release()

    def __repr__(self) -> str:
        return f"WorkflowLease(scope_id={self.scope_id!r}, kind={self.kind!r}, holder_id={self.holder_id!r})"


class WorkflowLock:
    """Database-backed, non-blocking lease table.

    Args:
        sessions: Session factory bound to the application database.
        ttl: How long an unreleased lease stays valid.
        clock: Time source (tests inject a fake).
    """

    def __init__(
        self,
        sessions: sessionmaker[Session],
        *,
        ttl: timedelta = DEFAULT_LOCK_TTL,
        clock: Clock = utc_now,
    ) -> None:
        self._sessions = sessions
        self._ttl = ttl
        self._clock = clock

    async def try_acquire(self, scope_id: str, kind: str, holder_id: str | None) -> WorkflowLease | None:
        """Take the lease or return ``None`` immediately if someone else holds it."""
        holder = (holder_id or "").strip() or UNKNOWN_HOLDER
        acquired_at = await asyncio.to_thread(self.acquire, scope_id, kind, holder)
        if acquired_at is None:
            return None
        return WorkflowLease(self, scope_id, kind, holder, acquired_at)

    def acquire(self, scope_id: str, kind: str, holder_id: str) -> datetime | None:
        """Synchronous acquire. Returns the acquisition time, or ``None`` if busy."""
        now = self._clock()
        expires_at = now + self._ttl
        key = and_(_locks.c.scope_id == scope_id, _locks.c.kind == kind)

        with self._sessions.begin() as session:
            session.execute(delete(_locks).where(key, _locks.c.expires_at < now))
            inserted = session.execute(
                _insert_or_ignore(
                    session.get_bind().dialect.name,
                    {
                        "scope_id": scope_id,
                        "kind": kind,
                        "holder_id": holder_id,
                        "acquired_at": now,
                        "expires_at": expires_at,
                    },
                )
            ).rowcount
            if inserted:
                logger.debug("workflow_lock_acquired", scope_id=scope_id, kind=kind, holder_id=holder_id)
                return now

            refreshed = session.execute(
                update(_locks).where(key, _locks.c.holder_id == holder_id).values(expires_at=expires_at)
            ).rowcount

        if refreshed:
            logger.debug("workflow_lock_refreshed", scope_id=scope_id, kind=kind, holder_id=holder_id)
            return now

        logger.info("workflow_lock_busy", scope_id=scope_id, kind=kind, holder_id=holder_id)
        return None

    def release(self, scope_id: str, kind: str, holder_id: str) -> bool:
        """Delete the lease if ``holder_id`` still owns it."""
        stmt = delete(_locks).where(
            _locks.c.scope_id == scope_id,
            _locks.c.kind == kind,
            _locks.c.holder_id == holder_id,
        )
        with self._sessions.begin() as session:
            released = bool(session.execute(stmt).rowcount)
        if released:
            logger.debug("workflow_lock_released", scope_id=scope_id, kind=kind, holder_id=holder_id)
        return released

    def is_locked(self, scope_id: str, kind: str) -> bool:
        return self.get_holder(scope_id, kind) is not None

    def get_holder(self, scope_id: str, kind: str) -> str | None:
        stmt = select(_locks.c.holder_id).where(
            _locks.c.scope_id == scope_id,
            _locks.c.kind == kind,
            _locks.c.expires_at > self._clock(),
        )
        with self._sessions() as session:
            return session.execute(stmt).scalar_one_or_none()

    def cleanup_expired(self) -> int:
        """Remove expired leases left behind by crashed holders."""
        with self._sessions.begin() as session:
            count = session.execute(delete(_locks).where(_locks.c.expires_at < self._clock())).rowcount or 0
        if count:
            logger.info("workflow_locks_cleaned", count=count)
        return count
