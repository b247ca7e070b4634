"""Enqueue helpers with duplicate suppression.

A project has at most one queued/running job per job type, and so does a
storage root for ``domain.root_integrity``. The check is best-effort (read
then insert); two callers racing may both enqueue, in which case the
workflow lock serializes the runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from studio_jobs.core.logging import get_logger
from studio_jobs.queue.models import ENTITY_TYPE_PROJECT, ENTITY_TYPE_STORAGE_ROOT
from studio_jobs.queue.ops import JobOps
from studio_jobs.workflows.payloads import ProjectJobPayload, RootIntegrityPayload

logger = get_logger(__name__)


@dataclass(frozen=True)
class EnqueueResult:
    enqueued: bool
    job_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    reason: str | None = None


class ProjectJobEnqueuer:
    """Creates workflow jobs unless one is already pending for the same entity."""

    def __init__(self, ops: JobOps) -> None:
        self._ops = ops

    def enqueue(self, payload: ProjectJobPayload, *, max_attempts: int | None = None) -> EnqueueResult:
        """Enqueue a project workflow job keyed by ``project:<projectId>``."""
        return self._enqueue(
            payload.job_type_key,
            payload.to_payload(),
            ENTITY_TYPE_PROJECT,
            payload.project_id,
            max_attempts=max_attempts,
        )

    def enqueue_root_integrity(
        self, payload: RootIntegrityPayload, *, max_attempts: int | None = None
    ) -> EnqueueResult:
        """Enqueue a root check keyed by ``storage_root:<provider>:<root>``."""
        return self._enqueue(
            payload.job_type_key,
            payload.to_payload(),
            ENTITY_TYPE_STORAGE_ROOT,
            payload.entity_key,
            max_attempts=max_attempts,
        )

    def _enqueue(
        self,
        job_type_key: str,
        document: dict[str, Any],
        entity_type_key: str,
        entity_key: str,
        *,
        max_attempts: int | None,
    ) -> EnqueueResult:
        existing = self._ops.find_existing_job(job_type_key, entity_type_key, entity_key)
        if existing is not None:
            reason = (
                f"{job_type_key} already queued/running "
                f"(job_id={existing.job_id}, status={existing.status.value})"
            )
            logger.info(
                "job_enqueue_suppressed",
                job_type_key=job_type_key,
                entity_type_key=entity_type_key,
                entity_key=entity_key,
                existing_job_id=existing.job_id,
            )
            return EnqueueResult(enqueued=False, job_id=existing.job_id, payload=document, reason=reason)

        job_id = self._ops.enqueue_job(
            job_type_key,
            document,
            entity_type_key=entity_type_key,
            entity_key=entity_key,
            max_attempts=max_attempts,
        )
        return EnqueueResult(enqueued=True, job_id=job_id, payload=document)
