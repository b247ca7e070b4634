"""What a job handler receives and returns.

Handlers get a :class:`JobContext` (the claimed job snapshot plus a narrow
hook to persist payload progress) and return a :class:`JobOutcome`.
Returning ``None`` means success; raising means failure with the exception
message as the job's error text.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from studio_jobs.queue.models import Job
from studio_jobs.queue.store import JobStore


@dataclass(frozen=True)
class JobOutcome:
    """Result of one handler invocation.

    ``retryable=False`` finalizes a failed job immediately instead of
    scheduling another attempt.
    """

    succeeded: bool
    error: str | None = None
    retryable: bool = True

    @classmethod
    def ok(cls) -> JobOutcome:
        return cls(succeeded=True)

    @classmethod
    def failed(cls, error: str, *, retryable: bool = True) -> JobOutcome:
        return cls(succeeded=False, error=error, retryable=retryable)


class JobContext:
    """Per-claim handle passed to handlers."""

    def __init__(self, job: Job, store: JobStore, worker_id: str) -> None:
        self.job = job
        self.worker_id = worker_id
        self._store = store

    @property
    def job_id(self) -> str:
        return self.job.job_id

    @property
    def payload(self) -> dict[str, Any]:
        return self.job.payload

    async def update_payload(self, payload: Mapping[str, Any]) -> None:
        """Persist progress so a retried attempt can resume from it."""
        await asyncio.to_thread(self._store.update_payload, self.job.job_id, payload)
