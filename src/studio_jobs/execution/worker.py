"""Job Worker: polls the queue, dispatches by job type, finalizes outcomes.

Each process runs one claim loop. A tick:

1. Reaps stale ``running`` jobs (crash recovery for dead workers).
2. Claims at most one eligible job with a lease.
3. Resolves the handler by ``job_type_key`` and awaits it.
4. Finalizes: ``mark_succeeded``, or ``mark_failed`` with the next attempt
   number (retry with backoff, or terminal).

Store calls are synchronous SQLAlchemy; they run in a thread via
``asyncio.to_thread`` so handlers keep the event loop for I/O.

Usage (programmatic)::

    from studio_jobs.execution.worker import JobWorker

    worker = JobWorker(store, registry, poll_interval=3.0)
    asyncio.run(worker.run())   # until stop() / SIGTERM

Usage (CLI)::

    studio-jobs worker start --poll-interval 3 --max-jobs 50
"""

from __future__ import annotations

import asyncio
import os
import signal
import socket
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from studio_jobs.core.errors import is_retryable
from studio_jobs.core.logging import LogContext, get_logger
from studio_jobs.core.timestamps import utc_now
from studio_jobs.execution.context import JobContext, JobOutcome
from studio_jobs.execution.registry import HandlerRegistry
from studio_jobs.queue.models import Job
from studio_jobs.queue.store import JobStore

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_LEASE_DURATION = timedelta(minutes=2)
DEFAULT_ERROR_BACKOFF = 5.0

CANCELLED_ERROR = "Job cancelled before completion."


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


@dataclass
class WorkerStats:
    """Aggregate statistics for a worker."""

    total_processed: int = 0
    total_succeeded: int = 0
    total_failed: int = 0
    total_reaped: int = 0
    poll_errors: int = 0
    last_poll_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_processed": self.total_processed,
            "total_succeeded": self.total_succeeded,
            "total_failed": self.total_failed,
            "total_reaped": self.total_reaped,
            "poll_errors": self.poll_errors,
            "last_poll_at": self.last_poll_at.isoformat() if self.last_poll_at else None,
        }


# --------------------------------------------------------------------------- #
# JobWorker
# --------------------------------------------------------------------------- #


class JobWorker:
    """Single-job-at-a-time claim loop.

    Args:
        store: Queue store used for reap / claim / finalize.
        registry: Handlers keyed by ``job_type_key``.
        worker_id: Identity written to ``locked_by``. Defaults to
            ``<hostname>:<pid>:<hex>``.
        poll_interval: Seconds to sleep when nothing is claimable.
        lease_duration: How long a claim holds ``locked_until``.
        error_backoff: Seconds to sleep after a loop-level error.
        max_jobs: Stop after processing this many jobs.
        exit_when_idle: Stop the first time a claim returns nothing.
    """

    def __init__(
        self,
        store: JobStore,
        registry: HandlerRegistry,
        *,
        worker_id: str | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        lease_duration: timedelta = DEFAULT_LEASE_DURATION,
        error_backoff: float = DEFAULT_ERROR_BACKOFF,
        max_jobs: int | None = None,
        exit_when_idle: bool = False,
    ) -> None:
        self._store = store
        self._registry = registry
        self._worker_id = worker_id or default_worker_id()
        self._poll_interval = poll_interval
        self._lease_duration = lease_duration
        self._error_backoff = error_backoff
        self._max_jobs = max_jobs
        self._exit_when_idle = exit_when_idle
        self._stopping = asyncio.Event()
        self._stats = WorkerStats()
        self._started_at = utc_now()

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def stats(self) -> WorkerStats:
        return self._stats

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def stop(self) -> None:
        """Request graceful shutdown after the current job finishes."""
        if not self._stopping.is_set():
            logger.info("worker_stopping", worker_id=self._worker_id)
        self._stopping.set()

    def install_signal_handlers(self) -> None:
        """Map SIGINT / SIGTERM to :meth:`stop` on the running loop."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                pass  # Not supported on this platform / not main thread

    async def run(self) -> WorkerStats:
        """Run the claim loop until stopped, ``max_jobs`` or idle exit."""
        logger.info(
            "worker_started",
            worker_id=self._worker_id,
            poll_interval=self._poll_interval,
            lease_seconds=self._lease_duration.total_seconds(),
            max_jobs=self._max_jobs,
            exit_when_idle=self._exit_when_idle,
        )

        while not self._stopping.is_set():
            try:
                processed = await self.run_once()
            except Exception:
                self._stats.poll_errors += 1
                logger.exception("worker_poll_error", worker_id=self._worker_id)
                await self._sleep(self._error_backoff)
                continue

            if processed:
                if self._max_jobs is not None and self._stats.total_processed >= self._max_jobs:
                    logger.info("worker_max_jobs_reached", worker_id=self._worker_id, max_jobs=self._max_jobs)
                    break
                continue

            if self._exit_when_idle:
                logger.info("worker_idle_exit", worker_id=self._worker_id)
                break

            await self._sleep(self._poll_interval)

        logger.info("worker_stopped", worker_id=self._worker_id, **self._stats.to_dict())
        return self._stats

    async def _sleep(self, seconds: float) -> None:
        """Sleep, waking early if :meth:`stop` is called."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    # ------------------------------------------------------------------ #
    # One tick
    # ------------------------------------------------------------------ #

    async def run_once(self) -> bool:
        """Reap, claim and process at most one job. Returns ``True`` if one ran."""
        reaped = await asyncio.to_thread(self._store.reap_stale_running_jobs)
        self._stats.total_reaped += reaped

        job = await asyncio.to_thread(self._store.try_claim_job, self._worker_id, self._lease_duration)
        self._stats.last_poll_at = utc_now()
        if job is None:
            return False

        await self.process(job)
        return True

    async def process(self, job: Job) -> None:
        """Dispatch a claimed job and finalize its outcome."""
        self._stats.total_processed += 1

        async with LogContext(job_id=job.job_id, job_type_key=job.job_type_key, worker_id=self._worker_id):
            logger.info("job_claimed", attempt=job.next_attempt, max_attempts=job.max_attempts)

            try:
                handler = self._registry.get(job.job_type_key)
                outcome = await handler(JobContext(job, self._store, self._worker_id))
            except asyncio.CancelledError:
                logger.warning("job_cancelled")
                await self._finalize_failure(job, CANCELLED_ERROR, retryable=True)
                raise
            except Exception as exc:
                error_text = str(exc) or type(exc).__name__
                logger.warning("job_handler_error", error=error_text, error_type=type(exc).__name__)
                await self._finalize_failure(job, error_text, retryable=is_retryable(exc))
                return

            outcome = outcome or JobOutcome.ok()
            if outcome.succeeded:
                await asyncio.to_thread(self._store.mark_succeeded, job.job_id)
                self._stats.total_succeeded += 1
                logger.info("job_succeeded")
            else:
                await self._finalize_failure(
                    job,
                    outcome.error or f"{job.job_type_key} failed.",
                    retryable=outcome.retryable,
                )

    async def _finalize_failure(self, job: Job, error_text: str, *, retryable: bool) -> None:
        self._stats.total_failed += 1
        await asyncio.to_thread(
            self._store.mark_failed,
            job.job_id,
            job.next_attempt,
            error_text,
            retryable=retryable,
        )
