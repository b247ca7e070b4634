"""Job execution: handler registry and the async claim-loop worker."""

from studio_jobs.execution.context import JobContext, JobOutcome
from studio_jobs.execution.registry import HandlerRegistry, JobHandler
from studio_jobs.execution.worker import JobWorker, WorkerStats, default_worker_id

__all__ = [
    "HandlerRegistry",
    "JobContext",
    "JobHandler",
    "JobOutcome",
    "JobWorker",
    "WorkerStats",
    "default_worker_id",
]
