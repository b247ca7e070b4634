"""Database-backed job queue: store, backoff and operator operations."""

from studio_jobs.queue.backoff import ExponentialBackoff, compute_backoff_delay
from studio_jobs.queue.models import ExistingJob, Job, JobStatus, JobSummary
from studio_jobs.queue.ops import JobOps, RequeueResult
from studio_jobs.queue.store import JobStore

__all__ = [
    "ExistingJob",
    "ExponentialBackoff",
    "Job",
    "JobOps",
    "JobStatus",
    "JobStore",
    "JobSummary",
    "RequeueResult",
    "compute_backoff_delay",
]
