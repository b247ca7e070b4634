"""Project workflows: bootstrap, archive, delivery and the delivery email.

Workflows share one guarded, locked flow (:mod:`.runner`) and record each
run into the project's metadata (:mod:`.history`). Storage providers and
email sending are injected through the protocols in :mod:`.protocols`.
"""

from studio_jobs.workflows.archive import ProjectArchiveWorkflow
from studio_jobs.workflows.bootstrap import ProjectBootstrapWorkflow
from studio_jobs.workflows.delivery import ProjectDeliveryWorkflow
from studio_jobs.workflows.delivery_email import DeliveryEmailService
from studio_jobs.workflows.enqueue import EnqueueResult, ProjectJobEnqueuer
from studio_jobs.workflows.handlers import build_registry, outcome_from_workflow
from studio_jobs.workflows.history import RunHistoryAppender, append_run_to_metadata
from studio_jobs.workflows.lock import WorkflowLease, WorkflowLock, project_scope, root_scope
from studio_jobs.workflows.projects import ClientRecord, ProjectRecord, ProjectStore
from studio_jobs.workflows.runner import ProjectWorkflow, WorkflowOutcome, WorkflowServices

__all__ = [
    "ClientRecord",
    "DeliveryEmailService",
    "EnqueueResult",
    "ProjectArchiveWorkflow",
    "ProjectBootstrapWorkflow",
    "ProjectDeliveryWorkflow",
    "ProjectJobEnqueuer",
    "ProjectRecord",
    "ProjectStore",
    "ProjectWorkflow",
    "RunHistoryAppender",
    "WorkflowLease",
    "WorkflowLock",
    "WorkflowOutcome",
    "WorkflowServices",
    "append_run_to_metadata",
    "build_registry",
    "outcome_from_workflow",
    "project_scope",
    "root_scope",
]
