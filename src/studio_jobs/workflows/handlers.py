"""Job handlers that connect the project workflows to the worker.

Each handler parses the job payload, runs the workflow and maps the
recorded run to a :class:`~studio_jobs.execution.context.JobOutcome`:

* blocked by a guard       → failed, not retried (the project must change first)
* run with domain errors   → failed with the run's ``last_error`` (retried)
* delivery email not sent  → failed with the audit error (retried)
* root check rejected      → failed, not retried (bad mode or no contract)
* root check with errors   → failed with the first error (retried)
* otherwise                → succeeded

The root integrity handler stores every result the check produces in the
job payload under ``result``.

Payload errors and missing projects raise non-retryable errors; a busy
workflow lock raises and is finalized by the worker like any other error.
"""

from __future__ import annotations

from studio_jobs.execution.context import JobContext, JobOutcome
from studio_jobs.execution.registry import HandlerRegistry
from studio_jobs.queue.models import (
    JOB_TYPE_PROJECT_ARCHIVE,
    JOB_TYPE_PROJECT_BOOTSTRAP,
    JOB_TYPE_PROJECT_DELIVERY,
    JOB_TYPE_PROJECT_DELIVERY_EMAIL,
    JOB_TYPE_ROOT_INTEGRITY,
)
from studio_jobs.workflows.archive import ProjectArchiveWorkflow
from studio_jobs.workflows.bootstrap import ProjectBootstrapWorkflow
from studio_jobs.workflows.delivery import ProjectDeliveryWorkflow
from studio_jobs.workflows.delivery_email import STATUS_SENT, DeliveryEmailService
from studio_jobs.workflows.payloads import (
    ArchivePayload,
    BootstrapPayload,
    DeliveryEmailPayload,
    DeliveryPayload,
    RootIntegrityPayload,
)
from studio_jobs.workflows.protocols import (
    ArchiveExecutor,
    BootstrapProvisioner,
    DeliveryExecutor,
    EmailGateway,
    RootIntegrityExecutor,
)
from studio_jobs.workflows.root_integrity import RootIntegrityRun, build_job_payload
from studio_jobs.workflows.runner import WorkflowOutcome, WorkflowServices


def outcome_from_workflow(outcome: WorkflowOutcome) -> JobOutcome:
    run = outcome.run
    if outcome.blocked:
        return JobOutcome.failed(run.last_error or "Workflow blocked.", retryable=False)
    if run.has_errors:
        return JobOutcome.failed(run.last_error or "Workflow completed with errors.")
    return JobOutcome.ok()


def build_registry(
    services: WorkflowServices,
    *,
    provisioner: BootstrapProvisioner | None = None,
    archive_executor: ArchiveExecutor | None = None,
    delivery_executor: DeliveryExecutor | None = None,
    email_gateway: EmailGateway | None = None,
    root_integrity_executor: RootIntegrityExecutor | None = None,
    registry: HandlerRegistry | None = None,
) -> HandlerRegistry:
    """Register a handler for every collaborator supplied.

    Job types whose collaborator is missing stay unregistered; the worker
    fails such jobs with ``UnknownJobTypeError`` and retries them, so a
    worker started with the right collaborators can pick them up later.
    """
    registry = registry or HandlerRegistry()

    if provisioner is not None:
        bootstrap = ProjectBootstrapWorkflow(services, provisioner)

        async def handle_bootstrap(ctx: JobContext) -> JobOutcome:
            payload = BootstrapPayload.parse(ctx.payload)
            return outcome_from_workflow(await bootstrap.run(ctx.job_id, payload))

        registry.register(JOB_TYPE_PROJECT_BOOTSTRAP, handle_bootstrap, "Provision project storage domains")

    if archive_executor is not None:
        archive = ProjectArchiveWorkflow(services, archive_executor)

        async def handle_archive(ctx: JobContext) -> JobOutcome:
            payload = ArchivePayload.parse(ctx.payload)
            return outcome_from_workflow(await archive.run(ctx.job_id, payload))

        registry.register(JOB_TYPE_PROJECT_ARCHIVE, handle_archive, "Archive project to long-term storage")

    if delivery_executor is not None:
        delivery = ProjectDeliveryWorkflow(services, delivery_executor)

        async def handle_delivery(ctx: JobContext) -> JobOutcome:
            payload = DeliveryPayload.parse(ctx.payload)
            return outcome_from_workflow(await delivery.run(ctx.job_id, payload))

        registry.register(JOB_TYPE_PROJECT_DELIVERY, handle_delivery, "Publish project deliverables")

    if email_gateway is not None:
        emails = DeliveryEmailService(services.projects, services.history, email_gateway)

        async def handle_delivery_email(ctx: JobContext) -> JobOutcome:
            payload = DeliveryEmailPayload.parse(ctx.payload)
            audit = await emails.send(payload)
            if audit.status != STATUS_SENT:
                return JobOutcome.failed(audit.error or "Delivery email was not sent.")
            return JobOutcome.ok()

        registry.register(JOB_TYPE_PROJECT_DELIVERY_EMAIL, handle_delivery_email, "Send delivery-ready email")

    if root_integrity_executor is not None:
        root_checks = RootIntegrityRun(
            services.contracts, services.lock, root_integrity_executor, clock=services.clock
        )

        async def handle_root_integrity(ctx: JobContext) -> JobOutcome:
            payload = RootIntegrityPayload.parse(ctx.payload)
            outcome = await root_checks.run(ctx.job_id, payload)
            await ctx.update_payload(build_job_payload(payload, outcome.result))
            result = outcome.result
            if result.has_errors:
                return JobOutcome.failed(
                    result.errors[0] or f"{JOB_TYPE_ROOT_INTEGRITY} completed with errors.",
                    retryable=outcome.executed,
                )
            return JobOutcome.ok()

        registry.register(JOB_TYPE_ROOT_INTEGRITY, handle_root_integrity, "Check a storage root against its contract")

    return registry
