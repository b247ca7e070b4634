"""Project delivery: publish the latest deliverables and notify the client.

``ready_to_deliver`` / ``delivery_failed`` / ``delivered`` → ``delivering``
→ ``delivered`` / ``delivery_failed``.

Steps under the lock:

1. Resolve the LucidLink source folder. Anything but ``source_ready``
   records a ``blocked_source_missing`` dropbox result and fails the run.
2. Copy to Dropbox and obtain a stable share link.
3. When no domain errored, send the delivery email. Email failures are
   recorded on the run (``email``) but do not fail the delivery.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

from studio_jobs.queue.models import JOB_TYPE_PROJECT_DELIVERY
from studio_jobs.workflows.aggregate import DELIVERY_DOMAINS, DOMAIN_DROPBOX, DOMAIN_LUCIDLINK, RunVerdict, aggregate
from studio_jobs.workflows.guards import DELIVERY_GUARD, STATUS_DELIVERED, STATUS_DELIVERY_FAILED
from studio_jobs.workflows.models import (
    DeliveryEmailAudit,
    DeliveryRunResult,
    DeliverySourceResult,
    DeliveryTargetResult,
    DomainResult,
)
from studio_jobs.workflows.payloads import DeliveryPayload
from studio_jobs.workflows.projects import ProjectRecord
from studio_jobs.workflows.protocols import DeliveryExecutor, ProjectTokens
from studio_jobs.workflows.runner import ProjectWorkflow, WorkflowServices, failed_domain_result

ROOT_STATE_SOURCE_READY = "source_ready"
ROOT_STATE_BLOCKED_SOURCE_MISSING = "blocked_source_missing"
SOURCE_NOT_READY_NOTE = "LucidLink source not ready."


def failed_email_audit(recipients: list[str], error: str) -> DeliveryEmailAudit:
    return DeliveryEmailAudit(status="failed", to=list(recipients), error=error)


class ProjectDeliveryWorkflow(ProjectWorkflow[DeliveryPayload, DeliveryRunResult]):
    job_type_key = JOB_TYPE_PROJECT_DELIVERY
    workflow_word = "delivery"
    guard = DELIVERY_GUARD
    blocked_domains = DELIVERY_DOMAINS

    def __init__(self, services: WorkflowServices, executor: DeliveryExecutor) -> None:
        super().__init__(services)
        self._executor = executor

    def build_run(
        self,
        job_id: str,
        payload: DeliveryPayload,
        started_at: datetime,
        domains: list[DomainResult],
        verdict: RunVerdict,
        **fields: Any,
    ) -> DeliveryRunResult:
        return DeliveryRunResult(
            job_id=job_id,
            project_id=payload.project_id,
            editor_initials=payload.editor_initials,
            started_at_utc=started_at,
            test_mode=payload.test_mode,
            allow_test_cleanup=payload.allow_test_cleanup,
            allow_non_real=payload.allow_non_real,
            force=payload.force,
            domains=domains,
            has_errors=verdict.has_errors,
            last_error=verdict.last_error,
            **fields,
        )

    async def execute(
        self,
        project: ProjectRecord,
        job_id: str,
        payload: DeliveryPayload,
        started_at: datetime,
    ) -> tuple[DeliveryRunResult, str]:
        tokens = await self.load_tokens(project, payload.editor_initials)
        storage_relpath = await asyncio.to_thread(
            self._projects.get_storage_root_relpath, project.project_id, DOMAIN_LUCIDLINK
        )

        source = await self._resolve_source(payload, storage_relpath)
        files = [f.to_summary() for f in source.files]
        domains = [source.domain_result]

        if source.domain_result.root_state.lower() != ROOT_STATE_SOURCE_READY:
            domains.append(
                DomainResult(
                    domain_key=DOMAIN_DROPBOX,
                    root_state=ROOT_STATE_BLOCKED_SOURCE_MISSING,
                    notes=[SOURCE_NOT_READY_NOTE],
                )
            )
            notes = source.domain_result.notes
            verdict = RunVerdict(has_errors=True, last_error=notes[0] if notes else SOURCE_NOT_READY_NOTE)
            run = self.build_run(
                job_id, payload, started_at, domains, verdict, source_path=source.source_path, files=files
            )
            return run, STATUS_DELIVERY_FAILED

        target = await self._process_dropbox(payload, tokens, source, project)
        domains.append(target.domain_result)

        verdict = aggregate(domains, JOB_TYPE_PROJECT_DELIVERY)
        email: DeliveryEmailAudit | None = None
        if not verdict.has_errors:
            email = await self._send_email(payload, tokens, source, target)

        run = self.build_run(
            job_id,
            payload,
            started_at,
            domains,
            verdict,
            source_path=source.source_path,
            destination_path=target.destination_path,
            api_stable_path=target.api_stable_path,
            api_version_path=target.api_version_path,
            version_label=target.version_label,
            retention_until_utc=target.retention_until_utc,
            files=files,
            share_status=target.share_status,
            share_url=target.share_url,
            share_id=target.share_id,
            share_error=target.share_error,
            email=email,
        )
        return run, STATUS_DELIVERY_FAILED if verdict.has_errors else STATUS_DELIVERED

    async def _resolve_source(self, payload: DeliveryPayload, storage_relpath: str | None) -> DeliverySourceResult:
        try:
            return await self._executor.resolve_lucidlink_source(payload, storage_relpath)
        except Exception as exc:
            return DeliverySourceResult(domain_result=failed_domain_result(DOMAIN_LUCIDLINK, exc))

    async def _process_dropbox(
        self,
        payload: DeliveryPayload,
        tokens: ProjectTokens,
        source: DeliverySourceResult,
        project: ProjectRecord,
    ) -> DeliveryTargetResult:
        try:
            return await self._executor.process_dropbox(payload, tokens, source, project.metadata)
        except Exception as exc:
            return DeliveryTargetResult(domain_result=failed_domain_result(DOMAIN_DROPBOX, exc))

    async def _send_email(
        self,
        payload: DeliveryPayload,
        tokens: ProjectTokens,
        source: DeliverySourceResult,
        target: DeliveryTargetResult,
    ) -> DeliveryEmailAudit:
        try:
            return await self._executor.send_delivery_email(payload, tokens, source, target)
        except Exception as exc:
            return failed_email_audit(payload.to_emails, f"Delivery email failed: {exc}")
