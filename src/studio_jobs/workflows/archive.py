"""Project archive: move a finished project to long-term storage.

``to_archive`` / ``archive_failed`` → ``archiving`` → ``archived`` /
``archive_failed``.

Domains run in a fixed order: dropbox, lucidlink, nas (nas consumes the
lucidlink result). Once nas holds a verified copy, a dropbox folder that
was staged (``ready_to_archive``) or already archived is finalized.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from studio_jobs.queue.models import JOB_TYPE_PROJECT_ARCHIVE
from studio_jobs.workflows.aggregate import (
    ARCHIVE_DOMAINS,
    DOMAIN_DROPBOX,
    DOMAIN_LUCIDLINK,
    DOMAIN_NAS,
    RunVerdict,
    aggregate,
)
from studio_jobs.workflows.guards import ARCHIVE_GUARD, STATUS_ARCHIVE_FAILED, STATUS_ARCHIVED
from studio_jobs.workflows.models import ArchiveRunResult, DomainResult
from studio_jobs.workflows.payloads import ArchivePayload
from studio_jobs.workflows.projects import ProjectRecord
from studio_jobs.workflows.protocols import ArchiveExecutor, ProjectTokens
from studio_jobs.workflows.runner import ProjectWorkflow, WorkflowServices, failed_domain_result, run_domain

NAS_SUCCESS_STATES = frozenset(
    {"archived", "already_archived", "archive_verified", "archive_repaired", "source_found"}
)
DROPBOX_FINALIZE_STATES = frozenset({"ready_to_archive", "already_archived"})


class ProjectArchiveWorkflow(ProjectWorkflow[ArchivePayload, ArchiveRunResult]):
    job_type_key = JOB_TYPE_PROJECT_ARCHIVE
    workflow_word = "archive"
    guard = ARCHIVE_GUARD
    blocked_domains = ARCHIVE_DOMAINS

    def __init__(self, services: WorkflowServices, executor: ArchiveExecutor) -> None:
        super().__init__(services)
        self._executor = executor

    def build_run(
        self,
        job_id: str,
        payload: ArchivePayload,
        started_at: datetime,
        domains: list[DomainResult],
        verdict: RunVerdict,
        **fields: Any,
    ) -> ArchiveRunResult:
        return ArchiveRunResult(
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
        payload: ArchivePayload,
        started_at: datetime,
    ) -> tuple[ArchiveRunResult, str]:
        tokens = await self.load_tokens(project, payload.editor_initials)

        try:
            folder_name = await self._executor.resolve_project_folder_name(tokens)
        except Exception as exc:
            # Without a folder name no domain can run.
            results = [failed_domain_result(domain, exc) for domain in ARCHIVE_DOMAINS]
        else:
            results = await self._process_domains(payload, folder_name, tokens)

        verdict = aggregate(results, JOB_TYPE_PROJECT_ARCHIVE)
        run = self.build_run(job_id, payload, started_at, results, verdict)
        return run, STATUS_ARCHIVE_FAILED if verdict.has_errors else STATUS_ARCHIVED

    async def _process_domains(
        self,
        payload: ArchivePayload,
        folder_name: str,
        tokens: ProjectTokens,
    ) -> list[DomainResult]:
        executor = self._executor
        dropbox = await run_domain(DOMAIN_DROPBOX, executor.process_dropbox(payload, folder_name))
        lucidlink = await run_domain(DOMAIN_LUCIDLINK, executor.process_lucidlink(payload, folder_name))
        nas = await run_domain(DOMAIN_NAS, executor.process_nas(payload, folder_name, lucidlink, tokens))

        if nas.root_state in NAS_SUCCESS_STATES and dropbox.root_state in DROPBOX_FINALIZE_STATES:
            dropbox = await run_domain(DOMAIN_DROPBOX, executor.finalize_dropbox(dropbox, payload, folder_name))

        return [dropbox, lucidlink, nas]
