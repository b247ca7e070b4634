"""Project bootstrap: provision storage domains for a new project.

``ready_to_provision`` → ``provisioning`` → ``active`` / ``provision_failed``.

Each domain is provisioned in turn by the injected
:class:`~studio_jobs.workflows.protocols.BootstrapProvisioner`. Storage-root
candidates it returns are upserted afterwards; a failed upsert downgrades
that domain to ``storage_root_failed`` and the verdict is recomputed.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

from studio_jobs.queue.models import JOB_TYPE_PROJECT_BOOTSTRAP
from studio_jobs.workflows.aggregate import BOOTSTRAP_DOMAINS, RunVerdict, aggregate_bootstrap
from studio_jobs.workflows.guards import BOOTSTRAP_GUARD, STATUS_ACTIVE, STATUS_PROVISION_FAILED
from studio_jobs.workflows.models import BootstrapRunResult, DomainResult
from studio_jobs.workflows.payloads import BootstrapPayload
from studio_jobs.workflows.projects import ProjectRecord
from studio_jobs.workflows.protocols import (
    BootstrapProvisioner,
    DomainProvisioning,
    ProjectTokens,
    StorageRootCandidate,
)
from studio_jobs.workflows.runner import ProjectWorkflow, WorkflowServices, failed_domain_result

ROOT_STATE_STORAGE_ROOT_FAILED = "storage_root_failed"


class ProjectBootstrapWorkflow(ProjectWorkflow[BootstrapPayload, BootstrapRunResult]):
    job_type_key = JOB_TYPE_PROJECT_BOOTSTRAP
    workflow_word = "provisioning"
    guard = BOOTSTRAP_GUARD
    blocked_domains = BOOTSTRAP_DOMAINS

    def __init__(self, services: WorkflowServices, provisioner: BootstrapProvisioner) -> None:
        super().__init__(services)
        self._provisioner = provisioner

    def build_run(
        self,
        job_id: str,
        payload: BootstrapPayload,
        started_at: datetime,
        domains: list[DomainResult],
        verdict: RunVerdict,
        **fields: Any,
    ) -> BootstrapRunResult:
        return BootstrapRunResult(
            job_id=job_id,
            project_id=payload.project_id,
            editor_initials=payload.editor_initials,
            started_at_utc=started_at,
            verify_domain_roots=payload.verify_domain_roots,
            create_domain_roots=payload.create_domain_roots,
            provision_project_containers=payload.provision_project_containers,
            allow_repair=payload.allow_repair,
            force_sandbox=payload.force_sandbox,
            allow_non_real=payload.allow_non_real,
            force=payload.force,
            test_mode=payload.test_mode,
            allow_test_cleanup=payload.allow_test_cleanup,
            domains=domains,
            has_errors=verdict.has_errors,
            last_error=verdict.last_error,
            **fields,
        )

    async def execute(
        self,
        project: ProjectRecord,
        job_id: str,
        payload: BootstrapPayload,
        started_at: datetime,
    ) -> tuple[BootstrapRunResult, str]:
        tokens = await self.load_tokens(project, payload.editor_initials)

        domains: list[DomainResult] = []
        candidates: list[StorageRootCandidate] = []
        for domain_key in BOOTSTRAP_DOMAINS:
            provisioned = await self._provision(project, tokens, payload, domain_key)
            domains.append(provisioned.result)
            if provisioned.storage_root is not None:
                candidates.append(provisioned.storage_root)

        domains = await self._apply_storage_roots(project.project_id, domains, candidates)

        verdict = aggregate_bootstrap(domains)
        run = self.build_run(job_id, payload, started_at, domains, verdict)
        return run, STATUS_PROVISION_FAILED if verdict.has_errors else STATUS_ACTIVE

    async def _provision(
        self,
        project: ProjectRecord,
        tokens: ProjectTokens,
        payload: BootstrapPayload,
        domain_key: str,
    ) -> DomainProvisioning:
        try:
            return await self._provisioner.provision_domain(project, tokens, payload, domain_key)
        except Exception as exc:
            return DomainProvisioning(result=failed_domain_result(domain_key, exc))

    async def _apply_storage_roots(
        self,
        project_id: str,
        domains: list[DomainResult],
        candidates: list[StorageRootCandidate],
    ) -> list[DomainResult]:
        by_key = {result.domain_key.lower(): index for index, result in enumerate(domains)}
        updated = list(domains)

        for candidate in candidates:
            error = await asyncio.to_thread(
                self._projects.upsert_storage_root,
                project_id,
                candidate.storage_provider_key,
                candidate.root_key,
                candidate.folder_relpath,
            )
            if not error:
                continue
            index = by_key.get(candidate.domain_key.lower())
            if index is None:
                continue
            updated[index] = updated[index].with_failure(ROOT_STATE_STORAGE_ROOT_FAILED, error)

        return updated
