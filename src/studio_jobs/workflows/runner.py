"""Shared flow for guarded, locked, multi-domain project workflows.

Every project workflow runs the same steps::

    validate ─▶ data-profile guard ─▶ status guard ─▶ lock
        │              │ blocked           │ blocked     │ busy
        │              ▼                   ▼             ▼
        │        append blocked run (status unchanged)   WorkflowLockUnavailableError
        ▼
    status = in-progress ─▶ execute domains ─▶ aggregate ─▶ append run ─▶ final status

Subclasses supply the guard, the blocked-domain set, the run model and
:meth:`ProjectWorkflow.execute`. If execution does not complete (an
unexpected error or cancellation) nothing is appended and the project's
status is put back to what it was before the run.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Generic, TypeVar

from studio_jobs.core.errors import ProjectNotFoundError, ValidationError, WorkflowLockUnavailableError
from studio_jobs.core.logging import get_logger
from studio_jobs.core.timestamps import Clock, utc_now
from studio_jobs.workflows.aggregate import RunVerdict, build_blocked_results
from studio_jobs.workflows.guards import ROOT_STATE_BLOCKED_NON_REAL, StatusGuard, check_data_profile
from studio_jobs.workflows.history import RunHistoryAppender
from studio_jobs.workflows.lock import KIND_STORAGE_MUTATION, WorkflowLock, project_scope
from studio_jobs.workflows.models import DomainResult, RunResult
from studio_jobs.workflows.payloads import ProjectJobPayload
from studio_jobs.workflows.projects import ProjectRecord, ProjectStore
from studio_jobs.workflows.protocols import ProjectTokens
from studio_jobs.workflows.root_integrity import RootContractStore

logger = get_logger(__name__)

P = TypeVar("P", bound=ProjectJobPayload)
R = TypeVar("R", bound=RunResult)


@dataclass
class WorkflowServices:
    """Persistence collaborators shared by the workflows."""

    projects: ProjectStore
    history: RunHistoryAppender
    lock: WorkflowLock
    contracts: RootContractStore
    clock: Clock = utc_now


@dataclass(frozen=True)
class WorkflowOutcome(Generic[R]):
    """A recorded run. ``blocked`` means a guard refused to start it."""

    run: R
    final_status: str | None
    blocked: bool = False


def failed_domain_result(domain_key: str, exc: BaseException) -> DomainResult:
    logger.warning("domain_executor_failed", domain_key=domain_key, error=str(exc), error_type=type(exc).__name__)
    return DomainResult(
        domain_key=domain_key,
        root_state=f"{domain_key}_failed",
        notes=[str(exc) or type(exc).__name__],
    )


async def run_domain(domain_key: str, step: Awaitable[DomainResult]) -> DomainResult:
    """Await a domain executor, turning its exception into ``<domain>_failed``."""
    try:
        return await step
    except Exception as exc:
        return failed_domain_result(domain_key, exc)


class ProjectWorkflow(ABC, Generic[P, R]):
    """Base class for bootstrap, archive and delivery."""

    job_type_key: ClassVar[str]
    workflow_word: ClassVar[str]
    guard: ClassVar[StatusGuard]
    blocked_domains: ClassVar[Sequence[str]]

    def __init__(self, services: WorkflowServices) -> None:
        self._services = services
        self._projects = services.projects
        self._history = services.history
        self._lock = services.lock
        self._clock = services.clock

    # ------------------------------------------------------------------ #
    # Subclass hooks
    # ------------------------------------------------------------------ #

    @abstractmethod
    def build_run(
        self,
        job_id: str,
        payload: P,
        started_at: datetime,
        domains: list[DomainResult],
        verdict: RunVerdict,
        **fields: Any,
    ) -> R:
        """Assemble the run model for this workflow."""

    @abstractmethod
    async def execute(self, project: ProjectRecord, job_id: str, payload: P, started_at: datetime) -> tuple[R, str]:
        """Run the domain executors under the lock. Returns ``(run, final_status)``."""

    # ------------------------------------------------------------------ #
    # Flow
    # ------------------------------------------------------------------ #

    async def run(self, job_id: str, payload: P) -> WorkflowOutcome[R]:
        if not job_id or not job_id.strip():
            raise ValidationError("JobId is required.", field="job_id")

        project = await asyncio.to_thread(self._projects.get_project, payload.project_id)
        if project is None:
            raise ProjectNotFoundError(payload.project_id)

        started_at = self._clock()
        log = logger.bind(job_type_key=self.job_type_key, project_id=project.project_id)

        profile = check_data_profile(project.data_profile, payload.allow_non_real, self.workflow_word)
        if not profile.ok:
            log.info("workflow_blocked", root_state=ROOT_STATE_BLOCKED_NON_REAL, reason=profile.error)
            return await self._record_blocked(project, job_id, payload, started_at, ROOT_STATE_BLOCKED_NON_REAL, profile.error)

        decision = self.guard.validate_start(project.status_key, payload.force)
        if not decision.ok:
            root_state = self.guard.blocked_root_state(decision)
            log.info("workflow_blocked", root_state=root_state, reason=decision.error)
            return await self._record_blocked(project, job_id, payload, started_at, root_state, decision.error)

        scope_id = project_scope(project.project_id)
        lease = await self._lock.try_acquire(scope_id, KIND_STORAGE_MUTATION, job_id)
        if lease is None:
            raise WorkflowLockUnavailableError(scope_id, KIND_STORAGE_MUTATION)

        async with lease:
            await asyncio.to_thread(self._projects.update_status, project.project_id, self.guard.in_progress)
            log.info("workflow_started", status_key=self.guard.in_progress, force=payload.force)

            completed = False
            try:
                run, final_status = await self.execute(project, job_id, payload, started_at)
                completed = True
            finally:
                if not completed:
                    log.warning("workflow_aborted", restored_status=project.status_key)
                    await asyncio.to_thread(self._projects.update_status, project.project_id, project.status_key)

            await asyncio.to_thread(self._history.append_run, project.project_id, project.metadata, run)
            await asyncio.to_thread(self._projects.update_status, project.project_id, final_status)

        log.info(
            "workflow_completed",
            final_status=final_status,
            has_errors=run.has_errors,
            domains=len(run.domains),
            last_error=run.last_error,
        )
        return WorkflowOutcome(run=run, final_status=final_status)

    async def _record_blocked(
        self,
        project: ProjectRecord,
        job_id: str,
        payload: P,
        started_at: datetime,
        root_state: str,
        note: str | None,
    ) -> WorkflowOutcome[R]:
        note = note or f"Project status not eligible for {self.workflow_word}."
        domains = build_blocked_results(self.blocked_domains, root_state, note)
        run = self.build_run(job_id, payload, started_at, domains, RunVerdict(has_errors=True, last_error=note))
        await asyncio.to_thread(self._history.append_run, project.project_id, project.metadata, run)
        return WorkflowOutcome(run=run, final_status=None, blocked=True)

    async def load_tokens(self, project: ProjectRecord, editor_initials: list[str]) -> ProjectTokens:
        client = await asyncio.to_thread(self._projects.get_client, project.client_id)
        return ProjectTokens(
            project_code=project.project_code,
            project_name=project.name,
            client_name=client.display_name if client else None,
            editor_initials=list(editor_initials),
        )
