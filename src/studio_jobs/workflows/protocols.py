"""Collaborator protocols implemented outside this package.

Storage providers (Dropbox, LucidLink, NAS), template provisioning, root
integrity checks and email sending are injected. Implementations return
domain results; an exception from any project-workflow call is caught by
the workflow and recorded as a ``<domain>_failed`` result.

Implementations that talk to an OAuth-backed API (Dropbox, a mail gateway)
own one :class:`studio_jobs.core.cache.TokenCache` per client instance and
call ``await self._tokens.get(self._refresh_access_token)`` before each
request; on a 401 they call ``self._tokens.invalidate()`` and retry once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from studio_jobs.workflows.models import (
    DeliveryEmailAudit,
    DeliveryFileSummary,
    DeliverySourceResult,
    DeliveryTargetResult,
    DomainResult,
    RootIntegrityContract,
    RootIntegrityResult,
)
from studio_jobs.workflows.payloads import ArchivePayload, BootstrapPayload, DeliveryPayload, RootIntegrityPayload
from studio_jobs.workflows.projects import ProjectRecord


@dataclass(frozen=True)
class ProjectTokens:
    """Naming inputs for folder and email templates."""

    project_code: str | None
    project_name: str | None
    client_name: str | None
    editor_initials: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class StorageRootCandidate:
    domain_key: str
    storage_provider_key: str
    root_key: str
    folder_relpath: str


@dataclass(frozen=True)
class DomainProvisioning:
    result: DomainResult
    storage_root: StorageRootCandidate | None = None


@dataclass(frozen=True)
class DeliveryEmailRequest:
    tokens: ProjectTokens
    share_url: str
    version_label: str | None
    retention_until_utc: datetime | str | None
    files: list[DeliveryFileSummary]
    recipients: list[str]
    reply_to: str | None = None


@runtime_checkable
class BootstrapProvisioner(Protocol):
    async def provision_domain(
        self,
        project: ProjectRecord,
        tokens: ProjectTokens,
        payload: BootstrapPayload,
        domain_key: str,
    ) -> DomainProvisioning: ...


@runtime_checkable
class ArchiveExecutor(Protocol):
    async def resolve_project_folder_name(self, tokens: ProjectTokens) -> str: ...

    async def process_dropbox(self, payload: ArchivePayload, folder_name: str) -> DomainResult: ...

    async def process_lucidlink(self, payload: ArchivePayload, folder_name: str) -> DomainResult: ...

    async def process_nas(
        self,
        payload: ArchivePayload,
        folder_name: str,
        lucidlink_result: DomainResult,
        tokens: ProjectTokens,
    ) -> DomainResult: ...

    async def finalize_dropbox(
        self,
        dropbox_result: DomainResult,
        payload: ArchivePayload,
        folder_name: str,
    ) -> DomainResult: ...


@runtime_checkable
class DeliveryExecutor(Protocol):
    async def resolve_lucidlink_source(
        self,
        payload: DeliveryPayload,
        storage_relpath: str | None,
    ) -> DeliverySourceResult: ...

    async def process_dropbox(
        self,
        payload: DeliveryPayload,
        tokens: ProjectTokens,
        source: DeliverySourceResult,
        project_metadata: dict[str, Any],
    ) -> DeliveryTargetResult: ...

    async def send_delivery_email(
        self,
        payload: DeliveryPayload,
        tokens: ProjectTokens,
        source: DeliverySourceResult,
        target: DeliveryTargetResult,
    ) -> DeliveryEmailAudit: ...


@runtime_checkable
class EmailGateway(Protocol):
    async def send_delivery_ready(self, request: DeliveryEmailRequest) -> DeliveryEmailAudit: ...


@runtime_checkable
class RootIntegrityExecutor(Protocol):
    """Scans a storage root against its contract; repairs when ``mode="repair"``.

    Called with the root's storage-mutation lease held. Problems found in
    the root go into ``RootIntegrityResult.errors``; raising means the check
    itself could not run.
    """

    async def execute(
        self,
        payload: RootIntegrityPayload,
        contract: RootIntegrityContract,
        job_id: str,
    ) -> RootIntegrityResult: ...
