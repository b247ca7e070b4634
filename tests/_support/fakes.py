"""
Fake collaborators for workflow tests.

Each fake implements one protocol from ``studio_jobs.workflows.protocols``
and records its calls. A configured ``Exception`` instance is raised
instead of returned, so tests can drive the ``<domain>_failed`` paths.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

from studio_jobs.workflows.models import (
    DeliveryEmailAudit,
    DeliveryFile,
    DeliverySourceResult,
    DeliveryTargetResult,
    DomainResult,
    ProvisioningSummary,
    RootIntegrityResult,
)
from studio_jobs.workflows.protocols import DeliveryEmailRequest, DomainProvisioning, StorageRootCandidate


def _resolve(value: Any) -> Any:
    if isinstance(value, BaseException):
        raise value
    return value


def provisioned(
    domain_key: str,
    *,
    success: bool = True,
    root_state: str = "container_created",
    errors: list[str] | None = None,
    relpath: str | None = None,
) -> DomainProvisioning:
    result = DomainResult(
        domain_key=domain_key,
        root_path=f"/{domain_key}/Clients/Northwind",
        root_state=root_state,
        provisioning=ProvisioningSummary(mode="create", success=success, errors=errors or []),
    )
    root = None
    if relpath:
        root = StorageRootCandidate(
            domain_key=domain_key,
            storage_provider_key=domain_key,
            root_key="main",
            folder_relpath=relpath,
        )
    return DomainProvisioning(result=result, storage_root=root)


class FakeProvisioner:
    def __init__(self, results: dict[str, Any] | None = None) -> None:
        self.results = results or {}
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def provision_domain(self, project, tokens, payload, domain_key):
        self.calls.append(domain_key)
        if self.gate is not None:
            await self.gate.wait()
        return _resolve(self.results.get(domain_key) or provisioned(domain_key))


class FakeArchiveExecutor:
    def __init__(
        self,
        states: dict[str, Any] | None = None,
        *,
        folder_name: Any = "NW-0042_Spring_Campaign",
        finalized_state: str = "archived",
    ) -> None:
        self.states = {"dropbox": "ready_to_archive", "lucidlink": "archived", "nas": "archived", **(states or {})}
        self.folder_name = folder_name
        self.finalized_state = finalized_state
        self.calls: list[str] = []

    def _result(self, domain: str) -> DomainResult:
        value = _resolve(self.states[domain])
        if isinstance(value, DomainResult):
            return value
        return DomainResult(domain_key=domain, root_state=value, notes=[f"{domain}: {value}"])

    async def resolve_project_folder_name(self, tokens):
        self.calls.append("folder")
        return _resolve(self.folder_name)

    async def process_dropbox(self, payload, folder_name):
        self.calls.append("dropbox")
        return self._result("dropbox")

    async def process_lucidlink(self, payload, folder_name):
        self.calls.append("lucidlink")
        return self._result("lucidlink")

    async def process_nas(self, payload, folder_name, lucidlink_result, tokens):
        self.calls.append("nas")
        return self._result("nas")

    async def finalize_dropbox(self, dropbox_result, payload, folder_name):
        self.calls.append("finalize_dropbox")
        return DomainResult(domain_key="dropbox", root_state=self.finalized_state)


def delivery_source(root_state: str = "source_ready", notes: list[str] | None = None) -> DeliverySourceResult:
    return DeliverySourceResult(
        source_path="/lucidlink/Clients/Northwind/NW-0042/Deliverables",
        files=[
            DeliveryFile(
                source_path="/lucidlink/Clients/Northwind/NW-0042/Deliverables/spot_30s.mov",
                relative_path="spot_30s.mov",
                size_bytes=1048576,
                last_write_time_utc=datetime(2026, 3, 1, 18, 0, tzinfo=UTC),
            )
        ],
        domain_result=DomainResult(domain_key="lucidlink", root_state=root_state, notes=notes or []),
    )


def delivery_target(root_state: str = "delivered", **overrides: Any) -> DeliveryTargetResult:
    fields: dict[str, Any] = {
        "destination_path": "/Dropbox/Deliveries/NW-0042/current",
        "api_stable_path": "/Deliveries/NW-0042/current",
        "api_version_path": "/Deliveries/NW-0042/v003",
        "version_label": "v003",
        "retention_until_utc": datetime(2026, 4, 1, tzinfo=UTC),
        "share_status": "created",
        "share_url": "https://www.dropbox.com/s/abc/current",
        "share_id": "id:share-1",
        "domain_result": DomainResult(domain_key="dropbox", root_state=root_state),
    }
    fields.update(overrides)
    return DeliveryTargetResult(**fields)


def sent_audit(recipients: list[str]) -> DeliveryEmailAudit:
    return DeliveryEmailAudit(
        status="sent",
        from_address="deliveries@studio.example",
        to=list(recipients),
        subject="Your delivery is ready",
        sent_at_utc=datetime(2026, 3, 2, 9, 5, tzinfo=UTC),
        provider_message_id="msg-1",
    )


class FakeDeliveryExecutor:
    def __init__(self, *, source: Any = None, target: Any = None, email: Any = None) -> None:
        self.source = source if source is not None else delivery_source()
        self.target = target if target is not None else delivery_target()
        self.email = email
        self.calls: list[str] = []
        self.storage_relpath: str | None = None

    async def resolve_lucidlink_source(self, payload, storage_relpath):
        self.calls.append("source")
        self.storage_relpath = storage_relpath
        return _resolve(self.source)

    async def process_dropbox(self, payload, tokens, source, project_metadata):
        self.calls.append("dropbox")
        return _resolve(self.target)

    async def send_delivery_email(self, payload, tokens, source, target):
        self.calls.append("email")
        if self.email is None:
            return sent_audit(payload.to_emails)
        return _resolve(self.email)


class FakeEmailGateway:
    def __init__(self, result: Any = None) -> None:
        self.result = result
        self.requests: list[DeliveryEmailRequest] = []

    async def send_delivery_ready(self, request: DeliveryEmailRequest) -> DeliveryEmailAudit:
        self.requests.append(request)
        if self.result is None:
            return sent_audit(request.recipients)
        return _resolve(self.result)


class FakeRootIntegrityExecutor:
    """Returns a clean report (plus ``errors``) or raises ``exception``.

    ``on_execute`` runs inside the call, while the root lease is held.
    """

    def __init__(self, *, errors: list[str] | None = None, exception: BaseException | None = None) -> None:
        self.errors = errors or []
        self.exception = exception
        self.on_execute = None
        self.calls: list[tuple[str, str, str]] = []

    async def execute(self, payload, contract, job_id):
        self.calls.append((payload.provider_key, contract.contract_key, job_id))
        if self.on_execute is not None:
            self.on_execute()
        if self.exception is not None:
            raise self.exception
        now = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
        return RootIntegrityResult(
            provider_key=payload.provider_key,
            root_key=payload.root_key,
            root_path=f"/{payload.provider_key}/{payload.root_key}",
            mode=payload.mode,
            dry_run=payload.dry_run,
            started_at=now,
            finished_at=now,
            missing_required=["01_Clients"] if self.errors else [],
            errors=list(self.errors),
        )
