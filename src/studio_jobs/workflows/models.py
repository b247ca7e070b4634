"""Run result models for the project workflows.

Pydantic v2 models serialized camelCase into the project ``metadata``
document. A run is a list of per-domain results plus the aggregate
``has_errors`` / ``last_error`` verdict; each run model also knows which
fields it contributes to its namespace's ``current`` object.

Key Concepts:
    DomainResult: Outcome for one storage domain (dropbox, lucidlink, nas).
        ``root_state`` drives error classification.
    ProvisioningSummary: Template-provisioning outcome attached to a
        domain. Bootstrap success is ``provisioning.success``.
    RunResult: Base run. Subclasses add workflow-specific flags and
        ``current`` fields.

Tags:
    studio-jobs, workflows, pydantic, run-history
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from studio_jobs.core.timestamps import to_iso8601


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


# ── Domain results ───────────────────────────────────────────────────────


class ProvisioningSummary(CamelModel):
    mode: str = ""
    template_key: str = ""
    target_root: str = ""
    manifest_path: str = ""
    success: bool = False
    missing_required: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class DomainResult(CamelModel):
    """Outcome for one storage domain of a run.

    ``provisioning`` is the domain's main provisioning summary (project
    container for bootstrap, archive target for archive, delivery container
    for delivery). ``domain_root_provisioning`` only appears on bootstrap.
    ``details`` carries executor-specific records (archive actions,
    deliverables) that the aggregator does not interpret.
    """

    domain_key: str
    root_path: str = ""
    root_state: str
    notes: list[str] = Field(default_factory=list)
    provisioning: ProvisioningSummary | None = None
    domain_root_provisioning: ProvisioningSummary | None = None
    details: dict[str, Any] = Field(default_factory=dict)

    def summary_errors(self) -> list[str]:
        errors: list[str] = []
        if self.domain_root_provisioning is not None:
            errors.extend(self.domain_root_provisioning.errors)
        if self.provisioning is not None:
            errors.extend(self.provisioning.errors)
        return errors

    def with_failure(self, root_state: str, note: str) -> DomainResult:
        return self.model_copy(update={"root_state": root_state, "notes": [*self.notes, note]})


# ── Runs ─────────────────────────────────────────────────────────────────


class RunResult(CamelModel):
    """Common shape of a workflow run appended to ``<namespace>.runs``."""

    namespace: ClassVar[str] = ""

    job_id: str
    project_id: str
    editor_initials: list[str] = Field(default_factory=list)
    started_at_utc: datetime
    test_mode: bool = False
    allow_test_cleanup: bool = False
    allow_non_real: bool = False
    force: bool = False
    domains: list[DomainResult] = Field(default_factory=list)
    has_errors: bool = False
    last_error: str | None = None

    def current_fields(self, current: dict[str, Any], now: datetime) -> dict[str, Any]:
        """Fields this run writes into ``<namespace>.current``.

        Only non-empty values are returned; the appender merges them over
        the existing object field by field.
        """
        fields: dict[str, Any] = {
            "lastJobId": self.job_id,
            "lastRunStartedAtUtc": to_iso8601(self.started_at_utc),
        }
        if self.last_error:
            fields["lastError"] = self.last_error
        return fields


class BootstrapRunResult(RunResult):
    namespace: ClassVar[str] = "provisioning"

    verify_domain_roots: bool = True
    create_domain_roots: bool = False
    provision_project_containers: bool = False
    allow_repair: bool = False
    force_sandbox: bool = False


class ArchiveRunResult(RunResult):
    namespace: ClassVar[str] = "archiving"


# ── Delivery ─────────────────────────────────────────────────────────────


class DeliveryFile(CamelModel):
    source_path: str
    relative_path: str
    size_bytes: int = 0
    last_write_time_utc: datetime | None = None

    def to_summary(self) -> DeliveryFileSummary:
        return DeliveryFileSummary(
            relative_path=self.relative_path,
            size_bytes=self.size_bytes,
            last_write_time_utc=self.last_write_time_utc,
        )


class DeliveryFileSummary(CamelModel):
    relative_path: str
    size_bytes: int = 0
    last_write_time_utc: datetime | None = None


class DeliveryEmailAudit(CamelModel):
    """What was (or failed to be) sent, recorded under ``lastEmail``."""

    status: str
    provider: str = "email"
    from_address: str = ""
    to: list[str] = Field(default_factory=list)
    subject: str = ""
    sent_at_utc: datetime | None = None
    provider_message_id: str | None = None
    error: str | None = None
    template_version: str = ""
    reply_to: str | None = None


class DeliverySourceResult(CamelModel):
    source_path: str | None = None
    files: list[DeliveryFile] = Field(default_factory=list)
    domain_result: DomainResult


class DeliveryTargetResult(CamelModel):
    destination_path: str | None = None
    api_stable_path: str | None = None
    api_version_path: str | None = None
    version_label: str | None = None
    retention_until_utc: datetime | None = None
    domain_result: DomainResult
    share_status: str | None = None
    share_url: str | None = None
    share_id: str | None = None
    share_error: str | None = None


SHARE_PROVIDER_DROPBOX = "dropbox"
_VERIFIED_SHARE_STATUSES = frozenset({"created", "reused"})


class DeliveryRunResult(RunResult):
    namespace: ClassVar[str] = "delivery"

    source_path: str | None = None
    destination_path: str | None = None
    api_stable_path: str | None = None
    api_version_path: str | None = None
    version_label: str | None = None
    retention_until_utc: datetime | None = None
    files: list[DeliveryFileSummary] = Field(default_factory=list)
    share_status: str | None = None
    share_url: str | None = None
    share_id: str | None = None
    share_error: str | None = None
    email: DeliveryEmailAudit | None = None

    def current_fields(self, current: dict[str, Any], now: datetime) -> dict[str, Any]:
        fields = super().current_fields(current, now)

        for source, target in (
            (self.destination_path, "stablePath"),
            (self.api_stable_path, "apiStablePath"),
            (self.api_version_path, "apiVersionPath"),
            (self.version_label, "currentVersion"),
            (to_iso8601(self.retention_until_utc), "retentionUntilUtc"),
            (self.share_status, "shareStatus"),
            (self.share_error, "shareError"),
        ):
            if source:
                fields[target] = source

        share_url = self.share_url or current.get("stableShareUrl")
        if share_url:
            fields["stableShareUrl"] = share_url
            fields["shareProviderKey"] = SHARE_PROVIDER_DROPBOX

        share_id = self.share_id or current.get("stableShareId")
        if share_id:
            fields["stableShareId"] = share_id

        if self.share_status in _VERIFIED_SHARE_STATUSES:
            fields["shareError"] = None
            fields["lastShareVerifiedAtUtc"] = to_iso8601(now)

        if self.email is not None:
            fields["lastEmail"] = self.email.to_document()

        return fields


class DeliveryCurrent(CamelModel):
    """Read view over ``delivery.current`` used by the delivery email job."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    stable_path: str | None = None
    api_stable_path: str | None = None
    stable_share_url: str | None = None
    share_url: str | None = None
    current_version: str | None = None
    retention_until_utc: str | None = None

    @property
    def resolved_share_url(self) -> str | None:
        return self.stable_share_url or self.share_url


# ── Root integrity ───────────────────────────────────────────────────────


class RootIntegrityContract(CamelModel):
    """Expected layout of one storage root (a ``storage_root_contracts`` row)."""

    provider_key: str
    root_key: str
    contract_key: str
    required_folders: list[str] = Field(default_factory=list)
    optional_folders: list[str] = Field(default_factory=list)
    allowed_extras: list[str] = Field(default_factory=list)
    allowed_root_files: list[str] = Field(default_factory=list)
    quarantine_relpath: str | None = None
    max_items: int | None = None
    max_bytes: int | None = None
    is_active: bool = True


class RootIntegrityEntry(CamelModel):
    name: str
    path: str
    kind: str
    size_bytes: int | None = None
    item_count: int | None = None
    note: str | None = None


class RootIntegrityMove(CamelModel):
    """A planned quarantine move; ``blocked_reason`` set means it will not happen."""

    name: str
    path: str
    kind: str
    size_bytes: int | None = None
    item_count: int | None = None
    blocked_reason: str | None = None

    @property
    def will_move(self) -> bool:
        return not (self.blocked_reason or "").strip()


class RootIntegrityResult(CamelModel):
    """Report (and, in repair mode, actions) for one storage root check."""

    provider_key: str
    root_key: str
    root_path: str = ""
    mode: str
    dry_run: bool = True
    started_at: datetime
    finished_at: datetime
    missing_required: list[str] = Field(default_factory=list)
    missing_optional: list[str] = Field(default_factory=list)
    unknown_entries: list[RootIntegrityEntry] = Field(default_factory=list)
    root_files: list[RootIntegrityEntry] = Field(default_factory=list)
    quarantine_plan: list[RootIntegrityMove] = Field(default_factory=list)
    guardrail_blocks: list[RootIntegrityMove] = Field(default_factory=list)
    actions: list[dict[str, Any]] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)
