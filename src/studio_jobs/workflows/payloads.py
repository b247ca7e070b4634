"""Typed job payloads for the project workflows.

Payloads arrive as camelCase JSON documents on the ``jobs`` row. Parsing
is lenient about everything except ``projectId``:

* booleans that are missing or not booleans fall back to their default;
* ``editorInitials`` / ``toEmails`` accept a list or a comma-separated
  string, entries are trimmed and de-duplicated case-insensitively
  (first occurrence wins);
* unknown keys (including the queue's own ``lastError``) are ignored.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, ClassVar

from pydantic import ValidationError as PydanticValidationError
from pydantic import field_validator, model_validator

from studio_jobs.core.errors import JobPayloadError
from studio_jobs.queue.models import (
    JOB_TYPE_PROJECT_ARCHIVE,
    JOB_TYPE_PROJECT_BOOTSTRAP,
    JOB_TYPE_PROJECT_DELIVERY,
    JOB_TYPE_PROJECT_DELIVERY_EMAIL,
    JOB_TYPE_ROOT_INTEGRITY,
)
from studio_jobs.workflows.models import CamelModel


def normalize_list(value: Any) -> list[str]:
    """Split, trim and case-insensitively de-duplicate a list-ish value."""
    if isinstance(value, str):
        raw: Iterable[Any] = [value]
    elif isinstance(value, (list, tuple)):
        raw = value
    else:
        return []

    seen: set[str] = set()
    result: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            continue
        for part in item.split(","):
            entry = part.strip()
            if entry and entry.casefold() not in seen:
                seen.add(entry.casefold())
                result.append(entry)
    return result


class ProjectJobPayload(CamelModel):
    """Fields shared by every project workflow payload."""

    job_type_key: ClassVar[str] = ""

    project_id: str
    editor_initials: list[str] = []

    @field_validator("editor_initials", mode="before")
    @classmethod
    def _normalize_initials(cls, value: Any) -> list[str]:
        return normalize_list(value)

    @model_validator(mode="before")
    @classmethod
    def _drop_non_boolean_flags(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        cleaned = dict(data)
        for name, field in cls.model_fields.items():
            if field.annotation is not bool:
                continue
            for key in (field.alias, name):
                if key in cleaned and not isinstance(cleaned[key], bool):
                    del cleaned[key]
        return cleaned

    @classmethod
    def parse(cls, payload: Mapping[str, Any]):
        """Build the typed payload.

        Raises:
            JobPayloadError: If ``projectId`` is missing or blank.
        """
        project_id = payload.get("projectId")
        if not isinstance(project_id, str) or not project_id.strip():
            raise JobPayloadError(
                f"projectId is required in {cls.job_type_key} payload.",
                field="projectId",
            )
        try:
            return cls.model_validate({**payload, "projectId": project_id.strip()})
        except PydanticValidationError as exc:
            raise JobPayloadError(f"Invalid {cls.job_type_key} payload: {exc}") from exc

    def to_payload(self) -> dict[str, Any]:
        return self.to_document()


class BootstrapPayload(ProjectJobPayload):
    job_type_key: ClassVar[str] = JOB_TYPE_PROJECT_BOOTSTRAP

    verify_domain_roots: bool = True
    create_domain_roots: bool = False
    provision_project_containers: bool = False
    allow_repair: bool = False
    force_sandbox: bool = False
    allow_non_real: bool = False
    force: bool = False
    test_mode: bool = False
    allow_test_cleanup: bool = False


class ArchivePayload(ProjectJobPayload):
    job_type_key: ClassVar[str] = JOB_TYPE_PROJECT_ARCHIVE

    test_mode: bool = False
    allow_test_cleanup: bool = False
    allow_non_real: bool = False
    force: bool = False


class DeliveryPayload(ProjectJobPayload):
    job_type_key: ClassVar[str] = JOB_TYPE_PROJECT_DELIVERY

    to_emails: list[str] = []
    reply_to_email: str | None = None
    test_mode: bool = False
    allow_test_cleanup: bool = False
    allow_non_real: bool = False
    force: bool = False
    refresh_share_link: bool = False

    @field_validator("to_emails", mode="before")
    @classmethod
    def _normalize_emails(cls, value: Any) -> list[str]:
        return normalize_list(value)


class DeliveryEmailPayload(ProjectJobPayload):
    job_type_key: ClassVar[str] = JOB_TYPE_PROJECT_DELIVERY_EMAIL

    to_emails: list[str] = []
    reply_to_email: str | None = None

    @field_validator("to_emails", mode="before")
    @classmethod
    def _normalize_emails(cls, value: Any) -> list[str]:
        return normalize_list(value)


ROOT_INTEGRITY_MODES = ("report", "repair")


class RootIntegrityPayload(CamelModel):
    """Payload of a ``domain.root_integrity`` job.

    ``mode`` is kept as given; the use case rejects anything but
    ``report``/``repair`` with a recorded result rather than a parse error.
    """

    job_type_key: ClassVar[str] = JOB_TYPE_ROOT_INTEGRITY

    provider_key: str
    root_key: str = "root"
    mode: str = "report"
    dry_run: bool = True
    quarantine_relpath: str | None = None
    max_items: int | None = None
    max_bytes: int | None = None
    allowed_extras: list[str] = []
    allowed_root_files: list[str] = []

    @field_validator("allowed_extras", "allowed_root_files", mode="before")
    @classmethod
    def _normalize_names(cls, value: Any) -> list[str]:
        return normalize_list(value)

    @property
    def entity_key(self) -> str:
        return f"{self.provider_key}:{self.root_key}"

    @classmethod
    def parse(cls, payload: Mapping[str, Any]) -> RootIntegrityPayload:
        """Build the typed payload; blanks fall back to defaults.

        Raises:
            JobPayloadError: If ``providerKey`` is missing or blank.
        """
        provider_key = payload.get("providerKey")
        if not isinstance(provider_key, str) or not provider_key.strip():
            raise JobPayloadError(f"providerKey is required in {cls.job_type_key} payload.", field="providerKey")

        document: dict[str, Any] = {"providerKey": provider_key.strip()}
        for key in ("rootKey", "mode", "quarantineRelpath"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                document[key] = value.strip()
        if isinstance(payload.get("dryRun"), bool):
            document["dryRun"] = payload["dryRun"]
        for key in ("maxItems", "maxBytes"):
            value = payload.get(key)
            if isinstance(value, int) and not isinstance(value, bool):
                document[key] = value
        for key in ("allowedExtras", "allowedRootFiles"):
            if key in payload:
                document[key] = payload[key]

        try:
            return cls.model_validate(document)
        except PydanticValidationError as exc:
            raise JobPayloadError(f"Invalid {cls.job_type_key} payload: {exc}") from exc

    def to_payload(self) -> dict[str, Any]:
        return self.to_document()
