"""Table definitions: job queue, projects, storage roots, root contracts, workflow locks.

Tags:
    studio-jobs, orm, sqlalchemy, tables

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

import datetime

from sqlalchemy import JSON, BigInteger, ForeignKey, Index, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from studio_jobs.core.orm.base import StudioBase, UTCDateTime


class JobTable(StudioBase):
    __tablename__ = "jobs"

    job_id: Mapped[str] = mapped_column(Text, primary_key=True)
    job_type_key: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status_key: Mapped[str] = mapped_column(Text, nullable=False, default="queued")
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    run_after: Mapped[datetime.datetime] = mapped_column(UTCDateTime, nullable=False)
    locked_by: Mapped[str | None] = mapped_column(Text)
    locked_until: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)
    started_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)
    finished_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)
    last_error: Mapped[str | None] = mapped_column(Text)
    entity_type_key: Mapped[str | None] = mapped_column(Text)
    entity_key: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_jobs_claim", "status_key", "run_after", "created_at"),
        Index("ix_jobs_entity", "job_type_key", "entity_type_key", "entity_key"),
    )


class ClientTable(StudioBase):
    __tablename__ = "clients"

    client_id: Mapped[str] = mapped_column(Text, primary_key=True)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_emails: Mapped[list] = mapped_column(JSON, nullable=False, default=list)


class ProjectTable(StudioBase):
    __tablename__ = "projects"

    project_id: Mapped[str] = mapped_column(Text, primary_key=True)
    client_id: Mapped[str | None] = mapped_column(Text, ForeignKey("clients.client_id"))
    project_code: Mapped[str] = mapped_column(Text, nullable=False, default="")
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status_key: Mapped[str] = mapped_column(Text, nullable=False)
    data_profile: Mapped[str] = mapped_column(Text, nullable=False, default="real")
    # ``metadata`` is reserved on declarative classes
    metadata_json: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    updated_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)


class ProjectStorageRootTable(StudioBase):
    __tablename__ = "project_storage_roots"

    project_storage_root_id: Mapped[str] = mapped_column(Text, primary_key=True)
    project_id: Mapped[str] = mapped_column(
        Text, ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False
    )
    storage_provider_key: Mapped[str] = mapped_column(Text, nullable=False)
    root_key: Mapped[str] = mapped_column(Text, nullable=False)
    folder_relpath: Mapped[str] = mapped_column(Text, nullable=False)
    share_url: Mapped[str | None] = mapped_column(Text)
    is_primary: Mapped[bool] = mapped_column(nullable=False, default=True)

    __table_args__ = (UniqueConstraint("project_id", "storage_provider_key", "root_key"),)


class StorageRootContractTable(StudioBase):
    __tablename__ = "storage_root_contracts"

    provider_key: Mapped[str] = mapped_column(Text, primary_key=True)
    root_key: Mapped[str] = mapped_column(Text, primary_key=True)
    contract_key: Mapped[str] = mapped_column(Text, nullable=False)
    required_folders: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    optional_folders: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    allowed_extras: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    allowed_root_files: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    quarantine_relpath: Mapped[str | None] = mapped_column(Text)
    max_items: Mapped[int | None] = mapped_column(Integer)
    max_bytes: Mapped[int | None] = mapped_column(BigInteger)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)


class WorkflowLockTable(StudioBase):
    __tablename__ = "project_workflow_locks"

    scope_id: Mapped[str] = mapped_column(Text, primary_key=True)
    kind: Mapped[str] = mapped_column(Text, primary_key=True)
    holder_id: Mapped[str] = mapped_column(Text, nullable=False)
    acquired_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, nullable=False)


__all__ = [
    "JobTable",
    "ClientTable",
    "ProjectTable",
    "ProjectStorageRootTable",
    "StorageRootContractTable",
    "WorkflowLockTable",
]
