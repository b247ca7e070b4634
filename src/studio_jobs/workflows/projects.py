"""Project persistence used by the workflows.

Reads project/client rows and performs the three writes a workflow is
allowed to make: status key, metadata document, storage-root upsert.
All methods are synchronous; async callers go through ``asyncio.to_thread``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import case, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from studio_jobs.core.logging import get_logger
from studio_jobs.core.orm.tables import ClientTable, ProjectStorageRootTable, ProjectTable
from studio_jobs.core.timestamps import Clock, new_entity_id, utc_now

logger = get_logger(__name__)

_projects = ProjectTable.__table__
_clients = ClientTable.__table__
_roots = ProjectStorageRootTable.__table__


@dataclass(frozen=True)
class ProjectRecord:
    project_id: str
    client_id: str | None
    project_code: str
    name: str
    status_key: str
    data_profile: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ClientRecord:
    client_id: str
    display_name: str
    delivery_emails: list[str] = field(default_factory=list)


class ProjectStore:
    """Reads and narrow writes on ``projects`` and related tables."""

    def __init__(self, sessions: sessionmaker[Session], *, clock: Clock = utc_now) -> None:
        self._sessions = sessions
        self._clock = clock

    def get_project(self, project_id: str) -> ProjectRecord | None:
        with self._sessions() as session:
            row = session.execute(select(_projects).where(_projects.c.project_id == project_id)).mappings().first()
        if row is None:
            return None
        return ProjectRecord(
            project_id=row["project_id"],
            client_id=row["client_id"],
            project_code=row["project_code"],
            name=row["name"],
            status_key=row["status_key"],
            data_profile=row["data_profile"],
            metadata=dict(row["metadata"] or {}),
        )

    def get_client(self, client_id: str | None) -> ClientRecord | None:
        if not client_id:
            return None
        with self._sessions() as session:
            row = session.execute(select(_clients).where(_clients.c.client_id == client_id)).mappings().first()
        if row is None:
            return None
        return ClientRecord(
            client_id=row["client_id"],
            display_name=row["display_name"],
            delivery_emails=list(row["delivery_emails"] or []),
        )

    def update_status(self, project_id: str, status_key: str) -> None:
        stmt = (
            update(_projects)
            .where(_projects.c.project_id == project_id)
            .values(status_key=status_key, updated_at=self._clock())
        )
        with self._sessions.begin() as session:
            session.execute(stmt)
        logger.info("project_status_updated", project_id=project_id, status_key=status_key)

    def update_metadata(self, project_id: str, metadata: Mapping[str, Any]) -> None:
        stmt = (
            update(_projects)
            .where(_projects.c.project_id == project_id)
            .values(metadata=dict(metadata), updated_at=self._clock())
        )
        with self._sessions.begin() as session:
            session.execute(stmt)

    def get_storage_root_relpath(self, project_id: str, storage_provider_key: str) -> str | None:
        """Primary folder for the provider, if the project has one."""
        stmt = (
            select(_roots.c.folder_relpath)
            .where(
                _roots.c.project_id == project_id,
                _roots.c.storage_provider_key == storage_provider_key,
            )
            .order_by(_roots.c.is_primary.desc(), _roots.c.root_key)
            .limit(1)
        )
        with self._sessions() as session:
            return session.execute(stmt).scalar_one_or_none()

    def upsert_storage_root(
        self,
        project_id: str,
        storage_provider_key: str,
        root_key: str,
        folder_relpath: str,
    ) -> str | None:
        """Insert or update a storage root and make it the provider's primary.

        Returns ``None`` on success or an error message. A failed upsert is
        recorded against the domain instead of aborting the run.
        """
        key = (
            (_roots.c.project_id == project_id)
            & (_roots.c.storage_provider_key == storage_provider_key)
            & (_roots.c.root_key == root_key)
        )
        try:
            with self._sessions.begin() as session:
                updated = session.execute(
                    update(_roots).where(key).values(folder_relpath=folder_relpath)
                ).rowcount
                if not updated:
                    session.execute(
                        insert(_roots).values(
                            project_storage_root_id=new_entity_id("psr"),
                            project_id=project_id,
                            storage_provider_key=storage_provider_key,
                            root_key=root_key,
                            folder_relpath=folder_relpath,
                            is_primary=True,
                        )
                    )
                session.execute(
                    update(_roots)
                    .where(
                        _roots.c.project_id == project_id,
                        _roots.c.storage_provider_key == storage_provider_key,
                    )
                    .values(is_primary=case((_roots.c.root_key == root_key, True), else_=False))
                )
        except SQLAlchemyError as exc:
            logger.warning(
                "storage_root_upsert_failed",
                project_id=project_id,
                storage_provider_key=storage_provider_key,
                root_key=root_key,
                error=str(exc),
            )
            return f"Storage root upsert failed: {exc}"
        return None
