"""
Shared pytest fixtures for studio-jobs tests.

This module provides:
- A controllable clock so leases, backoff and TTLs never need sleeping
- In-memory SQLite engine/session fixtures with every table created
- Store, lock and workflow-service fixtures built on that database
- ``seed_project`` for inserting clients/projects in a given status
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from studio_jobs.core.orm.session import StudioSession, create_all, create_engine_from_url, session_factory
from studio_jobs.core.orm.tables import ClientTable, ProjectTable
from studio_jobs.core.settings import clear_settings_cache
from studio_jobs.execution.registry import HandlerRegistry
from studio_jobs.queue.ops import JobOps
from studio_jobs.queue.store import JobStore
from studio_jobs.workflows.history import RunHistoryAppender
from studio_jobs.workflows.lock import WorkflowLock
from studio_jobs.workflows.projects import ProjectStore
from studio_jobs.workflows.root_integrity import RootContractStore
from studio_jobs.workflows.runner import WorkflowServices

START = datetime(2026, 3, 2, 9, 0, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(autouse=True)
def _clean_settings() -> Generator[None, None, None]:
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = create_engine_from_url("sqlite://")
    create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def file_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """File-backed SQLite for tests that hit the database from several threads."""
    eng = create_engine_from_url(f"sqlite:///{tmp_path / 'jobs.db'}")
    create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def sessions(engine: Engine) -> sessionmaker[StudioSession]:
    return session_factory(engine)


# =============================================================================
# Stores
# =============================================================================


@pytest.fixture
def store(sessions, clock) -> JobStore:
    return JobStore(sessions, clock=clock)


@pytest.fixture
def ops(sessions, store, clock) -> JobOps:
    return JobOps(sessions, store, clock=clock)


@pytest.fixture
def projects(sessions, clock) -> ProjectStore:
    return ProjectStore(sessions, clock=clock)


@pytest.fixture
def history(projects, clock) -> RunHistoryAppender:
    return RunHistoryAppender(projects, clock=clock)


@pytest.fixture
def lock(sessions, clock) -> WorkflowLock:
    return WorkflowLock(sessions, clock=clock)


@pytest.fixture
def contracts(sessions) -> RootContractStore:
    return RootContractStore(sessions)


@pytest.fixture
def services(projects, history, lock, contracts, clock) -> WorkflowServices:
    return WorkflowServices(projects=projects, history=history, lock=lock, contracts=contracts, clock=clock)


@pytest.fixture
def registry() -> HandlerRegistry:
    return HandlerRegistry()


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def seed_project(sessions) -> Callable[..., str]:
    """Insert a client + project; returns the project id."""

    def _seed(
        project_id: str = "prj_1",
        status_key: str = "ready_to_provision",
        *,
        data_profile: str = "real",
        metadata: dict[str, Any] | None = None,
        client_id: str | None = "cli_1",
        delivery_emails: list[str] | None = None,
    ) -> str:
        with sessions.begin() as session:
            if client_id is not None:
                exists = session.execute(
                    select(ClientTable.client_id).where(ClientTable.client_id == client_id)
                ).first()
                if exists is None:
                    session.execute(
                        insert(ClientTable).values(
                            client_id=client_id,
                            display_name="Northwind Films",
                            delivery_emails=delivery_emails or [],
                        )
                    )
            session.execute(
                insert(ProjectTable.__table__).values(
                    project_id=project_id,
                    client_id=client_id,
                    project_code="NW-0042",
                    name="Spring Campaign",
                    status_key=status_key,
                    data_profile=data_profile,
                    metadata=metadata or {},
                )
            )
        return project_id

    return _seed
