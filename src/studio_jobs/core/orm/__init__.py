"""SQLAlchemy 2.0 ORM layer for studio-jobs.

Modules
-------
base        StudioBase (declarative base) + UTCDateTime column type
session     Engine factory, StudioSession, session_factory, create_all
tables      Mapped tables (JobTable, ProjectTable, WorkflowLockTable, ...)
"""

from __future__ import annotations

from studio_jobs.core.orm.base import StudioBase, UTCDateTime
from studio_jobs.core.orm.session import (
    StudioSession,
    create_all,
    create_engine_from_url,
    session_factory,
)
from studio_jobs.core.orm.tables import *  # noqa: F401,F403

__all__ = [
    "StudioBase",
    "UTCDateTime",
    "StudioSession",
    "create_all",
    "create_engine_from_url",
    "session_factory",
    "JobTable",
    "ClientTable",
    "ProjectTable",
    "ProjectStorageRootTable",
    "WorkflowLockTable",
]
