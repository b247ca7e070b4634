"""SQLAlchemy engine factory and session factory.

* ``create_engine_from_url`` -- engine with SQLite pragmas / pool settings.
* ``StudioSession``          -- session with ``expire_on_commit=False``.
* ``session_factory``        -- ``sessionmaker`` producing ``StudioSession``.
* ``create_all``             -- create every mapped table (dev / tests).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from studio_jobs.core.orm.base import StudioBase


def create_engine_from_url(
    url: str = "sqlite:///data/studio_jobs.db",
    *,
    echo: bool = False,
    pool_size: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql+psycopg://…``).
    echo:
        If ``True``, log all SQL.
    pool_size:
        Connection pool size (ignored for SQLite).
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        in_memory = url in ("sqlite://", "sqlite:///:memory:")
        if in_memory:
            # One shared connection, or every checkout sees an empty database
            kwargs.setdefault("poolclass", StaticPool)

        engine = _sa_create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            if not in_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

        return engine

    pool_kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size

    return _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)


class StudioSession(Session):
    """Pre-configured session with ``expire_on_commit=False``.

    Stores return detached row snapshots after commit; expiring them would
    trigger lazy loads on a closed session.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def session_factory(engine: Engine) -> sessionmaker[StudioSession]:
    """Return a ``sessionmaker`` bound to *engine* that produces ``StudioSession`` instances."""
    return sessionmaker(bind=engine, class_=StudioSession)


def create_all(engine: Engine) -> None:
    """Create every table registered on :class:`StudioBase`."""
    import studio_jobs.core.orm.tables  # noqa: F401  (register mappers)

    StudioBase.metadata.create_all(engine)
