"""Declarative base, column types and type-map for all studio-jobs ORM models.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map`` that
maps Python built-in types to portable SA column types. Timestamps go
through :class:`UTCDateTime` so SQLite (which stores naive values) and
PostgreSQL (``timestamptz``) both hand back timezone-aware UTC datetimes.
"""

from __future__ import annotations

import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, Text
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from studio_jobs.core.timestamps import ensure_utc


class UTCDateTime(TypeDecorator[datetime.datetime]):
    """``DateTime(timezone=True)`` that always round-trips aware UTC values."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime.datetime | None, dialect: Dialect) -> Any:
        if value is None:
            return None
        value = ensure_utc(value)
        if dialect.name == "sqlite":
            # Naive UTC keeps lexical ordering intact for comparisons in SQLite
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime.datetime | None:
        if value is None:
            return None
        return ensure_utc(value)


class StudioBase(DeclarativeBase):
    """Shared declarative base for every studio-jobs table.

    * ``str``   → ``Text``
    * ``int``   → ``Integer``
    * ``bool``  → ``Boolean``
    * ``datetime.datetime`` → :class:`UTCDateTime`
    * ``dict`` / ``list`` → ``JSON`` (TEXT in SQLite, json elsewhere)
    """

    type_annotation_map = {
        str: Text,
        int: Integer,
        bool: Boolean,
        datetime.datetime: UTCDateTime,
        dict: JSON,
        list: JSON,
    }
