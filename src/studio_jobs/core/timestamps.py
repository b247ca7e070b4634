"""
UTC timestamp and entity-id helpers shared by every store.

Stores accept a ``clock`` callable defaulting to :func:`utc_now`, so tests
can drive lease expiry and backoff without sleeping.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Get current timezone-aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_iso8601(value: datetime | None) -> str | None:
    """Serialize a datetime as ISO-8601 with a ``Z`` suffix."""
    if value is None:
        return None
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


def new_entity_id(prefix: str) -> str:
    """Generate ``<prefix>_<32 hex chars>`` identifiers (e.g. ``job_3f2a...``)."""
    return f"{prefix}_{uuid.uuid4().hex}"
