"""Handler Registry: job type key → async handler lookup.

Dispatch is a flat string match on ``job_type_key``
(``project.bootstrap``, ``project.archive``, ``project.delivery``).
The registry decouples registration (at startup) from resolution (at claim
time); tests build an isolated registry per case.

ARCHITECTURE
────────────
::

    HandlerRegistry
      ├── .register(job_type_key, handler)  ─ store handler
      ├── .handler(job_type_key)            ─ decorator form
      ├── .get(job_type_key)                ─ lookup (UnknownJobTypeError)
      ├── .has(job_type_key)                ─ existence check
      └── .list_handlers()                  ─ registered keys, sorted
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from studio_jobs.core.errors import UnknownJobTypeError
from studio_jobs.execution.context import JobContext, JobOutcome

JobHandler = Callable[[JobContext], Awaitable[JobOutcome | None]]


class HandlerRegistry:
    """Injectable registry of job handlers.

    Example:
        >>> registry = HandlerRegistry()
        >>>
        >>> @registry.handler("project.archive")
        ... async def archive(ctx):
        ...     return JobOutcome.ok()
        >>>
        >>> registry.get("project.archive") is archive
        True
    """

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}
        self._metadata: dict[str, dict[str, Any]] = {}

    def register(self, job_type_key: str, handler: JobHandler, description: str | None = None) -> None:
        """Register (or replace) the handler for a job type."""
        self._handlers[job_type_key] = handler
        self._metadata[job_type_key] = {"job_type_key": job_type_key, "description": description}

    def handler(self, job_type_key: str, description: str | None = None) -> Callable[[JobHandler], JobHandler]:
        """Decorator form of :meth:`register`."""

        def decorator(func: JobHandler) -> JobHandler:
            self.register(job_type_key, func, description=description)
            return func

        return decorator

    def get(self, job_type_key: str) -> JobHandler:
        """Resolve a handler.

        Raises:
            UnknownJobTypeError: If nothing is registered for the key.
        """
        try:
            return self._handlers[job_type_key]
        except KeyError:
            raise UnknownJobTypeError(job_type_key) from None

    def has(self, job_type_key: str) -> bool:
        return job_type_key in self._handlers

    def get_metadata(self, job_type_key: str) -> dict[str, Any] | None:
        return self._metadata.get(job_type_key)

    def list_handlers(self) -> list[str]:
        return sorted(self._handlers)

    def unregister(self, job_type_key: str) -> bool:
        if job_type_key in self._handlers:
            del self._handlers[job_type_key]
            del self._metadata[job_type_key]
            return True
        return False

    def clear(self) -> None:
        """Clear all handlers (for testing)."""
        self._handlers.clear()
        self._metadata.clear()
