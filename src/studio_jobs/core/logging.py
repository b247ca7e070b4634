"""
Structured logging for studio-jobs.

structlog is configured once per process by the CLI. Library modules only call
:func:`get_logger`; the worker scopes ``worker_id``, ``job_id`` and
``job_type_key`` around each job with :class:`LogContext`, so store, lock and
workflow events emitted while the job runs carry them too.

Examples:
    >>> from studio_jobs.core.logging import configure_logging, get_logger
    >>> configure_logging(level="INFO", json_format=True)
    >>> get_logger(__name__).info("job_claimed", job_id="job_123", attempt=1)

JSON lines look like::

    {"timestamp": "2026-01-05T10:00:00Z", "level": "info", "logger": "studio_jobs.execution.worker",
     "service": "studio-jobs", "event": "job_claimed", "job_id": "job_123", "attempt": 1}
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

SERVICE = "studio-jobs"

# Third-party loggers that are noisy at INFO.
_QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool")


def _tag_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE)
    return event_dict


def configure_logging(level: str = "INFO", json_format: bool | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Minimum level name (``DEBUG``, ``INFO``, ``WARNING``, ``ERROR``).
        json_format: JSON lines when true, colored console when false.
            ``None`` picks JSON whenever stdout is not a terminal.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    if json_format is None:
        json_format = not sys.stdout.isatty()

    processors: list[Processor] = [
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _tag_service,
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str | None = None) -> Any:
    """Return a structlog logger, usually ``get_logger(__name__)``."""
    return structlog.get_logger(name)


class LogContext:
    """Bind keys into the structlog contextvars for the duration of a block.

    Works as both a sync and an async context manager. Only the keys bound on
    entry are removed on exit; anything bound earlier by the caller stays.

    Example:
        async with LogContext(job_id="job_1", job_type_key="project.archive"):
            logger.info("job_started")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        structlog.contextvars.bind_contextvars(**self._context)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self._context)

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.__exit__(*exc_info)


__all__ = ["SERVICE", "LogContext", "configure_logging", "get_logger"]
