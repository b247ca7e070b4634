"""
CLI utility helpers: database wiring and output formatting.
"""

from __future__ import annotations

import importlib
import json
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Any

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from studio_jobs.core.errors import ConfigError
from studio_jobs.core.logging import configure_logging
from studio_jobs.core.orm.session import StudioSession, create_engine_from_url, session_factory
from studio_jobs.core.settings import StudioJobsSettings, get_settings
from studio_jobs.core.timestamps import to_iso8601
from studio_jobs.queue.ops import JobOps
from studio_jobs.queue.store import JobStore
from studio_jobs.workflows.history import RunHistoryAppender
from studio_jobs.workflows.lock import WorkflowLock
from studio_jobs.workflows.projects import ProjectStore
from studio_jobs.workflows.root_integrity import RootContractStore
from studio_jobs.workflows.runner import WorkflowServices

console = Console()
err_console = Console(stderr=True)


# ── Database wiring ──────────────────────────────────────────────────────


@dataclass
class Runtime:
    """Engine plus the stores built from settings for one CLI invocation."""

    settings: StudioJobsSettings
    engine: Engine
    sessions: sessionmaker[StudioSession]

    def job_store(self) -> JobStore:
        return JobStore(
            self.sessions,
            stale_running_after=timedelta(minutes=self.settings.reaper_stale_minutes),
        )

    def job_ops(self) -> JobOps:
        return JobOps(
            self.sessions,
            self.job_store(),
            default_max_attempts=self.settings.job_default_max_attempts,
        )

    def workflow_services(self) -> WorkflowServices:
        projects = ProjectStore(self.sessions)
        return WorkflowServices(
            projects=projects,
            history=RunHistoryAppender(projects, max_runs=self.settings.history_max_runs),
            lock=WorkflowLock(self.sessions, ttl=timedelta(seconds=self.settings.workflow_lock_ttl_seconds)),
            contracts=RootContractStore(self.sessions),
        )


def open_runtime(database_url: str | None = None) -> Runtime:
    """Configure logging and open the database named by settings (or ``database_url``)."""
    settings = get_settings()
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})

    configure_logging(level=settings.log_level, json_format=settings.json_logs)
    settings.ensure_sqlite_dir()
    engine = create_engine_from_url(
        settings.database_url,
        echo=settings.database_echo,
        pool_size=None if settings.is_sqlite else settings.database_pool_size,
    )
    return Runtime(settings=settings, engine=engine, sessions=session_factory(engine))


def load_object(reference: str) -> Any:
    """Import ``package.module:attribute``."""
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Expected 'module:attribute', got {reference!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"Cannot import {module_name!r}: {exc}") from exc
    try:
        return getattr(module, attr)
    except AttributeError as exc:
        raise ConfigError(f"{module_name!r} has no attribute {attr!r}") from exc


def fail(message: str) -> typer.Exit:
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    return typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return to_iso8601(value) or ""
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def output(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a record or a list of records to the terminal."""
    if as_json:
        payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
        console.print_json(json.dumps(payload, default=_cell))
        return

    if isinstance(data, list | tuple):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(list(data), title=title)
    else:
        _print_dict(_to_dict(data), title=title)


def _print_table(items: list, *, title: str = "") -> None:
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        table.add_row(*(_cell(v) for v in _to_dict(item).values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {_cell(v)}")
