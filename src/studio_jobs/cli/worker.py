"""
CLI: ``studio-jobs worker``: run the job worker.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import typer

from studio_jobs.cli.utils import Runtime, console, fail, load_object, open_runtime, output
from studio_jobs.core.errors import ConfigError
from studio_jobs.execution.registry import HandlerRegistry
from studio_jobs.execution.worker import JobWorker

app = typer.Typer(no_args_is_help=True)


def build_handlers(reference: str, runtime: Runtime) -> HandlerRegistry:
    """Call ``module:function`` with the workflow services; it must return a registry.

    The factory typically calls :func:`studio_jobs.workflows.handlers.build_registry`
    with the deployment's storage and email collaborators.
    """
    factory = load_object(reference)
    if not callable(factory):
        raise ConfigError(f"{reference!r} is not callable")
    registry = factory(runtime.workflow_services())
    if not isinstance(registry, HandlerRegistry):
        raise ConfigError(f"{reference!r} returned {type(registry).__name__}, expected HandlerRegistry")
    return registry


@app.command("start")
def start(
    handlers: str | None = typer.Option(
        None,
        "--handlers",
        help="module:function returning a HandlerRegistry (default: STUDIO_JOBS_WORKER_HANDLERS)",
    ),
    poll_interval: float | None = typer.Option(None, "--poll-interval", help="Seconds between polls when idle"),
    lease_seconds: int | None = typer.Option(None, "--lease-seconds", help="Job lease duration"),
    max_jobs: int | None = typer.Option(None, "--max-jobs", help="Stop after N jobs"),
    exit_when_idle: bool = typer.Option(False, "--exit-when-idle", help="Stop when no job is claimable"),
    worker_id: str | None = typer.Option(None, "--id", help="Custom worker identifier"),
    database_url: str | None = typer.Option(None, "--database-url", help="Override STUDIO_JOBS_DATABASE_URL"),
) -> None:
    """Start the worker loop: reap stale jobs, claim one, run its handler, repeat.

    Example::

        studio-jobs worker start --handlers myapp.jobs:registry
        studio-jobs worker start --handlers myapp.jobs:registry --exit-when-idle
    """
    runtime = open_runtime(database_url)
    settings = runtime.settings

    reference = handlers or settings.worker_handlers
    if not reference:
        raise fail("No handlers configured; pass --handlers module:function.")

    try:
        registry = build_handlers(reference, runtime)
    except ConfigError as exc:
        raise fail(exc.message) from exc

    worker = JobWorker(
        runtime.job_store(),
        registry,
        worker_id=worker_id,
        poll_interval=poll_interval or settings.worker_poll_interval_seconds,
        lease_duration=timedelta(seconds=lease_seconds or settings.worker_lease_seconds),
        error_backoff=settings.worker_error_backoff_seconds,
        max_jobs=max_jobs,
        exit_when_idle=exit_when_idle,
    )

    console.print(
        f"[bold green]Starting studio-jobs worker[/bold green] {worker.worker_id} "
        f"(handlers={', '.join(registry.list_handlers()) or 'none'})"
    )

    async def _main() -> None:
        worker.install_signal_handlers()
        await worker.run()

    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        console.print("\n[yellow]Worker stopped by user[/yellow]")
    finally:
        runtime.engine.dispose()

    output(worker.stats.to_dict(), title="Worker Stats")
