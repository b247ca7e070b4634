"""
CLI: ``studio-jobs db``: database management commands.
"""

from __future__ import annotations

import typer

from studio_jobs.cli.utils import console, open_runtime
from studio_jobs.core.orm.base import StudioBase
from studio_jobs.core.orm.session import create_all

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database_url: str | None = typer.Option(None, "--database-url", help="Override STUDIO_JOBS_DATABASE_URL"),
) -> None:
    """Create every table (jobs, projects, clients, storage roots, workflow locks)."""
    runtime = open_runtime(database_url)
    try:
        create_all(runtime.engine)
    finally:
        runtime.engine.dispose()
    console.print(f"[green]Created {len(StudioBase.metadata.tables)} table(s)[/green] at {runtime.engine.url}")
