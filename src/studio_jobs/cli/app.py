"""
Root Typer application for the studio-jobs CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="studio-jobs",
    help="studio-jobs: job queue and project workflow worker.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from studio_jobs import __version__

        typer.echo(f"studio-jobs {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """studio-jobs CLI: run workers, inspect jobs, initialise the database."""


# ── Sub-command registration ─────────────────────────────────────────────

from studio_jobs.cli.db import app as db_app  # noqa: E402
from studio_jobs.cli.jobs import app as jobs_app  # noqa: E402
from studio_jobs.cli.worker import app as worker_app  # noqa: E402

app.add_typer(worker_app, name="worker", help="Background job worker.")
app.add_typer(jobs_app, name="jobs", help="Job queue inspection and maintenance.")
app.add_typer(db_app, name="db", help="Database operations.")
