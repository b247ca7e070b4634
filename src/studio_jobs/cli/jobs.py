"""
CLI: ``studio-jobs jobs``: inspect and maintain the job queue.
"""

from __future__ import annotations

from enum import Enum

import typer

from studio_jobs.cli.utils import console, fail, open_runtime, output
from studio_jobs.core.errors import ValidationError
from studio_jobs.queue.models import (
    ENTITY_TYPE_PROJECT,
    JOB_TYPE_PROJECT_ARCHIVE,
    JOB_TYPE_PROJECT_BOOTSTRAP,
    JOB_TYPE_PROJECT_DELIVERY,
    JOB_TYPE_PROJECT_DELIVERY_EMAIL,
)
from studio_jobs.workflows.enqueue import EnqueueResult, ProjectJobEnqueuer
from studio_jobs.workflows.payloads import (
    ArchivePayload,
    BootstrapPayload,
    DeliveryEmailPayload,
    DeliveryPayload,
    ProjectJobPayload,
    RootIntegrityPayload,
)

app = typer.Typer(no_args_is_help=True)


class JobKind(str, Enum):
    bootstrap = "bootstrap"
    archive = "archive"
    delivery = "delivery"
    delivery_email = "delivery-email"


PAYLOAD_TYPES: dict[JobKind, type[ProjectJobPayload]] = {
    JobKind.bootstrap: BootstrapPayload,
    JobKind.archive: ArchivePayload,
    JobKind.delivery: DeliveryPayload,
    JobKind.delivery_email: DeliveryEmailPayload,
}

JOB_TYPES = (
    JOB_TYPE_PROJECT_BOOTSTRAP,
    JOB_TYPE_PROJECT_ARCHIVE,
    JOB_TYPE_PROJECT_DELIVERY,
    JOB_TYPE_PROJECT_DELIVERY_EMAIL,
)


def _check_job_type(job_type: str) -> str:
    if job_type not in JOB_TYPES:
        raise fail(f"Unknown job type {job_type!r}; expected one of: {', '.join(JOB_TYPES)}")
    return job_type


@app.command("list")
def list_jobs(
    job_type: str = typer.Option(..., "--type", "-t", help="Job type, e.g. project.archive"),
    project_id: str = typer.Option(..., "--project", "-p", help="Project id"),
    database_url: str | None = typer.Option(None, "--database-url"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """List a project's jobs of one type, newest first."""
    runtime = open_runtime(database_url)
    jobs = runtime.job_ops().list_jobs(_check_job_type(job_type), ENTITY_TYPE_PROJECT, project_id)
    output(jobs, as_json=json_out, title=f"{job_type} jobs for {project_id}")


@app.command("reap")
def reap(
    dry_run: bool = typer.Option(False, "--dry-run", help="Only count stale running jobs"),
    database_url: str | None = typer.Option(None, "--database-url"),
) -> None:
    """Requeue running jobs whose lease expired (or that never got one)."""
    runtime = open_runtime(database_url)
    result = runtime.job_ops().requeue_stale_jobs(dry_run=dry_run)
    if result.was_dry_run:
        console.print(f"[yellow]{result.count}[/yellow] stale running job(s) would be requeued")
    else:
        console.print(f"[green]{result.count}[/green] stale running job(s) requeued")


@app.command("reset")
def reset(
    project_id: str = typer.Argument(..., help="Project id"),
    job_type: str = typer.Argument(..., help="Job type, e.g. project.delivery"),
    database_url: str | None = typer.Option(None, "--database-url"),
) -> None:
    """Make a project's queued/running jobs of one type runnable immediately."""
    runtime = open_runtime(database_url)
    count = runtime.job_ops().reset_project_jobs(project_id, _check_job_type(job_type))
    console.print(f"[green]{count}[/green] job(s) reset for {project_id}")


@app.command("enqueue")
def enqueue(
    kind: JobKind = typer.Argument(..., help="Workflow to enqueue"),
    project_id: str = typer.Argument(..., help="Project id"),
    editor: list[str] = typer.Option([], "--editor", "-e", help="Editor initials (repeatable)"),
    to_email: list[str] = typer.Option([], "--to", help="Recipient email (delivery, delivery-email)"),
    reply_to: str | None = typer.Option(None, "--reply-to", help="Reply-To address"),
    force: bool = typer.Option(False, "--force", help="Bypass the status guard"),
    allow_non_real: bool = typer.Option(False, "--allow-non-real", help="Allow non-real data profiles"),
    test_mode: bool = typer.Option(False, "--test-mode"),
    max_attempts: int | None = typer.Option(None, "--max-attempts"),
    database_url: str | None = typer.Option(None, "--database-url"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Enqueue a project workflow job unless one is already queued or running."""
    document: dict[str, object] = {"projectId": project_id, "editorInitials": editor}
    if kind is not JobKind.delivery_email:
        document.update(force=force, allowNonReal=allow_non_real, testMode=test_mode)
    if kind in (JobKind.delivery, JobKind.delivery_email):
        document.update(toEmails=to_email, replyToEmail=reply_to)

    try:
        payload = PAYLOAD_TYPES[kind].parse(document)
    except ValidationError as exc:
        raise fail(exc.message) from exc

    runtime = open_runtime(database_url)
    result = ProjectJobEnqueuer(runtime.job_ops()).enqueue(payload, max_attempts=max_attempts)
    _report(result, payload.job_type_key, json_out)


@app.command("enqueue-root-integrity")
def enqueue_root_integrity(
    provider_key: str = typer.Argument(..., help="Storage provider, e.g. dropbox"),
    root_key: str = typer.Option("root", "--root", help="Root key within the provider"),
    mode: str = typer.Option("report", "--mode", help="report or repair"),
    apply: bool = typer.Option(False, "--apply", help="Perform repairs (default is a dry run)"),
    quarantine: str | None = typer.Option(None, "--quarantine", help="Quarantine folder relpath"),
    max_attempts: int | None = typer.Option(None, "--max-attempts"),
    database_url: str | None = typer.Option(None, "--database-url"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Enqueue a storage-root integrity check unless one is already queued or running."""
    document: dict[str, object] = {
        "providerKey": provider_key,
        "rootKey": root_key,
        "mode": mode,
        "dryRun": not apply,
        "quarantineRelpath": quarantine,
    }
    try:
        payload = RootIntegrityPayload.parse(document)
    except ValidationError as exc:
        raise fail(exc.message) from exc

    runtime = open_runtime(database_url)
    result = ProjectJobEnqueuer(runtime.job_ops()).enqueue_root_integrity(payload, max_attempts=max_attempts)
    _report(result, payload.job_type_key, json_out)


def _report(result: EnqueueResult, job_type_key: str, json_out: bool) -> None:
    if json_out:
        output(result, as_json=True)
    elif result.enqueued:
        console.print(f"[green]Enqueued[/green] {job_type_key} job {result.job_id}")
    else:
        console.print(f"[yellow]Skipped[/yellow]: {result.reason}")
