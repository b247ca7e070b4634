"""Run Aggregator: turns per-domain results into a run verdict.

A ``root_state`` is an error when it starts with ``blocked_``, ends with
``_failed``, starts with ``cleanup_``, or is one of the fixed "missing"
tags. Everything else (``archived``, ``source_ready``, ``skipped_*``...)
counts as success.

``last_error`` walks the domains in order and stops at the first domain
that has either a provisioning-summary error or, when it is an error
domain, a note. Without any, it falls back to
``"<workflow> completed with errors."``
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from studio_jobs.queue.models import JOB_TYPE_PROJECT_BOOTSTRAP
from studio_jobs.workflows.models import DomainResult

DOMAIN_DROPBOX = "dropbox"
DOMAIN_LUCIDLINK = "lucidlink"
DOMAIN_NAS = "nas"

BOOTSTRAP_DOMAINS = (DOMAIN_DROPBOX, DOMAIN_LUCIDLINK, DOMAIN_NAS)
ARCHIVE_DOMAINS = (DOMAIN_DROPBOX, DOMAIN_LUCIDLINK, DOMAIN_NAS)
DELIVERY_DOMAINS = (DOMAIN_LUCIDLINK, DOMAIN_DROPBOX)

ERROR_ROOT_STATES = frozenset(
    {
        "container_missing",
        "source_missing",
        "archive_move_missing",
        "cleanup_locked",
        "container_verify_failed",
    }
)

NO_PROVISIONING_SUCCEEDED = "No domain provisioning succeeded."


@dataclass(frozen=True)
class RunVerdict:
    has_errors: bool
    last_error: str | None = None


def is_error_root_state(root_state: str) -> bool:
    state = root_state.lower()
    return (
        state.startswith("blocked_")
        or state.endswith("_failed")
        or state.startswith("cleanup_")
        or state in ERROR_ROOT_STATES
    )


def is_domain_error(result: DomainResult) -> bool:
    return is_error_root_state(result.root_state)


def build_last_error(domains: Sequence[DomainResult], fallback: str) -> str:
    for result in domains:
        errors = result.summary_errors()
        if errors:
            return errors[0]
        if result.notes and is_domain_error(result):
            return result.notes[0]
    return fallback


def aggregate(domains: Sequence[DomainResult], workflow_key: str) -> RunVerdict:
    """Verdict for archive/delivery style runs: any error domain fails the run."""
    if not any(is_domain_error(result) for result in domains):
        return RunVerdict(has_errors=False)
    return RunVerdict(
        has_errors=True,
        last_error=build_last_error(domains, f"{workflow_key} completed with errors."),
    )


def aggregate_bootstrap(domains: Sequence[DomainResult]) -> RunVerdict:
    """Verdict for provisioning runs.

    Summary errors count as hard failures, and a run in which no domain's
    container provisioning succeeded is an error even without hard failures.
    """
    any_success = any(r.provisioning is not None and r.provisioning.success for r in domains)
    hard_failure = any(is_domain_error(r) or r.summary_errors() for r in domains)

    if not any_success:
        return RunVerdict(has_errors=True, last_error=NO_PROVISIONING_SUCCEEDED)
    if hard_failure:
        return RunVerdict(
            has_errors=True,
            last_error=build_last_error(
                domains, f"{JOB_TYPE_PROJECT_BOOTSTRAP} completed with provisioning errors."
            ),
        )
    return RunVerdict(has_errors=False)


def build_blocked_results(domains: Iterable[str], root_state: str, note: str) -> list[DomainResult]:
    """One synthetic result per domain, all carrying the same state and note."""
    return [DomainResult(domain_key=domain, root_state=root_state, notes=[note]) for domain in domains]
