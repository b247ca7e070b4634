"""Workflow Guard: may this project start a workflow right now?

Two checks run before any lock or storage work:

1. :func:`check_data_profile`: only ``real`` projects are eligible unless
   the payload sets ``allowNonReal``.
2. :meth:`StatusGuard.validate_start`: the project's status must be in the
   workflow's starting set. Precedence is fixed:

   * status == in-progress → blocked, ``already_running=True``, even with
     ``force``;
   * ``force`` → allowed;
   * status in the allowed set → allowed;
   * anything else → blocked with a descriptive message.

Status comparisons are case-insensitive. A failed guard is never raised;
callers record a blocked run instead.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

DATA_PROFILE_REAL = "real"

ROOT_STATE_BLOCKED_NON_REAL = "blocked_non_real"
ROOT_STATE_BLOCKED_STATUS_NOT_READY = "blocked_status_not_ready"


@dataclass(frozen=True)
class GuardDecision:
    ok: bool
    error: str | None = None
    already_running: bool = False

    @classmethod
    def allow(cls) -> GuardDecision:
        return cls(ok=True)


@dataclass(frozen=True)
class StatusGuard:
    """Status rules for one workflow.

    Args:
        in_progress: Status set while the workflow runs.
        allowed: Statuses a run may start from without ``force``.
        already_running_message: Error when status == ``in_progress``.
        not_ready_message: Error for any other status. ``{status}`` is
            substituted.
        blocked_messages: Specific errors for particular statuses outside
            the allowed set (e.g. ``archived``).
    """

    in_progress: str
    allowed: frozenset[str]
    already_running_message: str
    not_ready_message: str
    blocked_messages: Mapping[str, str] = field(default_factory=dict)

    @property
    def blocked_already_running_state(self) -> str:
        return f"blocked_already_{self.in_progress}"

    def validate_start(self, current_status: str | None, force: bool) -> GuardDecision:
        status = (current_status or "").strip().lower()

        if status == self.in_progress:
            return GuardDecision(ok=False, error=self.already_running_message, already_running=True)

        if force:
            return GuardDecision.allow()

        if status in self.allowed:
            return GuardDecision.allow()

        if status in self.blocked_messages:
            return GuardDecision(ok=False, error=self.blocked_messages[status])

        return GuardDecision(ok=False, error=self.not_ready_message.format(status=current_status or ""))

    def blocked_root_state(self, decision: GuardDecision) -> str:
        if decision.already_running:
            return self.blocked_already_running_state
        return ROOT_STATE_BLOCKED_STATUS_NOT_READY


def check_data_profile(data_profile: str | None, allow_non_real: bool, workflow_word: str) -> GuardDecision:
    """Reject non-``real`` projects unless explicitly allowed."""
    if allow_non_real or (data_profile or "").strip().lower() == DATA_PROFILE_REAL:
        return GuardDecision.allow()
    return GuardDecision(
        ok=False,
        error=f"Project data_profile='{data_profile}' is not eligible for {workflow_word}.",
    )


# ── Workflow statuses ────────────────────────────────────────────────────

STATUS_READY_TO_PROVISION = "ready_to_provision"
STATUS_PROVISIONING = "provisioning"
STATUS_ACTIVE = "active"
STATUS_PROVISION_FAILED = "provision_failed"

STATUS_TO_ARCHIVE = "to_archive"
STATUS_ARCHIVING = "archiving"
STATUS_ARCHIVED = "archived"
STATUS_ARCHIVE_FAILED = "archive_failed"

STATUS_READY_TO_DELIVER = "ready_to_deliver"
STATUS_DELIVERING = "delivering"
STATUS_DELIVERED = "delivered"
STATUS_DELIVERY_FAILED = "delivery_failed"


BOOTSTRAP_GUARD = StatusGuard(
    in_progress=STATUS_PROVISIONING,
    allowed=frozenset({STATUS_READY_TO_PROVISION}),
    already_running_message="Project is already provisioning.",
    not_ready_message="Project status '{status}' is not ready_to_provision.",
)

ARCHIVE_GUARD = StatusGuard(
    in_progress=STATUS_ARCHIVING,
    allowed=frozenset({STATUS_TO_ARCHIVE, STATUS_ARCHIVE_FAILED}),
    already_running_message="Project is already archiving.",
    not_ready_message="Project status is not eligible for archiving.",
    blocked_messages={STATUS_ARCHIVED: "Project is already archived."},
)

DELIVERY_GUARD = StatusGuard(
    in_progress=STATUS_DELIVERING,
    allowed=frozenset({STATUS_READY_TO_DELIVER, STATUS_DELIVERY_FAILED, STATUS_DELIVERED}),
    already_running_message="Project is already delivering.",
    not_ready_message="Project status is not eligible for delivery.",
)
