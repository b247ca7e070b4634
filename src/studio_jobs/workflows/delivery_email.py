"""Delivery email job: (re)send the "delivery ready" email for a project.

Reads ``delivery.current`` written by the last delivery run, resolves
recipients (payload ``toEmails``, else the client's delivery emails) and
sends through the :class:`~studio_jobs.workflows.protocols.EmailGateway`.
Every attempt, sent or failed, is recorded as ``delivery.current.lastEmail``.
"""

from __future__ import annotations

import asyncio
from typing import Any

from studio_jobs.core.errors import ProjectNotFoundError
from studio_jobs.core.logging import get_logger
from studio_jobs.workflows.delivery import failed_email_audit
from studio_jobs.workflows.history import RunHistoryAppender
from studio_jobs.workflows.models import DeliveryCurrent, DeliveryEmailAudit, DeliveryFileSummary, DeliveryRunResult
from studio_jobs.workflows.payloads import DeliveryEmailPayload, normalize_list
from studio_jobs.workflows.projects import ProjectRecord, ProjectStore
from studio_jobs.workflows.protocols import DeliveryEmailRequest, EmailGateway, ProjectTokens

logger = get_logger(__name__)

STATUS_SENT = "sent"

ERROR_STABLE_PATH_MISSING = "Delivery stable path missing; run delivery first."
ERROR_SHARE_LINK_MISSING = "Stable Dropbox share link missing; run delivery first."
ERROR_NO_RECIPIENTS = "No delivery email recipients were provided."


def _delivery_section(metadata: dict[str, Any]) -> dict[str, Any]:
    section = metadata.get(DeliveryRunResult.namespace)
    return section if isinstance(section, dict) else {}


def read_delivery_current(metadata: dict[str, Any]) -> DeliveryCurrent:
    current = _delivery_section(metadata).get("current")
    return DeliveryCurrent.model_validate(current if isinstance(current, dict) else {})


def latest_delivered_files(metadata: dict[str, Any]) -> list[DeliveryFileSummary]:
    """Files of the newest delivery run that recorded any."""
    runs = _delivery_section(metadata).get("runs")
    if not isinstance(runs, list):
        return []
    for run in reversed(runs):
        files = run.get("files") if isinstance(run, dict) else None
        if files:
            return [DeliveryFileSummary.model_validate(item) for item in files if isinstance(item, dict)]
    return []


class DeliveryEmailService:
    def __init__(
        self,
        projects: ProjectStore,
        history: RunHistoryAppender,
        gateway: EmailGateway,
    ) -> None:
        self._projects = projects
        self._history = history
        self._gateway = gateway

    async def send(self, payload: DeliveryEmailPayload) -> DeliveryEmailAudit:
        project = await asyncio.to_thread(self._projects.get_project, payload.project_id)
        if project is None:
            raise ProjectNotFoundError(payload.project_id)

        client = await asyncio.to_thread(self._projects.get_client, project.client_id)
        recipients = payload.to_emails or normalize_list(client.delivery_emails if client else [])
        current = read_delivery_current(project.metadata)

        if not (current.stable_path or current.api_stable_path):
            return await self._record(project, failed_email_audit(recipients, ERROR_STABLE_PATH_MISSING))

        share_url = current.resolved_share_url
        if not share_url:
            return await self._record(project, failed_email_audit(recipients, ERROR_SHARE_LINK_MISSING))

        if not recipients:
            return await self._record(project, failed_email_audit(recipients, ERROR_NO_RECIPIENTS))

        request = DeliveryEmailRequest(
            tokens=ProjectTokens(
                project_code=project.project_code,
                project_name=project.name,
                client_name=client.display_name if client else None,
                editor_initials=payload.editor_initials,
            ),
            share_url=share_url,
            version_label=current.current_version,
            retention_until_utc=current.retention_until_utc,
            files=latest_delivered_files(project.metadata),
            recipients=recipients,
            reply_to=payload.reply_to_email,
        )

        try:
            audit = await self._gateway.send_delivery_ready(request)
        except Exception as exc:
            logger.warning("delivery_email_failed", project_id=project.project_id, error=str(exc))
            audit = failed_email_audit(recipients, f"Delivery email failed: {exc}")

        return await self._record(project, audit)

    async def _record(self, project: ProjectRecord, audit: DeliveryEmailAudit) -> DeliveryEmailAudit:
        await asyncio.to_thread(
            self._history.record_current,
            project.project_id,
            project.metadata,
            DeliveryRunResult.namespace,
            {"lastEmail": audit.to_document()},
        )
        logger.info(
            "delivery_email_recorded",
            project_id=project.project_id,
            status=audit.status,
            recipients=len(audit.to),
            error=audit.error,
        )
        return audit
