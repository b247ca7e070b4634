"""Root integrity: check a storage root against its contract.

A ``domain.root_integrity`` job names a storage root (``providerKey`` and
``rootKey``). The run:

1. rejects a ``mode`` other than ``report``/``repair``;
2. loads the root's active row from ``storage_root_contracts``;
3. takes the storage-mutation lease on ``root:<provider>:<root>``, so two
   checks (or a repair and a project workflow writing under that root)
   never overlap;
4. hands the payload and contract to the injected executor.

Steps 1 and 2 never raise: they return a result whose ``errors`` say what
was wrong, and the executor is not called. A busy lease raises
:class:`~studio_jobs.core.errors.WorkflowLockUnavailableError`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from studio_jobs.core.errors import WorkflowLockUnavailableError
from studio_jobs.core.logging import get_logger
from studio_jobs.core.orm.tables import StorageRootContractTable
from studio_jobs.core.timestamps import Clock, utc_now
from studio_jobs.workflows.lock import KIND_STORAGE_MUTATION, WorkflowLock, root_scope
from studio_jobs.workflows.models import RootIntegrityContract, RootIntegrityResult
from studio_jobs.workflows.payloads import ROOT_INTEGRITY_MODES, RootIntegrityPayload
from studio_jobs.workflows.protocols import RootIntegrityExecutor

logger = get_logger(__name__)

_contracts = StorageRootContractTable.__table__


class RootContractStore:
    """Reads ``storage_root_contracts``."""

    def __init__(self, sessions: sessionmaker[Session]) -> None:
        self._sessions = sessions

    def get_contract(self, provider_key: str, root_key: str) -> RootIntegrityContract | None:
        """The active contract for a root, or ``None``."""
        stmt = select(_contracts).where(
            _contracts.c.provider_key == provider_key,
            _contracts.c.root_key == root_key,
            _contracts.c.is_active.is_(True),
        )
        with self._sessions() as session:
            row = session.execute(stmt).mappings().first()
        if row is None:
            return None
        return RootIntegrityContract(
            provider_key=row["provider_key"],
            root_key=row["root_key"],
            contract_key=row["contract_key"],
            required_folders=_names(row["required_folders"]),
            optional_folders=_names(row["optional_folders"]),
            allowed_extras=_names(row["allowed_extras"]),
            allowed_root_files=_names(row["allowed_root_files"]),
            quarantine_relpath=row["quarantine_relpath"],
            max_items=row["max_items"],
            max_bytes=row["max_bytes"],
            is_active=row["is_active"],
        )


def _names(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item.strip()]


@dataclass(frozen=True)
class RootIntegrityOutcome:
    """``executed`` is false when the request was rejected before the executor ran."""

    result: RootIntegrityResult
    executed: bool


def build_job_payload(payload: RootIntegrityPayload, result: RootIntegrityResult) -> dict[str, Any]:
    """The job payload with the run's result stored under ``result``."""
    return {**payload.to_payload(), "result": result.to_document()}


class RootIntegrityRun:
    """Runs one root integrity check under the root's storage lease."""

    def __init__(
        self,
        contracts: RootContractStore,
        lock: WorkflowLock,
        executor: RootIntegrityExecutor,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._contracts = contracts
        self._lock = lock
        self._executor = executor
        self._clock = clock

    async def run(self, job_id: str, payload: RootIntegrityPayload) -> RootIntegrityOutcome:
        started_at = self._clock()

        if payload.mode.lower() not in ROOT_INTEGRITY_MODES:
            error = f"Invalid mode '{payload.mode}'. Expected 'report' or 'repair'."
            return RootIntegrityOutcome(self._rejected(payload, started_at, error), executed=False)

        contract = await asyncio.to_thread(self._contracts.get_contract, payload.provider_key, payload.root_key)
        if contract is None:
            error = (
                f"No storage_root_contracts entry for provider_key={payload.provider_key} "
                f"root_key={payload.root_key}."
            )
            return RootIntegrityOutcome(self._rejected(payload, started_at, error), executed=False)

        scope_id = root_scope(payload.provider_key, payload.root_key)
        lease = await self._lock.try_acquire(scope_id, KIND_STORAGE_MUTATION, job_id)
        if lease is None:
            raise WorkflowLockUnavailableError(scope_id, KIND_STORAGE_MUTATION)

        async with lease:
            logger.info(
                "root_integrity_started",
                provider_key=payload.provider_key,
                root_key=payload.root_key,
                mode=payload.mode,
                dry_run=payload.dry_run,
            )
            result = await self._executor.execute(payload, contract, job_id)

        logger.info(
            "root_integrity_completed",
            provider_key=result.provider_key,
            root_key=result.root_key,
            has_errors=result.has_errors,
        )
        return RootIntegrityOutcome(result, executed=True)

    def _rejected(self, payload: RootIntegrityPayload, started_at: datetime, error: str) -> RootIntegrityResult:
        logger.warning(
            "root_integrity_rejected",
            provider_key=payload.provider_key,
            root_key=payload.root_key,
            error=error,
        )
        return RootIntegrityResult(
            provider_key=payload.provider_key,
            root_key=payload.root_key,
            mode=payload.mode,
            dry_run=payload.dry_run,
            started_at=started_at,
            finished_at=self._clock(),
            errors=[error],
        )
