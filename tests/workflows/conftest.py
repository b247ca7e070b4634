"""Fixtures providing fake workflow collaborators (see ``tests._support.fakes``)."""

from __future__ import annotations

from collections.abc import Callable

import pytest
from sqlalchemy import insert

from studio_jobs.core.orm.tables import StorageRootContractTable
from tests._support.fakes import (
    FakeArchiveExecutor,
    FakeDeliveryExecutor,
    FakeEmailGateway,
    FakeProvisioner,
    FakeRootIntegrityExecutor,
)


@pytest.fixture
def provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture
def archive_executor() -> FakeArchiveExecutor:
    return FakeArchiveExecutor()


@pytest.fixture
def delivery_executor() -> FakeDeliveryExecutor:
    return FakeDeliveryExecutor()


@pytest.fixture
def email_gateway() -> FakeEmailGateway:
    return FakeEmailGateway()


@pytest.fixture
def root_executor() -> FakeRootIntegrityExecutor:
    return FakeRootIntegrityExecutor()


@pytest.fixture
def seed_contract(sessions) -> Callable[..., None]:
    """Insert a ``storage_root_contracts`` row."""

    def _seed(provider_key: str = "dropbox", root_key: str = "root", *, is_active: bool = True, **columns) -> None:
        values = {
            "contract_key": f"{provider_key}_{root_key}",
            "required_folders": ["01_Clients", "02_Archive"],
            "optional_folders": ["99_Scratch"],
            **columns,
        }
        with sessions.begin() as session:
            session.execute(
                insert(StorageRootContractTable.__table__).values(
                    provider_key=provider_key, root_key=root_key, is_active=is_active, **values
                )
            )

    return _seed
