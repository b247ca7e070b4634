"""Tests for status and data-profile guards."""

import pytest

from studio_jobs.workflows.guards import (
    ARCHIVE_GUARD,
    BOOTSTRAP_GUARD,
    DELIVERY_GUARD,
    ROOT_STATE_BLOCKED_STATUS_NOT_READY,
    check_data_profile,
)


class TestBootstrapGuard:
    def test_ready_status_allowed(self):
        assert BOOTSTRAP_GUARD.validate_start("ready_to_provision", force=False).ok

    def test_status_is_case_insensitive(self):
        assert BOOTSTRAP_GUARD.validate_start("Ready_To_Provision", force=False).ok

    def test_not_ready(self):
        decision = BOOTSTRAP_GUARD.validate_start("active", force=False)

        assert not decision.ok
        assert decision.error == "Project status 'active' is not ready_to_provision."
        assert BOOTSTRAP_GUARD.blocked_root_state(decision) == ROOT_STATE_BLOCKED_STATUS_NOT_READY

    def test_force_overrides_status(self):
        assert BOOTSTRAP_GUARD.validate_start("active", force=True).ok

    def test_in_progress_beats_force(self):
        decision = BOOTSTRAP_GUARD.validate_start("provisioning", force=True)

        assert not decision.ok
        assert decision.already_running
        assert decision.error == "Project is already provisioning."
        assert BOOTSTRAP_GUARD.blocked_root_state(decision) == "blocked_already_provisioning"


class TestArchiveGuard:
    @pytest.mark.parametrize("status", ["to_archive", "archive_failed"])
    def test_allowed(self, status):
        assert ARCHIVE_GUARD.validate_start(status, force=False).ok

    def test_already_archived(self):
        decision = ARCHIVE_GUARD.validate_start("archived", force=False)

        assert decision.error == "Project is already archived."
        assert not decision.already_running

    def test_archived_with_force(self):
        assert ARCHIVE_GUARD.validate_start("archived", force=True).ok

    def test_other_status(self):
        decision = ARCHIVE_GUARD.validate_start("active", force=False)

        assert decision.error == "Project status is not eligible for archiving."

    def test_archiving(self):
        decision = ARCHIVE_GUARD.validate_start("archiving", force=False)

        assert ARCHIVE_GUARD.blocked_root_state(decision) == "blocked_already_archiving"


class TestDeliveryGuard:
    @pytest.mark.parametrize("status", ["ready_to_deliver", "delivery_failed", "delivered"])
    def test_allowed(self, status):
        assert DELIVERY_GUARD.validate_start(status, force=False).ok

    def test_blocked(self):
        assert DELIVERY_GUARD.validate_start("active", force=False).error == (
            "Project status is not eligible for delivery."
        )
        assert DELIVERY_GUARD.validate_start("delivering", force=True).already_running


class TestDataProfile:
    def test_real_is_eligible(self):
        assert check_data_profile("real", False, "archive").ok
        assert check_data_profile(" REAL ", False, "archive").ok

    def test_non_real_blocked(self):
        decision = check_data_profile("test", False, "provisioning")

        assert not decision.ok
        assert decision.error == "Project data_profile='test' is not eligible for provisioning."

    def test_allow_non_real(self):
        assert check_data_profile("test", True, "delivery").ok
