"""Tests for the job enqueue helpers."""

from __future__ import annotations

from datetime import timedelta

import pytest

from studio_jobs.queue.models import ENTITY_TYPE_PROJECT, ENTITY_TYPE_STORAGE_ROOT, JobStatus
from studio_jobs.workflows.enqueue import ProjectJobEnqueuer
from studio_jobs.workflows.payloads import ArchivePayload, DeliveryEmailPayload, DeliveryPayload, RootIntegrityPayload


@pytest.fixture
def enqueuer(ops) -> ProjectJobEnqueuer:
    return ProjectJobEnqueuer(ops)


def test_enqueue_creates_project_job(enqueuer, store):
    result = enqueuer.enqueue(ArchivePayload.parse({"projectId": "prj_1", "force": True}))

    assert result.enqueued
    assert result.reason is None
    job = store.get_job(result.job_id)
    assert job.job_type_key == "project.archive"
    assert job.status is JobStatus.QUEUED
    assert job.entity_type_key == ENTITY_TYPE_PROJECT
    assert job.entity_key == "prj_1"
    assert job.payload["force"] is True
    assert job.payload == result.payload


def test_duplicate_is_suppressed(enqueuer):
    first = enqueuer.enqueue(DeliveryPayload.parse({"projectId": "prj_1"}))

    second = enqueuer.enqueue(DeliveryPayload.parse({"projectId": "prj_1", "force": True}))

    assert not second.enqueued
    assert second.job_id == first.job_id
    assert second.reason == f"project.delivery already queued/running (job_id={first.job_id}, status=queued)"


def test_running_job_also_suppresses(enqueuer, store, clock):
    first = enqueuer.enqueue(ArchivePayload.parse({"projectId": "prj_1"}))
    clock.advance(seconds=1)
    store.try_claim_job("worker-1", timedelta(minutes=5))

    second = enqueuer.enqueue(ArchivePayload.parse({"projectId": "prj_1"}))

    assert not second.enqueued
    assert second.reason.endswith(f"(job_id={first.job_id}, status=running)")


def test_finished_job_does_not_suppress(enqueuer, store):
    first = enqueuer.enqueue(ArchivePayload.parse({"projectId": "prj_1"}))
    store.mark_succeeded(first.job_id)

    second = enqueuer.enqueue(ArchivePayload.parse({"projectId": "prj_1"}))

    assert second.enqueued
    assert second.job_id != first.job_id


def test_types_and_projects_are_independent(enqueuer):
    assert enqueuer.enqueue(DeliveryPayload.parse({"projectId": "prj_1"})).enqueued
    assert enqueuer.enqueue(DeliveryEmailPayload.parse({"projectId": "prj_1"})).enqueued
    assert enqueuer.enqueue(DeliveryPayload.parse({"projectId": "prj_2"})).enqueued


def test_max_attempts_override(enqueuer, store):
    result = enqueuer.enqueue(ArchivePayload.parse({"projectId": "prj_1"}), max_attempts=2)

    assert store.get_job(result.job_id).max_attempts == 2


class TestRootIntegrity:
    def test_keyed_by_storage_root(self, enqueuer, store):
        result = enqueuer.enqueue_root_integrity(
            RootIntegrityPayload.parse({"providerKey": "dropbox", "mode": "repair", "dryRun": False})
        )

        job = store.get_job(result.job_id)
        assert job.job_type_key == "domain.root_integrity"
        assert job.entity_type_key == ENTITY_TYPE_STORAGE_ROOT
        assert job.entity_key == "dropbox:root"
        assert job.payload["mode"] == "repair"
        assert job.payload["dryRun"] is False

    def test_one_pending_check_per_root(self, enqueuer):
        first = enqueuer.enqueue_root_integrity(RootIntegrityPayload.parse({"providerKey": "dropbox"}))
        second = enqueuer.enqueue_root_integrity(RootIntegrityPayload.parse({"providerKey": "dropbox"}))
        other_root = enqueuer.enqueue_root_integrity(
            RootIntegrityPayload.parse({"providerKey": "dropbox", "rootKey": "archive"})
        )

        assert first.enqueued
        assert not second.enqueued
        assert second.job_id == first.job_id
        assert other_root.enqueued
