"""Tests for the workflow lock."""

from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from studio_jobs.core.errors import ValidationError
from studio_jobs.core.orm.session import session_factory
from studio_jobs.workflows.lock import KIND_STORAGE_MUTATION, UNKNOWN_HOLDER, WorkflowLock, project_scope, root_scope

SCOPE = "project:prj_1"


class TestScopes:
    def test_project_scope(self):
        assert project_scope("prj_1") == "project:prj_1"

    def test_root_scope(self):
        assert root_scope("dropbox", "main") == "root:dropbox:main"

    @pytest.mark.parametrize("bad", ["", "  "])
    def test_blank_components_rejected(self, bad):
        with pytest.raises(ValidationError):
            project_scope(bad)
        with pytest.raises(ValidationError):
            root_scope(bad, "main")
        with pytest.raises(ValidationError):
            root_scope("dropbox", bad)


class TestAcquire:
    def test_second_holder_is_refused(self, lock, clock):
        assert lock.acquire(SCOPE, KIND_STORAGE_MUTATION, "job_a") == clock()
        assert lock.acquire(SCOPE, KIND_STORAGE_MUTATION, "job_b") is None
        assert lock.get_holder(SCOPE, KIND_STORAGE_MUTATION) == "job_a"

    def test_kinds_and_scopes_are_independent(self, lock):
        assert lock.acquire(SCOPE, KIND_STORAGE_MUTATION, "job_a")
        assert lock.acquire(SCOPE, "metadata_sync", "job_b")
        assert lock.acquire("project:prj_2", KIND_STORAGE_MUTATION, "job_c")

    def test_same_holder_refreshes(self, lock, clock):
        lock.acquire(SCOPE, KIND_STORAGE_MUTATION, "job_a")
        clock.advance(hours=5)

        assert lock.acquire(SCOPE, KIND_STORAGE_MUTATION, "job_a") == clock()

        clock.advance(hours=5)
        assert lock.is_locked(SCOPE, KIND_STORAGE_MUTATION)

    def test_expired_lease_can_be_taken(self, lock, clock):
        lock.acquire(SCOPE, KIND_STORAGE_MUTATION, "job_crashed")
        clock.advance(hours=6, seconds=1)

        assert not lock.is_locked(SCOPE, KIND_STORAGE_MUTATION)
        assert lock.acquire(SCOPE, KIND_STORAGE_MUTATION, "job_b") is not None
        assert lock.get_holder(SCOPE, KIND_STORAGE_MUTATION) == "job_b"

    def test_custom_ttl(self, sessions, clock):
        lock = WorkflowLock(sessions, ttl=timedelta(minutes=1), clock=clock)
        lock.acquire(SCOPE, KIND_STORAGE_MUTATION, "job_a")
        clock.advance(minutes=2)

        assert lock.acquire(SCOPE, KIND_STORAGE_MUTATION, "job_b") is not None

    @pytest.mark.integration
    def test_concurrent_acquires_grant_one_lease(self, file_engine, clock):
        lock = WorkflowLock(session_factory(file_engine), clock=clock)
        barrier = threading.Barrier(8)
        results: dict[str, object] = {}

        def acquire(holder_id: str) -> None:
            barrier.wait()
            results[holder_id] = lock.acquire(SCOPE, KIND_STORAGE_MUTATION, holder_id)

        threads = [threading.Thread(target=acquire, args=(f"job_{n}",)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        winners = [holder for holder, acquired_at in results.items() if acquired_at is not None]
        assert len(results) == 8
        assert len(winners) == 1
        assert lock.get_holder(SCOPE, KIND_STORAGE_MUTATION) == winners[0]


class TestRelease:
    def test_release_only_by_holder(self, lock):
        lock.acquire(SCOPE, KIND_STORAGE_MUTATION, "job_a")

        assert not lock.release(SCOPE, KIND_STORAGE_MUTATION, "job_b")
        assert lock.release(SCOPE, KIND_STORAGE_MUTATION, "job_a")
        assert not lock.is_locked(SCOPE, KIND_STORAGE_MUTATION)

    def test_cleanup_expired(self, lock, clock):
        lock.acquire(SCOPE, KIND_STORAGE_MUTATION, "job_a")
        lock.acquire("project:prj_2", KIND_STORAGE_MUTATION, "job_b")
        clock.advance(hours=7)

        assert lock.cleanup_expired() == 2
        assert lock.cleanup_expired() == 0


class TestLease:
    @pytest.mark.asyncio
    async def test_context_manager_releases(self, lock):
        lease = await lock.try_acquire(SCOPE, KIND_STORAGE_MUTATION, "job_a")

        async with lease:
            assert lock.is_locked(SCOPE, KIND_STORAGE_MUTATION)
            assert await lock.try_acquire(SCOPE, KIND_STORAGE_MUTATION, "job_b") is None

        assert lease.released
        assert not lock.is_locked(SCOPE, KIND_STORAGE_MUTATION)

    @pytest.mark.asyncio
    async def test_released_on_exception(self, lock):
        lease = await lock.try_acquire(SCOPE, KIND_STORAGE_MUTATION, "job_a")

        with pytest.raises(RuntimeError):
            async with lease:
                raise RuntimeError("copy failed")

        assert not lock.is_locked(SCOPE, KIND_STORAGE_MUTATION)

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, lock):
        lease = await lock.try_acquire(SCOPE, KIND_STORAGE_MUTATION, "job_a")
        await lease.release()
        # someone else takes the scope; a second release must not remove their lease
        await lock.try_acquire(SCOPE, KIND_STORAGE_MUTATION, "job_b")
        await lease.release()

        assert lock.get_holder(SCOPE, KIND_STORAGE_MUTATION) == "job_b"

    @pytest.mark.asyncio
    async def test_blank_holder_becomes_unknown(self, lock):
        lease = await lock.try_acquire(SCOPE, KIND_STORAGE_MUTATION, "  ")

        assert lease.holder_id == UNKNOWN_HOLDER
        assert lock.get_holder(SCOPE, KIND_STORAGE_MUTATION) == UNKNOWN_HOLDER
