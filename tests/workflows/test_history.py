"""Tests for the run history appender."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from studio_jobs.workflows.history import RunHistoryAppender, append_run_to_metadata, merge_current
from studio_jobs.workflows.models import ArchiveRunResult, BootstrapRunResult, DomainResult

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def _archive_run(n: int, last_error: str | None = None) -> ArchiveRunResult:
    return ArchiveRunResult(
        job_id=f"job_{n}",
        project_id="prj_1",
        started_at_utc=NOW + timedelta(minutes=n),
        domains=[DomainResult(domain_key="nas", root_state="archived")],
        has_errors=last_error is not None,
        last_error=last_error,
    )


class TestAppendRun:
    def test_first_run_creates_namespace(self):
        document = append_run_to_metadata({}, _archive_run(1), now=NOW)

        section = document["archiving"]
        assert len(section["runs"]) == 1
        run = section["runs"][0]
        assert run["jobId"] == "job_1"
        assert run["startedAtUtc"] == "2026-03-02T09:01:00Z"
        assert run["domains"][0]["rootState"] == "archived"
        assert section["current"] == {"lastJobId": "job_1", "lastRunStartedAtUtc": "2026-03-02T09:01:00Z"}

    def test_keeps_newest_ten_runs(self):
        document: dict = {}
        for n in range(11):
            document = append_run_to_metadata(document, _archive_run(n), now=NOW)

        runs = document["archiving"]["runs"]
        assert len(runs) == 10
        assert runs[0]["jobId"] == "job_1"
        assert runs[-1]["jobId"] == "job_10"

    def test_custom_max_runs(self):
        document: dict = {}
        for n in range(4):
            document = append_run_to_metadata(document, _archive_run(n), max_runs=2, now=NOW)

        assert [r["jobId"] for r in document["archiving"]["runs"]] == ["job_2", "job_3"]

    def test_input_is_not_mutated(self):
        original = {"archiving": {"runs": [], "current": {"note": "keep"}}, "other": {"x": 1}}

        document = append_run_to_metadata(original, _archive_run(1), now=NOW)

        assert original["archiving"]["runs"] == []
        assert document["other"] == {"x": 1}
        assert document["archiving"]["current"]["note"] == "keep"

    def test_last_error_only_when_present(self):
        document = append_run_to_metadata({}, _archive_run(1, last_error="NAS offline."), now=NOW)
        document = append_run_to_metadata(document, _archive_run(2), now=NOW)

        current = document["archiving"]["current"]
        assert current["lastJobId"] == "job_2"
        # a clean run does not clear the previous error
        assert current["lastError"] == "NAS offline."

    def test_namespaces_are_independent(self):
        bootstrap = BootstrapRunResult(job_id="job_b", project_id="prj_1", started_at_utc=NOW)

        document = append_run_to_metadata({}, _archive_run(1), now=NOW)
        document = append_run_to_metadata(document, bootstrap, now=NOW)

        assert document["provisioning"]["runs"][0]["verifyDomainRoots"] is True
        assert document["archiving"]["current"]["lastJobId"] == "job_1"

    def test_malformed_sections_are_replaced(self):
        document = append_run_to_metadata({"archiving": "garbage"}, _archive_run(1), now=NOW)

        assert len(document["archiving"]["runs"]) == 1


def test_merge_current_none_removes_key():
    current = {"shareError": "expired", "stableShareUrl": "https://x"}

    merge_current(current, {"shareError": None, "stableShareUrl": "https://y"})

    assert current == {"stableShareUrl": "https://y"}


class TestRunHistoryAppender:
    def test_persists_metadata(self, seed_project, projects, history):
        project_id = seed_project(metadata={"notes": "hello"})

        history.append_run(project_id, projects.get_project(project_id).metadata, _archive_run(1))

        stored = projects.get_project(project_id).metadata
        assert stored["notes"] == "hello"
        assert stored["archiving"]["runs"][0]["jobId"] == "job_1"

    def test_record_current_without_run(self, seed_project, projects, history):
        project_id = seed_project()

        history.record_current(project_id, {}, "delivery", {"lastEmail": {"status": "failed"}})

        stored = projects.get_project(project_id).metadata
        assert stored["delivery"]["current"] == {"lastEmail": {"status": "failed"}}
        assert "runs" not in stored["delivery"]

    def test_max_runs_from_constructor(self, seed_project, projects, clock):
        project_id = seed_project()
        appender = RunHistoryAppender(projects, max_runs=1, clock=clock)

        metadata: dict = {}
        for n in range(3):
            metadata = appender.append_run(project_id, metadata, _archive_run(n))

        assert len(projects.get_project(project_id).metadata["archiving"]["runs"]) == 1
