"""Tests for ``studio-jobs jobs`` commands."""

from __future__ import annotations

import json

from studio_jobs.cli import app


def _text(result) -> str:
    """Output with rich line wrapping undone."""
    return " ".join(result.output.split())


def _enqueue(runner, database_url, *args):
    return runner.invoke(app, ["jobs", "enqueue", *args, "--database-url", database_url])


def _list(runner, database_url, job_type="project.archive", project_id="prj_1"):
    result = runner.invoke(
        app, ["jobs", "list", "--type", job_type, "--project", project_id, "--json", "--database-url", database_url]
    )
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


class TestEnqueue:
    def test_enqueue_then_skip(self, runner, database_url):
        first = _enqueue(runner, database_url, "archive", "prj_1", "--editor", "JD")
        second = _enqueue(runner, database_url, "archive", "prj_1")

        assert first.exit_code == 0, first.output
        assert "Enqueued project.archive job job_" in _text(first)
        assert second.exit_code == 0
        assert "Skipped" in _text(second)
        assert "project.archive already queued/running" in _text(second)

        jobs = _list(runner, database_url)
        assert len(jobs) == 1
        assert jobs[0]["status"] == "queued"

    def test_json_output(self, runner, database_url):
        result = _enqueue(
            runner,
            database_url,
            "delivery",
            "prj_1",
            "--to",
            "a@example.com",
            "--to",
            "A@example.com",
            "--force",
            "--json",
        )

        assert result.exit_code == 0, result.output
        document = json.loads(result.stdout)
        assert document["enqueued"] is True
        assert document["payload"]["toEmails"] == ["a@example.com"]
        assert document["payload"]["force"] is True

    def test_delivery_email_payload(self, runner, database_url):
        result = _enqueue(runner, database_url, "delivery-email", "prj_1", "--reply-to", "p@studio.example", "--json")

        payload = json.loads(result.stdout)["payload"]
        assert payload["replyToEmail"] == "p@studio.example"
        assert "force" not in payload

    def test_blank_project_id(self, runner, database_url):
        result = _enqueue(runner, database_url, "bootstrap", "  ")

        assert result.exit_code == 1

    def test_unknown_kind(self, runner, database_url):
        result = _enqueue(runner, database_url, "cleanup", "prj_1")

        assert result.exit_code != 0


class TestMaintenance:
    def test_list_empty(self, runner, database_url):
        result = runner.invoke(
            app, ["jobs", "list", "-t", "project.delivery", "-p", "prj_9", "--database-url", database_url]
        )

        assert result.exit_code == 0
        assert "No items." in _text(result)

    def test_list_rejects_unknown_type(self, runner, database_url):
        result = runner.invoke(
            app, ["jobs", "list", "-t", "project.cleanup", "-p", "prj_1", "--database-url", database_url]
        )

        assert result.exit_code == 1

    def test_reset(self, runner, database_url):
        _enqueue(runner, database_url, "archive", "prj_1")

        result = runner.invoke(app, ["jobs", "reset", "prj_1", "project.archive", "--database-url", database_url])

        assert result.exit_code == 0
        assert "1 job(s) reset for prj_1" in _text(result)

    def test_reap_dry_run(self, runner, database_url):
        result = runner.invoke(app, ["jobs", "reap", "--dry-run", "--database-url", database_url])

        assert result.exit_code == 0
        assert "0 stale running job(s) would be requeued" in _text(result)

    def test_reap(self, runner, database_url):
        result = runner.invoke(app, ["jobs", "reap", "--database-url", database_url])

        assert result.exit_code == 0
        assert "0 stale running job(s) requeued" in _text(result)


class TestEnqueueRootIntegrity:
    def _invoke(self, runner, database_url, *args):
        return runner.invoke(app, ["jobs", "enqueue-root-integrity", *args, "--database-url", database_url])

    def test_apply_repair(self, runner, database_url):
        result = self._invoke(runner, database_url, "dropbox", "--mode", "repair", "--apply", "--json")

        assert result.exit_code == 0, result.output
        document = json.loads(result.stdout)
        assert document["enqueued"] is True
        assert document["payload"]["providerKey"] == "dropbox"
        assert document["payload"]["rootKey"] == "root"
        assert document["payload"]["mode"] == "repair"
        assert document["payload"]["dryRun"] is False

    def test_one_pending_check_per_root(self, runner, database_url):
        first = self._invoke(runner, database_url, "nas", "--root", "archive")
        second = self._invoke(runner, database_url, "nas", "--root", "archive")
        other_root = self._invoke(runner, database_url, "nas")

        assert "Enqueued domain.root_integrity job job_" in _text(first)
        assert "Skipped" in _text(second)
        assert "Enqueued domain.root_integrity job job_" in _text(other_root)

    def test_blank_provider(self, runner, database_url):
        result = self._invoke(runner, database_url, "  ")

        assert result.exit_code == 1
