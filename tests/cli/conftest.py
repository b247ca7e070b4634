"""Fixtures for CLI tests: a file-backed database created through ``db init``."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from studio_jobs.cli import app


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def database_url(tmp_path: Path, runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.delenv("STUDIO_JOBS_WORKER_HANDLERS", raising=False)
    monkeypatch.setenv("STUDIO_JOBS_LOG_LEVEL", "WARNING")
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    result = runner.invoke(app, ["db", "init", "--database-url", url])
    assert result.exit_code == 0, result.output
    return url
