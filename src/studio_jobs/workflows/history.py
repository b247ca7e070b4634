"""Run History Appender: bounded run log plus ``current`` snapshot per namespace.

Project ``metadata`` holds one namespace per workflow::

    {
      "provisioning": {"runs": [...], "current": {...}},
      "archiving":    {"runs": [...], "current": {...}},
      "delivery":     {"runs": [...], "current": {...}}
    }

``runs`` keeps the newest ``max_runs`` entries (oldest dropped first).
``current`` is merged field by field, last write wins; a field set to
``None`` by the run is removed. Updating the project status is a separate
call made by the workflow after the append.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from studio_jobs.core.timestamps import Clock, utc_now
from studio_jobs.workflows.models import RunResult
from studio_jobs.workflows.projects import ProjectStore

DEFAULT_MAX_RUNS = 10


def _namespace(document: dict[str, Any], name: str) -> dict[str, Any]:
    section = document.get(name)
    if not isinstance(section, dict):
        section = {}
        document[name] = section
    return section


def _current(section: dict[str, Any]) -> dict[str, Any]:
    current = section.get("current")
    if not isinstance(current, dict):
        current = {}
        section["current"] = current
    return current


def merge_current(current: dict[str, Any], fields: Mapping[str, Any]) -> None:
    for key, value in fields.items():
        if value is None:
            current.pop(key, None)
        else:
            current[key] = value


def append_run_to_metadata(
    metadata: Mapping[str, Any] | None,
    run: RunResult,
    *,
    max_runs: int = DEFAULT_MAX_RUNS,
    now: datetime,
) -> dict[str, Any]:
    """Return a new metadata document with ``run`` appended. Input is not mutated."""
    document = copy.deepcopy(dict(metadata)) if isinstance(metadata, Mapping) else {}
    section = _namespace(document, run.namespace)

    runs = section.get("runs")
    runs = list(runs) if isinstance(runs, list) else []
    runs.append(run.to_document())
    section["runs"] = runs[-max_runs:]

    current = _current(section)
    merge_current(current, run.current_fields(current, now))
    return document


class RunHistoryAppender:
    """Persists runs into project metadata."""

    def __init__(
        self,
        projects: ProjectStore,
        *,
        max_runs: int = DEFAULT_MAX_RUNS,
        clock: Clock = utc_now,
    ) -> None:
        self._projects = projects
        self._max_runs = max_runs
        self._clock = clock

    def append_run(self, entity_id: str, metadata: Mapping[str, Any] | None, run: RunResult) -> dict[str, Any]:
        document = append_run_to_metadata(metadata, run, max_runs=self._max_runs, now=self._clock())
        self._projects.update_metadata(entity_id, document)
        return document

    def record_current(
        self,
        entity_id: str,
        metadata: Mapping[str, Any] | None,
        namespace: str,
        fields: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Merge ``fields`` into ``<namespace>.current`` without appending a run."""
        document = copy.deepcopy(dict(metadata)) if isinstance(metadata, Mapping) else {}
        merge_current(_current(_namespace(document, namespace)), fields)
        self._projects.update_metadata(entity_id, document)
        return document
