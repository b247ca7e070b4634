"""
Centralized settings for studio-jobs.

One validated, cached settings object read from ``STUDIO_JOBS_*``
environment variables (or a ``.env`` file). Workers, stores and the CLI
take their defaults from here; every constructor still accepts explicit
values so tests never depend on the environment.

Tags:
    studio-jobs, configuration, settings, pydantic, caching

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StudioJobsSettings(BaseSettings):
    """studio-jobs configuration.

    All fields can be set via ``STUDIO_JOBS_*`` environment variables (e.g.
    ``STUDIO_JOBS_DATABASE_URL=postgresql+psycopg://...``).
    """

    model_config = SettingsConfigDict(
        env_prefix="STUDIO_JOBS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///data/studio_jobs.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int = Field(default=5)

    # ── Worker ───────────────────────────────────────────────────
    worker_poll_interval_seconds: float = Field(default=3.0, gt=0)
    worker_lease_seconds: int = Field(default=120, gt=0, description="Job lease (locked_until) duration")
    worker_error_backoff_seconds: float = Field(default=5.0, ge=0)
    worker_handlers: str = Field(
        default="",
        description="module:function returning a HandlerRegistry (used by `worker start`)",
    )

    # ── Queue ────────────────────────────────────────────────────
    reaper_stale_minutes: int = Field(default=60, gt=0)
    job_default_max_attempts: int = Field(default=5, ge=1)

    # ── Workflows ────────────────────────────────────────────────
    workflow_lock_ttl_seconds: int = Field(default=6 * 60 * 60, gt=0)
    history_max_runs: int = Field(default=10, ge=1)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="auto", description="json, console or auto")

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console", "auto"):
            raise ValueError(f"log_format must be json, console or auto (got {value!r})")
        return value

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def json_logs(self) -> bool | None:
        """Tri-state flag for :func:`~studio_jobs.core.logging.configure_logging`."""
        if self.log_format == "auto":
            return None
        return self.log_format == "json"

    def ensure_sqlite_dir(self) -> None:
        """Create the parent directory of a file-backed SQLite database."""
        if not self.is_sqlite:
            return
        path = self.database_url.split("///", 1)[-1]
        if path and path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, StudioJobsSettings] = {}


def get_settings(*, env_file: str | None = None, _force_reload: bool = False) -> StudioJobsSettings:
    """Load, validate, and cache a :class:`StudioJobsSettings` instance."""
    cache_key = env_file or ""
    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]

    if env_file:
        settings = StudioJobsSettings(_env_file=env_file)  # type: ignore[call-arg]
    else:
        settings = StudioJobsSettings()

    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
