"""Core primitives shared by the queue, worker and workflows.

errors      StudioJobsError hierarchy and retry classification
logging     structlog configuration and scoped log context
settings    pydantic-settings configuration (``STUDIO_JOBS_*``)
timestamps  UTC clock and entity-id helpers
cache       TokenCache for collaborator credentials
orm         SQLAlchemy tables, engine and session factories
"""
