"""
CLI layer for studio-jobs.

Provides a Typer application with sub-commands that delegate to the queue
and workflow packages. This package handles only terminal transport:
argument parsing, coloured output, and table formatting.

Entry point::

    studio-jobs --help
"""

from studio_jobs.cli.app import app

__all__ = ["app"]
