"""studio-jobs: database-backed job execution for studio project workflows.

Packages:
    core        errors, logging, settings, timestamps, ORM tables
    queue       job store (claim, reap, finalize) and operator ops
    execution   handler registry and async worker
    workflows   bootstrap, archive, delivery and delivery email
    cli         ``studio-jobs`` command line
"""

__version__ = "0.1.0"
