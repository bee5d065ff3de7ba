"""Task runner invoked by CronJob or ad-hoc CLI.

Run with:
  python -m directory_app.app.tasks run

Runs `directory_app.app.jobs.run_due_jobs()` once, guarded by a Postgres
advisory lock via `pg_lock` so replicas never run maintenance concurrently.
"""
from __future__ import annotations

import logging
import sys

from . import create_app
from .errors import DependencyFailureError
from .jobs import run_due_jobs
from .utils.pg_lock import pg_try_advisory_lock

logger = logging.getLogger("tasks")

LOCK_NAME = "run_due_jobs"


def run_app_tasks(app=None) -> dict[str, int] | None:
    """Run due jobs under the advisory lock; returns None when another process holds it."""
    app = app or create_app()
    with app.app_context():
        logger.info("Starting tasks runner")
        with pg_try_advisory_lock(LOCK_NAME) as locked:
            if not locked:
                logger.info("Lock not acquired for %s, skipping", LOCK_NAME)
                return None
            logger.info("Lock acquired for %s, running jobs", LOCK_NAME)
            try:
                results = run_due_jobs()
            except DependencyFailureError:
                logger.exception("Jobs failed: database unavailable")
                raise
            logger.info("Jobs finished: %s", results)
            return results


def main(argv: list[str] | None = None) -> int:
    argv = argv or sys.argv[1:]
    if not argv or argv[0] != "run":
        print("Usage: python -m directory_app.app.tasks run")
        return 2
    logging.basicConfig(level=logging.INFO)
    try:
        run_app_tasks()
    except DependencyFailureError:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
