"""Dedicated scheduler process using APScheduler.

Runs separately from the WSGI workers (its own container or systemd service).
Job definitions live in the SQLAlchemyJobStore, and every execution is wrapped
in the same advisory lock the CronJob runner uses.
"""
from __future__ import annotations

import importlib
import inspect
import logging
import time
from logging.handlers import RotatingFileHandler

from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask

from . import create_app
from .utils.pg_lock import pg_try_advisory_lock

logger = logging.getLogger("scheduler")

INTERVAL_KEYS = ("weeks", "days", "hours", "minutes", "seconds")


def setup_logging(path: str = "/tmp/scheduler.log") -> None:
    handler = RotatingFileHandler(path, maxBytes=10 * 1024 * 1024, backupCount=3)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


def get_scheduler(app: Flask) -> BackgroundScheduler:
    jobstores = {"default": SQLAlchemyJobStore(url=app.config.get("SQLALCHEMY_DATABASE_URI"))}
    return BackgroundScheduler(jobstores=jobstores)


def run_job_in_app_context(module_name: str, func_name: str, *a, **kw):
    """Import module:function and run it inside a fresh app context.

    Stored by APScheduler as a textual reference, so it must stay importable at
    module level.
    """
    app = create_app()
    fn = getattr(importlib.import_module(module_name), func_name)
    with app.app_context():
        with pg_try_advisory_lock(f"{module_name}.{func_name}") as locked:
            if not locked:
                logger.info("Lock not acquired for %s.%s, skipping", module_name, func_name)
                return None
            try:
                return fn(*a, **kw)
            except Exception:
                logger.exception("Job %s.%s failed", module_name, func_name)
                raise


def discover_jobs(jobs_module) -> list[tuple[str, object, dict]]:
    """Functions of jobs_module carrying @job(...) metadata, as (job id, function, meta)."""
    found = []
    # plain functions only; module globals include unbound proxies like current_app
    for name, fn in inspect.getmembers(jobs_module, inspect.isfunction):
        meta = getattr(fn, "job_meta", None)
        if meta:
            found.append((meta.get("id", name), fn, meta))
    return found


def register_jobs(scheduler: BackgroundScheduler) -> int:
    """Register every decorated job through the dispatcher; returns how many were added."""
    from . import jobs as jobs_module

    # stale persisted jobs may point at callables that no longer exist
    scheduler.remove_all_jobs()
    dispatcher_ref = f"{__name__}:run_job_in_app_context"
    registered = 0
    for job_id, fn, meta in discover_jobs(jobs_module):
        schedule_type = meta.get("schedule", "interval")
        if schedule_type != "interval":
            logger.info("Unsupported schedule type %s for job %s", schedule_type, job_id)
            continue
        interval_kwargs = {k: meta[k] for k in INTERVAL_KEYS if k in meta} or {"minutes": 60}
        scheduler.add_job(
            dispatcher_ref,
            "interval",
            args=[fn.__module__, fn.__name__],
            id=job_id,
            replace_existing=True,
            **interval_kwargs,
        )
        registered += 1
        logger.info("Registered job %s schedule=%s meta=%s", job_id, schedule_type, meta)
    if registered == 0:
        logger.info("No decorated jobs found in jobs module to register")
    return registered


def run():
    app = create_app()
    setup_logging()

    scheduler = get_scheduler(app)
    # the job store is created on start; register afterwards so remove_all_jobs can reach it
    scheduler.start(paused=True)
    register_jobs(scheduler)
    scheduler.resume()
    logger.info("Scheduler started")
    try:
        while True:
            time.sleep(60)
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down scheduler")
        scheduler.shutdown()
