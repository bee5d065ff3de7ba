"""Postgres advisory lock context manager.

Uses pg_try_advisory_lock / pg_advisory_unlock so that a named job only runs in
one process at a time. The lock key is a signed 64-bit integer derived from the
job id. On other databases (SQLite in development and tests) there is only one
process, so the lock is always granted.
"""
from __future__ import annotations

import hashlib
from contextlib import contextmanager
from typing import Generator

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .. import db


def job_key(job_id: str) -> int:
    h = hashlib.sha256(job_id.encode("utf-8")).digest()
    # bigint is signed
    return int.from_bytes(h[:8], byteorder="big", signed=True)


@contextmanager
def pg_try_advisory_lock(job_id: str) -> Generator[bool, None, None]:
    """Yield True if the lock for job_id was acquired, False if another process holds it.

    Usage:
        with pg_try_advisory_lock('expire_stale_invitations') as locked:
            if not locked:
                return
            ...
    """
    if db.engine.dialect.name != "postgresql":
        yield True
        return

    key = job_key(job_id)
    conn = db.engine.connect()
    locked = False
    try:
        locked = bool(conn.execute(text("SELECT pg_try_advisory_lock(:k)"), {"k": key}).scalar())
        yield locked
    finally:
        if locked:
            try:
                conn.execute(text("SELECT pg_advisory_unlock(:k)"), {"k": key})
            except SQLAlchemyError:
                # the session lock dies with the connection anyway
                current_app.logger.warning("Could not release advisory lock for %s", job_id)
        conn.close()
