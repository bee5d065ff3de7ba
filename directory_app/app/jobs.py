from __future__ import annotations

from flask import current_app

from .invitations.store import InvitationStore
from .models import utcnow


# Job decorator for scheduler auto-discovery
def job(**meta):
    """Mark a function as a scheduled job.

    Example:
        @job(schedule='interval', minutes=60, id='expire_stale_invitations')
        def expire_stale_invitations():
            ...
    Supported meta keys: schedule (only 'interval'), id, weeks, days, hours, minutes, seconds
    """

    def _decorator(fn):
        setattr(fn, "job_meta", meta)
        return fn

    return _decorator


@job(schedule="interval", minutes=60, id="expire_stale_invitations")
def expire_stale_invitations() -> int:
    """Flip pending invitations whose expiry has passed to ``expired``.

    Acceptance already refuses stale secrets on its own; this only keeps the
    stored status honest for listings and lets resend pick them up again.
    """
    count = InvitationStore().mark_expired(now=utcnow())
    if count:
        current_app.logger.info("expire_stale_invitations: expired %s invitation(s)", count)
    else:
        current_app.logger.info("expire_stale_invitations: nothing to expire")
    return count


def run_due_jobs() -> dict[str, int]:
    """Run every maintenance job once. Call it under an advisory lock (see tasks.py)."""
    current_app.logger.info("run_due_jobs: running maintenance jobs")
    return {"expire_stale_invitations": expire_stale_invitations()}
