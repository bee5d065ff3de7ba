"""Typed errors raised by the invitation and role services.

Each error carries the HTTP status and a machine readable ``code`` used by the
JSON error handler registered in ``create_app``.
"""
from __future__ import annotations

from flask_babel import lazy_gettext as _l

INVITATION_INVALID_MESSAGE = _l("This invitation is no longer valid.")
ACCOUNT_EXISTS_MESSAGE = _l("An account with this email already exists. Please sign in instead.")


class InvitationError(Exception):
    """Base class for all provisioning and role resolution errors."""

    status_code = 500
    code = "error"
    default_message = "Unexpected error"

    def __init__(self, message=None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": str(self.message), "code": self.code}


class NotFoundError(InvitationError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class ForbiddenError(InvitationError):
    status_code = 403
    code = "forbidden"
    default_message = "You do not have permission to perform this action"


class ConflictError(InvitationError):
    status_code = 409
    code = "conflict"
    default_message = "Conflict"


class AccountExistsError(ConflictError):
    """An identity with the invited email already exists; the invitee should sign in."""

    code = "user_exists"
    default_message = ACCOUNT_EXISTS_MESSAGE


class InvitationAlreadyUsedError(ConflictError):
    code = "invitation_used"
    default_message = "This invitation has already been used"


class InvitationTerminalError(ConflictError):
    code = "invitation_terminal"
    default_message = "Accepted or revoked invitations cannot be changed"


class InvalidOrExpiredError(InvitationError):
    """Bad, unknown, consumed or stale secret.

    The message is the same whatever the cause so callers cannot probe which one it was.
    """

    status_code = 410
    code = "invalid_or_expired"
    default_message = INVITATION_INVALID_MESSAGE

    def __init__(self) -> None:
        super().__init__()


class ValidationFailedError(InvitationError):
    status_code = 400
    code = "validation_failed"
    default_message = "Validation failed"


class RateLimitedError(InvitationError):
    status_code = 429
    code = "rate_limited"
    default_message = "Too many invitations, try again in a minute"


class DependencyFailureError(InvitationError):
    """The identity provider or the relational store could not be reached."""

    status_code = 503
    code = "dependency_failure"
    default_message = "A backing service is unavailable"
