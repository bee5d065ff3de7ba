"""Auth identity provider.

Owns credential storage and email confirmation state. Every call commits (or
rolls back) its own transaction, so callers must treat it as a separate system
from the membership tables.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from .. import db
from ..errors import DependencyFailureError
from ..models import Profile, User, utcnow


class IdentityExistsError(Exception):
    """Raised by create_identity when the email is already registered."""


class IdentityProvider:
    def find_identity_by_email(self, email: str) -> int | None:
        try:
            user = User.query.filter_by(email=email.strip().lower()).first()
        except OperationalError as exc:
            db.session.rollback()
            raise DependencyFailureError("Identity provider unavailable") from exc
        return user.id if user else None

    def create_identity(self, email: str, password: str, profile: dict | None = None) -> int:
        """Create a confirmed identity and its profile projection, returning the new id."""
        profile = profile or {}
        user = User()
        user.email = email.strip().lower()
        user.set_password(password)
        user.confirmed = True
        user.confirmed_at = utcnow()
        user.profile = Profile(
            email=user.email,
            first_name=profile.get("first_name") or "",
            last_name=profile.get("last_name") or "",
        )
        try:
            db.session.add(user)
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise IdentityExistsError(user.email) from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise DependencyFailureError("Failed to create user account") from exc
        current_app.logger.info("Identity %s created", user.id)
        return user.id

    def delete_identity(self, identity_id: int) -> None:
        try:
            user = db.session.get(User, identity_id)
            if user is None:
                return
            db.session.delete(user)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise DependencyFailureError("Failed to delete user account") from exc
        current_app.logger.info("Identity %s deleted", identity_id)
