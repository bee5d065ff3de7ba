"""Durable invitation records and their audit trail.

State transitions that race with each other (accept, resend, revoke) are issued
as single conditional UPDATE statements and report whether they won by the
affected row count. Never turn them into read-then-write pairs.
"""
from __future__ import annotations
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from .. import db
from ..errors import DependencyFailureError
from ..models import (
    INVITATION_ACCEPTED,
    INVITATION_EXPIRED,
    INVITATION_PENDING,
    INVITATION_REVOKED,
    Invitation,
    InvitationAudit,
    utcnow,
)

RESENDABLE_STATUSES = (INVITATION_PENDING, INVITATION_EXPIRED)


class InvitationStore:
    def get(self, invitation_id: int) -> Invitation | None:
        try:
            return db.session.get(Invitation, invitation_id)
        except OperationalError as exc:
            db.session.rollback()
            raise DependencyFailureError("Invitation store unavailable") from exc

    def find_by_digest(self, token_hash: str) -> Invitation | None:
        try:
            return Invitation.query.filter_by(token_hash=token_hash).first()
        except OperationalError as exc:
            db.session.rollback()
            raise DependencyFailureError("Invitation store unavailable") from exc

    def find_pending_by_digest(self, token_hash: str, now: datetime | None = None) -> Invitation | None:
        now = now or utcnow()
        try:
            return (
                Invitation.query.filter_by(token_hash=token_hash, status=INVITATION_PENDING)
                .filter(Invitation.expires_at > now)
                .first()
            )
        except OperationalError as exc:
            db.session.rollback()
            raise DependencyFailureError("Invitation store unavailable") from exc

    def list_for_organization(self, organization_type: str, organization_id: int, status: str | None = None):
        q = Invitation.query.filter_by(organization_type=organization_type, organization_id=organization_id)
        if status:
            q = q.filter_by(status=status)
        try:
            return q.order_by(Invitation.created_at.desc(), Invitation.id.desc()).all()
        except OperationalError as exc:
            db.session.rollback()
            raise DependencyFailureError("Invitation store unavailable") from exc

    def count_recent_by_inviter(self, inviter_id: int, window: timedelta) -> int:
        since = utcnow() - window
        try:
            return Invitation.query.filter(Invitation.invited_by == inviter_id, Invitation.created_at >= since).count()
        except OperationalError as exc:
            db.session.rollback()
            raise DependencyFailureError("Invitation store unavailable") from exc

    def add(self, invitation: Invitation, performed_by: int | None, notes: str | None = None) -> Invitation:
        """Persist a new invitation together with its ``issued`` audit entry."""
        try:
            db.session.add(invitation)
            db.session.flush()
            db.session.add(
                InvitationAudit(invitation_id=invitation.id, action="issued", performed_by=performed_by, notes=notes)
            )
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise DependencyFailureError("Failed to create invitation") from exc
        return invitation

    def rotate_token(self, invitation_id: int, token_hash: str, expires_at: datetime, performed_by: int) -> bool:
        """Swap in a new digest and expiry, forcing status back to pending.

        Only pending or expired invitations are touched; returns False otherwise.
        """
        try:
            updated = (
                Invitation.query.filter(
                    Invitation.id == invitation_id, Invitation.status.in_(RESENDABLE_STATUSES)
                ).update(
                    {
                        Invitation.token_hash: token_hash,
                        Invitation.expires_at: expires_at,
                        Invitation.status: INVITATION_PENDING,
                        Invitation.updated_at: utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            if updated:
                db.session.add(
                    InvitationAudit(
                        invitation_id=invitation_id,
                        action="resent",
                        performed_by=performed_by,
                        notes="Invitation resent with new token",
                    )
                )
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise DependencyFailureError("Failed to update invitation") from exc
        db.session.expire_all()
        return bool(updated)

    def revoke(self, invitation_id: int, performed_by: int, reason: str | None = None) -> bool:
        now = utcnow()
        try:
            updated = (
                Invitation.query.filter(
                    Invitation.id == invitation_id, Invitation.status.in_(RESENDABLE_STATUSES)
                ).update(
                    {
                        Invitation.status: INVITATION_REVOKED,
                        Invitation.revoked_at: now,
                        Invitation.revoked_by: performed_by,
                        Invitation.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            if updated:
                db.session.add(
                    InvitationAudit(
                        invitation_id=invitation_id,
                        action="revoked",
                        performed_by=performed_by,
                        notes=reason or "Invitation revoked",
                    )
                )
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise DependencyFailureError("Failed to revoke invitation") from exc
        db.session.expire_all()
        return bool(updated)

    def mark_accepted(self, invitation_id: int, identity_id: int, now: datetime | None = None) -> bool:
        """The single-use guard: pending and unexpired -> accepted, in one statement."""
        now = now or utcnow()
        try:
            updated = (
                Invitation.query.filter(
                    Invitation.id == invitation_id,
                    Invitation.status == INVITATION_PENDING,
                    Invitation.expires_at > now,
                ).update(
                    {
                        Invitation.status: INVITATION_ACCEPTED,
                        Invitation.accepted_at: now,
                        Invitation.accepted_by: identity_id,
                        Invitation.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise DependencyFailureError("Failed to update invitation status") from exc
        db.session.expire_all()
        return updated == 1

    def mark_expired(self, now: datetime | None = None, invitation_id: int | None = None) -> int:
        """Flip pending invitations past their expiry to expired; returns how many changed."""
        now = now or utcnow()
        q = Invitation.query.filter(Invitation.status == INVITATION_PENDING, Invitation.expires_at <= now)
        if invitation_id is not None:
            q = q.filter(Invitation.id == invitation_id)
        try:
            updated = q.update(
                {Invitation.status: INVITATION_EXPIRED, Invitation.updated_at: now}, synchronize_session=False
            )
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise DependencyFailureError("Failed to expire invitations") from exc
        db.session.expire_all()
        return updated

    def append_audit(self, invitation_id: int, action: str, performed_by: int | None, notes: str | None = None) -> None:
        try:
            db.session.add(
                InvitationAudit(invitation_id=invitation_id, action=action, performed_by=performed_by, notes=notes)
            )
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Failed to write %s audit entry for invitation %s", action, invitation_id)
            raise

    def audit_trail(self, invitation_id: int) -> list[InvitationAudit]:
        return (
            InvitationAudit.query.filter_by(invitation_id=invitation_id)
            .order_by(InvitationAudit.created_at, InvitationAudit.id)
            .all()
        )
