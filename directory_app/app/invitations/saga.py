"""Invitation acceptance.

The identity provider and the membership tables commit independently, so
acceptance runs as a saga: every provisioning step has a compensating action
that is applied in reverse order when a later step fails.

    presented -> validated -> identity_provisioned -> membership_provisioned -> committed
                                      \\___________________ rolled_back ___________/

The single-use guarantee comes from the final compare-and-set on the
invitation row, not from the lookup in the validation step.
"""
from __future__ import annotations
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..auth.provider import IdentityExistsError, IdentityProvider
from ..errors import (
    AccountExistsError,
    InvalidOrExpiredError,
    InvitationAlreadyUsedError,
    InvitationError,
    ValidationFailedError,
)
from ..memberships import ProvisionedMembership, provision_for_invitation, remove_memberships
from ..models import utcnow
from ..utils import tokens
from .store import InvitationStore


class SagaState:
    PRESENTED = "presented"
    VALIDATED = "validated"
    IDENTITY_PROVISIONED = "identity_provisioned"
    MEMBERSHIP_PROVISIONED = "membership_provisioned"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass
class AcceptanceResult:
    identity_id: int
    invitation_id: int
    memberships: list[ProvisionedMembership] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "user_id": self.identity_id,
            "invitation_id": self.invitation_id,
            "memberships": [m.to_dict() for m in self.memberships],
        }


class AcceptanceSaga:
    """One acceptance attempt. Not retriable: build a new saga to try again."""

    def __init__(self, store: InvitationStore | None = None, provider: IdentityProvider | None = None) -> None:
        self.store = store or InvitationStore()
        self.provider = provider or IdentityProvider()
        self.state = SagaState.PRESENTED
        self.identity_id: int | None = None
        self.memberships: list[ProvisionedMembership] = []

    def _transition(self, state: str) -> None:
        current_app.logger.debug("Acceptance saga %s -> %s", self.state, state)
        self.state = state

    def accept(
        self, secret: str, password: str, first_name: str | None = None, last_name: str | None = None
    ) -> AcceptanceResult:
        if self.state != SagaState.PRESENTED:
            raise RuntimeError("An acceptance saga can only run once")

        min_length = int(current_app.config.get("PASSWORD_MIN_LENGTH", 8))
        if not password or len(password) < min_length:
            raise ValidationFailedError(f"Password must be at least {min_length} characters")

        # validate
        if not tokens.is_well_formed(secret):
            raise InvalidOrExpiredError()
        invitation = self.store.find_pending_by_digest(tokens.digest(secret), now=utcnow())
        if invitation is None:
            raise InvalidOrExpiredError()
        invitation_id = invitation.id
        email = invitation.email
        self._transition(SagaState.VALIDATED)

        if self.provider.find_identity_by_email(email) is not None:
            raise AccountExistsError()

        # provision identity
        profile = {
            "first_name": (first_name or "").strip() or invitation.first_name,
            "last_name": (last_name or "").strip() or invitation.last_name,
        }
        try:
            self.identity_id = self.provider.create_identity(email, password, profile)
        except IdentityExistsError as exc:
            # registered concurrently between the lookup and the insert
            raise AccountExistsError() from exc
        self._transition(SagaState.IDENTITY_PROVISIONED)

        # provision memberships
        try:
            self.memberships = provision_for_invitation(invitation, self.identity_id)
        except InvitationError:
            current_app.logger.warning(
                "Membership provisioning failed for invitation %s, rolling back identity %s",
                invitation_id,
                self.identity_id,
            )
            self._compensate()
            raise
        self._transition(SagaState.MEMBERSHIP_PROVISIONED)

        # commit: the compare-and-set decides which attempt wins
        try:
            won = self.store.mark_accepted(invitation_id, self.identity_id, now=utcnow())
        except InvitationError:
            self._compensate()
            raise
        if not won:
            current_app.logger.warning("Invitation %s was accepted concurrently, rolling back", invitation_id)
            self._compensate()
            raise InvitationAlreadyUsedError()
        self._transition(SagaState.COMMITTED)

        try:
            self.store.append_audit(
                invitation_id, "accepted", self.identity_id, notes=f"Invitation accepted by {email}"
            )
        except SQLAlchemyError:
            current_app.logger.warning("Invitation %s accepted without an audit entry", invitation_id)

        current_app.logger.info("Invitation %s accepted, identity %s created", invitation_id, self.identity_id)
        return AcceptanceResult(
            identity_id=self.identity_id, invitation_id=invitation_id, memberships=list(self.memberships)
        )

    def _compensate(self) -> None:
        """Undo whatever was provisioned, newest first. Failures are logged and skipped."""
        if self.memberships:
            try:
                remove_memberships(self.memberships)
            except InvitationError:
                current_app.logger.exception("Compensation failed: could not remove memberships %s", self.memberships)
        if self.identity_id is not None:
            try:
                self.provider.delete_identity(self.identity_id)
            except InvitationError:
                current_app.logger.exception("Compensation failed: could not delete identity %s", self.identity_id)
        self._transition(SagaState.ROLLED_BACK)
