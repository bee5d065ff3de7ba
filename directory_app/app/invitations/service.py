from __future__ import annotations
import csv
import io
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Iterable

from email_validator import EmailNotValidError, validate_email
from flask import current_app

from ..errors import (
    ForbiddenError,
    InvalidOrExpiredError,
    InvitationError,
    InvitationTerminalError,
    NotFoundError,
    RateLimitedError,
    ValidationFailedError,
)
from ..mail import send_invitation_email
from ..memberships import can_manage, get_organization
from ..models import (
    ASSOCIATION_ROLES,
    COMPANY_ROLES,
    INVITATION_PENDING,
    ORG_ASSOCIATION,
    ORG_COMPANY,
    Invitation,
    utcnow,
)
from ..utils import tokens
from .store import InvitationStore

ALLOWED_ROLES = {ORG_COMPANY: COMPANY_ROLES, ORG_ASSOCIATION: ASSOCIATION_ROLES}
NOTIFICATION_FAILED_WARNING = "Invitation saved but the email could not be delivered"
CSV_COLUMNS = ("email", "first_name", "last_name", "role", "designation", "department")


@dataclass
class IssueResult:
    invitation: Invitation
    # raw secret, handed out exactly once for out-of-band delivery
    secret: str
    notified: bool
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "invitation_id": self.invitation.id,
            "invitation": self.invitation.to_dict(),
            "notified": self.notified,
            "warnings": list(self.warnings),
        }


ResendResult = IssueResult


@dataclass
class BulkIssueResult:
    success: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    notification_failures: int = 0
    invitation_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "failed": self.failed,
            "errors": list(self.errors),
            "notification_failures": self.notification_failures,
            "invitation_ids": list(self.invitation_ids),
        }


def parse_invitation_csv(text: str) -> list[dict]:
    """Read invitation rows from CSV text with a header line.

    Recognised columns are ``CSV_COLUMNS``; header names are case-insensitive and
    blank lines are skipped.
    """
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    if not reader.fieldnames:
        raise ValidationFailedError("CSV file is empty")
    header = [(name or "").strip().lower() for name in reader.fieldnames]
    if "email" not in header:
        raise ValidationFailedError("CSV header must contain an email column")
    rows = []
    for raw in reader:
        row = {}
        for key, value in raw.items():
            name = (key or "").strip().lower()
            if name in CSV_COLUMNS:
                row[name] = (value or "").strip()
        if any(row.values()):
            rows.append(row)
    return rows


def _text(data: dict, key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value).strip()


class InvitationService:
    """Issue, resend, revoke and preview invitations.

    The raw secret only ever leaves through the returned result object and the
    notifier; the store sees its digest.
    """

    def __init__(self, store: InvitationStore | None = None, notifier=None) -> None:
        self.store = store or InvitationStore()
        self.notifier = notifier or send_invitation_email

    # -- helpers -----------------------------------------------------------

    def _authorize(self, actor_id: int, organization_type: str, organization_id: int):
        if organization_type not in ALLOWED_ROLES:
            raise ValidationFailedError("organization_type must be 'company' or 'association'")
        org = get_organization(organization_type, organization_id)
        if org is None:
            raise NotFoundError(f"{organization_type.capitalize()} not found")
        if not can_manage(actor_id, organization_type, organization_id):
            raise ForbiddenError(f"You cannot manage invitations for this {organization_type}")
        return org

    def _validate_recipient(self, organization_type: str, data: dict) -> dict:
        raw_email = _text(data, "email")
        if not raw_email:
            raise ValidationFailedError("Email is required")
        try:
            email = validate_email(raw_email, check_deliverability=False).normalized.lower()
        except EmailNotValidError as exc:
            raise ValidationFailedError(f"Invalid email address: {raw_email}") from exc
        first_name = _text(data, "first_name")
        last_name = _text(data, "last_name")
        if not first_name or not last_name:
            raise ValidationFailedError("First and last name are required")
        role = (_text(data, "role") or "member").lower()
        if role not in ALLOWED_ROLES[organization_type]:
            raise ValidationFailedError(f"Role '{role}' is not valid for a {organization_type}")
        return {
            "email": email,
            "first_name": first_name,
            "last_name": last_name,
            "role": role,
            "designation": _text(data, "designation") or None,
            "department": _text(data, "department") or None,
        }

    def _create(self, issuer_id: int, organization_type: str, organization_id: int, fields: dict, ttl: timedelta):
        secret = tokens.generate()
        now = utcnow()
        invitation = Invitation(
            email=fields["email"],
            first_name=fields["first_name"],
            last_name=fields["last_name"],
            organization_id=organization_id,
            organization_type=organization_type,
            role=fields["role"],
            designation=fields["designation"],
            department=fields["department"],
            token_hash=tokens.digest(secret),
            expires_at=now + ttl,
            status=INVITATION_PENDING,
            invited_by=issuer_id,
            created_at=now,
        )
        self.store.add(invitation, performed_by=issuer_id, notes=f"Invitation created for {fields['email']}")
        current_app.logger.info(
            "Invitation %s issued by %s for %s %s", invitation.id, issuer_id, organization_type, organization_id
        )
        return invitation, secret

    def _notify(self, invitation: Invitation, secret: str, organization_name: str, reminder: bool = False) -> bool:
        ok = self.notifier(invitation, secret, organization_name, reminder=reminder)
        if not ok:
            current_app.logger.warning("Invitation email for invitation %s was not delivered", invitation.id)
        return bool(ok)

    def _check_rate_limit(self, issuer_id: int) -> None:
        limit = int(current_app.config.get("INVITATION_RATE_LIMIT_PER_MINUTE", 5))
        if limit <= 0:
            return
        if self.store.count_recent_by_inviter(issuer_id, timedelta(minutes=1)) >= limit:
            raise RateLimitedError(f"Rate limit exceeded: maximum {limit} invitations per minute")

    # -- operations --------------------------------------------------------

    def issue(
        self,
        issuer_id: int,
        email: str,
        first_name: str,
        last_name: str,
        organization_id: int,
        organization_type: str,
        role: str = "member",
        designation: str | None = None,
        department: str | None = None,
    ) -> IssueResult:
        org = self._authorize(issuer_id, organization_type, organization_id)
        fields = self._validate_recipient(
            organization_type,
            {
                "email": email,
                "first_name": first_name,
                "last_name": last_name,
                "role": role,
                "designation": designation,
                "department": department,
            },
        )
        self._check_rate_limit(issuer_id)
        ttl = timedelta(hours=int(current_app.config.get("INVITATION_TTL_HOURS", 48)))
        invitation, secret = self._create(issuer_id, organization_type, organization_id, fields, ttl)
        notified = self._notify(invitation, secret, org.name)
        return IssueResult(
            invitation=invitation,
            secret=secret,
            notified=notified,
            warnings=[] if notified else [NOTIFICATION_FAILED_WARNING],
        )

    def issue_bulk(
        self, issuer_id: int, organization_type: str, organization_id: int, rows: Iterable[dict]
    ) -> BulkIssueResult:
        """Issue one invitation per row; a bad row is reported and skipped."""
        org = self._authorize(issuer_id, organization_type, organization_id)
        ttl = timedelta(days=int(current_app.config.get("BULK_INVITATION_TTL_DAYS", 7)))
        error_limit = int(current_app.config.get("BULK_ERROR_LIMIT", 10))
        result = BulkIssueResult()
        for index, row in enumerate(rows, start=1):
            try:
                fields = self._validate_recipient(organization_type, row)
                invitation, secret = self._create(issuer_id, organization_type, organization_id, fields, ttl)
            except InvitationError as exc:
                result.failed += 1
                if len(result.errors) < error_limit:
                    result.errors.append(f"Row {index}: {exc.message}")
                continue
            result.success += 1
            result.invitation_ids.append(invitation.id)
            if not self._notify(invitation, secret, org.name):
                result.notification_failures += 1
        current_app.logger.info(
            "Bulk invitation for %s %s complete: %s success, %s failed",
            organization_type,
            organization_id,
            result.success,
            result.failed,
        )
        return result

    def resend(self, invitation_id: int, actor_id: int) -> ResendResult:
        invitation = self.store.get(invitation_id)
        if invitation is None:
            raise NotFoundError("Invitation not found")
        if not can_manage(actor_id, invitation.organization_type, invitation.organization_id):
            raise ForbiddenError("You cannot resend this invitation")
        if invitation.is_terminal:
            raise InvitationTerminalError(f"Invitation is {invitation.status} and cannot be resent")
        org = get_organization(invitation.organization_type, invitation.organization_id)
        if org is None:
            raise NotFoundError(f"{invitation.organization_type.capitalize()} not found")

        secret = tokens.generate()
        ttl = timedelta(hours=int(current_app.config.get("RESEND_INVITATION_TTL_HOURS", 48)))
        if not self.store.rotate_token(invitation_id, tokens.digest(secret), utcnow() + ttl, performed_by=actor_id):
            # accepted or revoked between the read above and the update
            raise InvitationTerminalError("Invitation can no longer be resent")
        invitation = self.store.get(invitation_id)
        current_app.logger.info("Invitation %s resent by %s", invitation_id, actor_id)
        notified = self._notify(invitation, secret, org.name, reminder=True)
        return ResendResult(
            invitation=invitation,
            secret=secret,
            notified=notified,
            warnings=[] if notified else [NOTIFICATION_FAILED_WARNING],
        )

    def revoke(self, invitation_id: int, actor_id: int, reason: str | None = None) -> Invitation:
        invitation = self.store.get(invitation_id)
        if invitation is None:
            raise NotFoundError("Invitation not found")
        if not can_manage(actor_id, invitation.organization_type, invitation.organization_id):
            raise ForbiddenError("You cannot revoke this invitation")
        if invitation.is_terminal or not self.store.revoke(invitation_id, actor_id, reason):
            raise InvitationTerminalError("Invitation is already accepted or revoked")
        current_app.logger.info("Invitation %s revoked by %s", invitation_id, actor_id)
        return self.store.get(invitation_id)

    def verify(self, secret: str) -> dict:
        """Safe details of the invitation behind a secret, for the registration page."""
        if not tokens.is_well_formed(secret):
            raise InvalidOrExpiredError()
        invitation = self.store.find_by_digest(tokens.digest(secret))
        if invitation is None or invitation.status != INVITATION_PENDING:
            raise InvalidOrExpiredError()
        if invitation.expires_at <= utcnow():
            self.store.mark_expired(invitation_id=invitation.id)
            raise InvalidOrExpiredError()
        org = get_organization(invitation.organization_type, invitation.organization_id)
        return {
            "email": invitation.email,
            "first_name": invitation.first_name,
            "last_name": invitation.last_name,
            "organization_id": invitation.organization_id,
            "organization_type": invitation.organization_type,
            "organization_name": org.name if org else None,
            "role": invitation.role,
            "designation": invitation.designation,
            "department": invitation.department,
            "expires_at": invitation.expires_at.isoformat() + "Z",
        }

    def list_invitations(
        self, actor_id: int, organization_type: str, organization_id: int, status: str | None = None
    ) -> list[Invitation]:
        self._authorize(actor_id, organization_type, organization_id)
        return self.store.list_for_organization(organization_type, organization_id, status=status)
