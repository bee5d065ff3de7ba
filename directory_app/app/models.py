from __future__ import annotations
from datetime import datetime, timezone
from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import UserMixin
from . import db


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


INVITATION_PENDING = "pending"
INVITATION_ACCEPTED = "accepted"
INVITATION_EXPIRED = "expired"
INVITATION_REVOKED = "revoked"
TERMINAL_INVITATION_STATUSES = (INVITATION_ACCEPTED, INVITATION_REVOKED)

ORG_COMPANY = "company"
ORG_ASSOCIATION = "association"

COMPANY_ROLES = ("owner", "admin", "member")
COMPANY_PRIVILEGED_ROLES = ("owner", "admin")
ASSOCIATION_ROLES = ("admin", "manager", "member")
ASSOCIATION_PRIVILEGED_ROLES = ("admin", "manager")


class User(UserMixin, db.Model):
    """Identity record owned by the auth provider."""

    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    confirmed = db.Column(db.Boolean, default=False, nullable=False)
    confirmed_at = db.Column(db.DateTime, nullable=True)

    profile = db.relationship("Profile", back_populates="user", uselist=False, cascade="all, delete-orphan")

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)


class Profile(db.Model):
    """Projection of identity attributes used by the rest of the application."""

    __tablename__ = "profiles"
    id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    email = db.Column(db.String(255), nullable=True)
    first_name = db.Column(db.String(120), nullable=False, default="")
    last_name = db.Column(db.String(120), nullable=False, default="")
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = db.relationship("User", back_populates="profile")


class AdminUser(db.Model):
    __tablename__ = "admin_users"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_super_admin = db.Column(db.Boolean, default=False, nullable=False)
    # hidden super admins do not show up in admin listings
    is_hidden = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)


class Association(db.Model):
    __tablename__ = "associations"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    contact_email = db.Column(db.String(255), nullable=False)
    logo = db.Column(db.String(1024), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    companies = db.relationship("Company", back_populates="association")


class Company(db.Model):
    __tablename__ = "companies"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)
    association_id = db.Column(db.Integer, db.ForeignKey("associations.id"), nullable=True, index=True)
    logo = db.Column(db.String(1024), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    association = db.relationship("Association", back_populates="companies")


class Member(db.Model):
    """Company membership, or a generic platform membership when company_id is null."""

    __tablename__ = "members"
    __table_args__ = (db.UniqueConstraint("user_id", "company_id", name="uq_members_user_company"),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    role = db.Column(db.String(20), nullable=False, default="member")
    designation = db.Column(db.String(255), nullable=True)
    department = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    company = db.relationship("Company")


class AssociationManager(db.Model):
    __tablename__ = "association_managers"
    __table_args__ = (db.UniqueConstraint("user_id", "association_id", name="uq_association_managers_user_association"),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    association_id = db.Column(db.Integer, db.ForeignKey("associations.id"), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default="manager")
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    association = db.relationship("Association")


class Invitation(db.Model):
    __tablename__ = "member_invitations"
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    first_name = db.Column(db.String(120), nullable=False)
    last_name = db.Column(db.String(120), nullable=False)
    organization_id = db.Column(db.Integer, nullable=False, index=True)
    organization_type = db.Column(db.String(20), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="member")
    designation = db.Column(db.String(255), nullable=True)
    department = db.Column(db.String(255), nullable=True)
    # SHA-256 of the secret; the secret itself is only ever emailed
    token_hash = db.Column(db.String(64), unique=True, nullable=False, index=True)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=INVITATION_PENDING, index=True)
    invited_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    accepted_at = db.Column(db.DateTime, nullable=True)
    # identity ids; no FK so a compensated identity never blocks the audit trail
    accepted_by = db.Column(db.Integer, nullable=True)
    revoked_at = db.Column(db.DateTime, nullable=True)
    revoked_by = db.Column(db.Integer, nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_INVITATION_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "organization_id": self.organization_id,
            "organization_type": self.organization_type,
            "role": self.role,
            "designation": self.designation,
            "department": self.department,
            "status": self.status,
            "expires_at": self.expires_at.isoformat() + "Z" if self.expires_at else None,
            "created_at": self.created_at.isoformat() + "Z" if self.created_at else None,
            "accepted_at": self.accepted_at.isoformat() + "Z" if self.accepted_at else None,
            "accepted_by": self.accepted_by,
            "revoked_at": self.revoked_at.isoformat() + "Z" if self.revoked_at else None,
        }


class InvitationAudit(db.Model):
    """Append-only trail of invitation lifecycle actions."""

    __tablename__ = "member_invitation_audit"
    id = db.Column(db.Integer, primary_key=True)
    invitation_id = db.Column(db.Integer, db.ForeignKey("member_invitations.id"), nullable=False, index=True)
    action = db.Column(db.String(20), nullable=False)  # issued, resent, accepted, revoked
    performed_by = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
