"""Membership store: privilege checks and membership provisioning.

Company invitees get one ``members`` row. Association invitees always get a
generic ``members`` row (no company) for platform access, plus an
``association_managers`` row when invited as admin or manager.
"""
from __future__ import annotations
from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from . import db
from .errors import DependencyFailureError, NotFoundError, ValidationFailedError
from .models import (
    ASSOCIATION_PRIVILEGED_ROLES,
    COMPANY_PRIVILEGED_ROLES,
    ORG_ASSOCIATION,
    ORG_COMPANY,
    AdminUser,
    Association,
    AssociationManager,
    Company,
    Member,
)


class MembershipProvisioningError(DependencyFailureError):
    """Membership rows could not be written."""


@dataclass(frozen=True)
class ProvisionedMembership:
    kind: str  # "member" or "association_manager"
    id: int
    organization_id: int | None
    role: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "id": self.id, "organization_id": self.organization_id, "role": self.role}


def get_organization(organization_type: str, organization_id: int):
    """Return the active Company or Association, or None."""
    if organization_type == ORG_COMPANY:
        model = Company
    elif organization_type == ORG_ASSOCIATION:
        model = Association
    else:
        raise ValidationFailedError(f"Unknown organization type: {organization_type}")
    org = db.session.get(model, organization_id)
    if org is None or not org.is_active:
        return None
    return org


def is_platform_admin(identity_id: int) -> bool:
    return AdminUser.query.filter_by(user_id=identity_id, is_active=True).first() is not None


def can_manage(identity_id: int, organization_type: str, organization_id: int) -> bool:
    """True when the identity may issue, resend or revoke invitations for the organization."""
    if organization_type == ORG_COMPANY:
        privileged = (
            Member.query.filter_by(user_id=identity_id, company_id=organization_id, is_active=True)
            .filter(Member.role.in_(COMPANY_PRIVILEGED_ROLES))
            .first()
        )
    elif organization_type == ORG_ASSOCIATION:
        privileged = AssociationManager.query.filter_by(
            user_id=identity_id, association_id=organization_id, is_active=True
        ).first()
    else:
        return False
    return privileged is not None or is_platform_admin(identity_id)


def provision_for_invitation(invitation, identity_id: int) -> list[ProvisionedMembership]:
    """Insert the membership rows an accepted invitation grants, in one transaction."""
    org = get_organization(invitation.organization_type, invitation.organization_id)
    if org is None:
        raise NotFoundError(f"{invitation.organization_type.capitalize()} no longer exists")

    rows: list[tuple[str, object]] = []
    if invitation.organization_type == ORG_COMPANY:
        member = Member(
            user_id=identity_id,
            company_id=org.id,
            role=invitation.role,
            designation=invitation.designation,
            department=invitation.department,
            is_active=True,
        )
        rows.append(("member", member))
    else:
        if invitation.role in ASSOCIATION_PRIVILEGED_ROLES:
            manager = AssociationManager(
                user_id=identity_id, association_id=org.id, role=invitation.role, is_active=True
            )
            rows.append(("association_manager", manager))
        member = Member(
            user_id=identity_id,
            company_id=None,
            role=invitation.role,
            designation=invitation.designation,
            department=invitation.department,
            is_active=True,
        )
        rows.append(("member", member))

    try:
        for _, row in rows:
            db.session.add(row)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise MembershipProvisioningError(f"Failed to create membership record: {exc.orig}") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise MembershipProvisioningError("Failed to create membership record") from exc

    provisioned = []
    for kind, row in rows:
        org_id = row.association_id if kind == "association_manager" else row.company_id
        provisioned.append(ProvisionedMembership(kind=kind, id=row.id, organization_id=org_id, role=row.role))
    current_app.logger.info(
        "Provisioned %d membership row(s) for identity %s", len(provisioned), identity_id
    )
    return provisioned


def remove_memberships(provisioned: list[ProvisionedMembership]) -> None:
    try:
        for item in provisioned:
            model = AssociationManager if item.kind == "association_manager" else Member
            model.query.filter_by(id=item.id).delete(synchronize_session=False)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise DependencyFailureError("Failed to remove membership records") from exc
