"""Derive the effective role of an identity for the current request.

Nothing here is persisted. Callers may pass a role hint (and an organization id)
to choose between roles the identity already holds; a hint never grants
anything.
"""
from __future__ import annotations
from dataclasses import dataclass, field

from sqlalchemy import or_

from .. import db
from ..models import (
    COMPANY_PRIVILEGED_ROLES,
    ORG_ASSOCIATION,
    ORG_COMPANY,
    AdminUser,
    Association,
    AssociationManager,
    Company,
    Member,
)

ROLE_PLATFORM_ADMIN = "platform-admin"
ROLE_DISTINGUISHED_ADMIN = "distinguished-admin"
ROLE_ASSOCIATION = "association"
ROLE_COMPANY = "company"
ROLE_MEMBER = "member"
ROLE_NONE = "none"

HINT_ALIASES = {
    "admin": "admin",
    "platform-admin": "admin",
    "platform_admin": "admin",
    "association": ROLE_ASSOCIATION,
    "company": ROLE_COMPANY,
    "member": ROLE_MEMBER,
}


@dataclass
class ResolvedRole:
    role: str
    organization_type: str | None = None
    organization_id: int | None = None
    organization_name: str | None = None
    membership_role: str | None = None
    context: dict = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role in (ROLE_PLATFORM_ADMIN, ROLE_DISTINGUISHED_ADMIN)

    def to_dict(self) -> dict:
        return {
            "role": self.role,
            "organization_type": self.organization_type,
            "organization_id": self.organization_id,
            "organization_name": self.organization_name,
            "membership_role": self.membership_role,
            "context": dict(self.context),
        }


def _no_role() -> ResolvedRole:
    return ResolvedRole(role=ROLE_NONE)


def _admin_row(identity_id: int) -> AdminUser | None:
    return AdminUser.query.filter_by(user_id=identity_id, is_active=True).first()


def _manager_rows(identity_id: int) -> list[AssociationManager]:
    return (
        AssociationManager.query.join(Association, AssociationManager.association_id == Association.id)
        .filter(
            AssociationManager.user_id == identity_id,
            AssociationManager.is_active.is_(True),
            Association.is_active.is_(True),
        )
        .order_by(AssociationManager.created_at, AssociationManager.id)
        .all()
    )


def _member_rows(identity_id: int, privileged_only: bool = False) -> list[Member]:
    # rows of a deactivated company are ignored; company-less rows always count
    q = Member.query.outerjoin(Company, Member.company_id == Company.id).filter(
        Member.user_id == identity_id,
        Member.is_active.is_(True),
        or_(Member.company_id.is_(None), Company.is_active.is_(True)),
    )
    if privileged_only:
        q = q.filter(Member.company_id.isnot(None), Member.role.in_(COMPANY_PRIVILEGED_ROLES))
    return q.order_by(Member.created_at, Member.id).all()


def _pick(rows: list, selected_organization_id: int | None, key):
    """Row whose organization matches the selection, else the oldest one."""
    if not rows:
        return None
    if selected_organization_id is not None:
        for row in rows:
            if key(row) == selected_organization_id:
                return row
    return rows[0]


def _from_admin(admin: AdminUser) -> ResolvedRole:
    distinguished = bool(admin.is_super_admin and admin.is_hidden)
    return ResolvedRole(
        role=ROLE_DISTINGUISHED_ADMIN if distinguished else ROLE_PLATFORM_ADMIN,
        context={"is_super_admin": bool(admin.is_super_admin), "is_hidden": bool(admin.is_hidden)},
    )


def _from_association(association: Association, membership_role: str | None, acting_as_admin: bool = False) -> ResolvedRole:
    context = {"logo": association.logo, "contact_email": association.contact_email}
    if acting_as_admin:
        context["acting_as_admin"] = True
    return ResolvedRole(
        role=ROLE_ASSOCIATION,
        organization_type=ORG_ASSOCIATION,
        organization_id=association.id,
        organization_name=association.name,
        membership_role=membership_role,
        context=context,
    )


def _company_context(company: Company | None) -> dict:
    if company is None:
        return {}
    association = company.association
    return {
        "logo": company.logo,
        "association_id": company.association_id,
        "association_name": association.name if association else None,
    }


def _from_member(member: Member, role: str) -> ResolvedRole:
    company = member.company
    context = _company_context(company)
    context.update({"designation": member.designation, "department": member.department})
    return ResolvedRole(
        role=role,
        organization_type=ORG_COMPANY if company else None,
        organization_id=company.id if company else None,
        organization_name=company.name if company else None,
        membership_role=member.role,
        context=context,
    )


class RoleResolver:
    def resolve(
        self, identity_id: int, selected_role: str | None = None, selected_organization_id: int | None = None
    ) -> ResolvedRole:
        if selected_role:
            hint = HINT_ALIASES.get(selected_role.strip().lower())
            if hint is None:
                return _no_role()
            return self._resolve_hinted(identity_id, hint, selected_organization_id)
        return self._resolve_by_precedence(identity_id)

    def _resolve_hinted(self, identity_id: int, hint: str, selected_organization_id: int | None) -> ResolvedRole:
        if hint == "admin":
            admin = _admin_row(identity_id)
            return _from_admin(admin) if admin else _no_role()

        if hint == ROLE_ASSOCIATION:
            managers = _manager_rows(identity_id)
            manager = _pick(managers, selected_organization_id, lambda m: m.association_id)
            if manager is not None:
                return _from_association(manager.association, manager.role)
            # platform admins may act as any association without a manager row
            if selected_organization_id is not None and _admin_row(identity_id) is not None:
                association = db.session.get(Association, selected_organization_id)
                if association is not None and association.is_active:
                    return _from_association(association, None, acting_as_admin=True)
            return _no_role()

        if hint == ROLE_COMPANY:
            member = _pick(_member_rows(identity_id, privileged_only=True), selected_organization_id, lambda m: m.company_id)
            return _from_member(member, ROLE_COMPANY) if member else _no_role()

        members = _member_rows(identity_id)
        if not members:
            return _no_role()
        if selected_organization_id is not None:
            for member in members:
                if member.company_id == selected_organization_id:
                    return _from_member(member, ROLE_MEMBER)
        with_company = [m for m in members if m.company_id is not None]
        return _from_member((with_company or members)[0], ROLE_MEMBER)

    def _resolve_by_precedence(self, identity_id: int) -> ResolvedRole:
        admin = _admin_row(identity_id)
        if admin is not None:
            return _from_admin(admin)

        managers = _manager_rows(identity_id)
        if managers:
            return _from_association(managers[0].association, managers[0].role)

        privileged = _member_rows(identity_id, privileged_only=True)
        if privileged:
            return _from_member(privileged[0], ROLE_COMPANY)

        members = _member_rows(identity_id)
        if members:
            with_company = [m for m in members if m.company_id is not None]
            return _from_member((with_company or members)[0], ROLE_MEMBER)

        return _no_role()

    def available_roles(self, identity_id: int) -> dict:
        """Every role the identity could select with a hint."""
        admin = _admin_row(identity_id)
        if admin is not None:
            associations = Association.query.filter_by(is_active=True).order_by(Association.name).all()
        else:
            associations = [m.association for m in _manager_rows(identity_id)]
        companies = [m.company for m in _member_rows(identity_id, privileged_only=True) if m.company is not None]
        return {
            "is_admin": admin is not None,
            "is_super_admin": bool(admin and admin.is_super_admin),
            "is_distinguished_admin": bool(admin and admin.is_super_admin and admin.is_hidden),
            "associations": [{"id": a.id, "name": a.name, "logo": a.logo} for a in associations],
            "companies": [{"id": c.id, "name": c.name, "logo": c.logo} for c in companies if c.is_active],
            "is_member": bool(_member_rows(identity_id)),
        }
