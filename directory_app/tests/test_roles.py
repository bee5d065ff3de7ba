from directory_app.app import db
from directory_app.app.roles.resolver import RoleResolver


def resolve(user, role=None, org_id=None):
    return RoleResolver().resolve(user.id, role, org_id)


def test_no_memberships_resolves_to_none(app, factory):
    u = factory.user('nobody@example.com')
    assert resolve(u).role == 'none'
    assert resolve(u).organization_id is None


def test_precedence_admin_beats_everything(app, factory):
    u = factory.user('everything@example.com')
    association = factory.association('Guild')
    company = factory.company('Acme', association=association)
    factory.member(u, company, role='owner')
    factory.manager(u, association)
    factory.admin(u)
    assert resolve(u).role == 'platform-admin'


def test_precedence_association_then_company_then_member(app, factory):
    association = factory.association('Guild')
    company = factory.company('Acme', association=association)

    manager = factory.user('manager@example.com')
    factory.member(manager, company, role='owner')
    factory.manager(manager, association)
    resolved = resolve(manager)
    assert resolved.role == 'association'
    assert resolved.organization_id == association.id
    assert resolved.organization_name == 'Guild'

    owner = factory.user('owner@example.com')
    factory.member(owner, company, role='owner')
    resolved = resolve(owner)
    assert resolved.role == 'company'
    assert resolved.organization_type == 'company'
    assert resolved.membership_role == 'owner'
    assert resolved.context['association_name'] == 'Guild'

    plain = factory.user('plain@example.com')
    factory.member(plain, company, role='member')
    resolved = resolve(plain)
    assert resolved.role == 'member'
    assert resolved.organization_id == company.id


def test_member_prefers_row_with_company(app, factory):
    company = factory.company('Acme')
    u = factory.user('member@example.com')
    factory.member(u, None)
    factory.member(u, company)
    assert resolve(u).organization_id == company.id
    assert resolve(u, 'member').organization_id == company.id


def test_generic_member_without_company(app, factory):
    u = factory.user('generic@example.com')
    factory.member(u, None)
    resolved = resolve(u)
    assert resolved.role == 'member'
    assert resolved.organization_id is None


def test_distinguished_admin_needs_both_flags(app, factory):
    both = factory.user('hidden.super@example.com')
    factory.admin(both, is_super_admin=True, is_hidden=True)
    super_only = factory.user('super@example.com')
    factory.admin(super_only, is_super_admin=True)
    hidden_only = factory.user('hidden@example.com')
    factory.admin(hidden_only, is_hidden=True)

    assert resolve(both).role == 'distinguished-admin'
    assert resolve(both, 'admin').role == 'distinguished-admin'
    assert resolve(super_only, 'admin').role == 'platform-admin'
    assert resolve(hidden_only).role == 'platform-admin'


def test_inactive_rows_are_ignored(app, factory):
    company = factory.company('Acme')
    u = factory.user('inactive@example.com')
    factory.admin(u, is_active=False)
    factory.member(u, company, role='owner', is_active=False)
    assert resolve(u).role == 'none'


def test_hint_selects_sibling_association(app, factory):
    a = factory.association('Alpha')
    b = factory.association('Beta')
    u = factory.user('twohats@example.com')
    factory.manager(u, a)
    factory.manager(u, b)

    assert resolve(u).organization_id == a.id
    assert resolve(u, 'association', b.id).organization_id == b.id
    assert resolve(u, 'association').organization_id == a.id
    # a selection the identity does not hold falls back to the oldest row
    assert resolve(u, 'association', 9999).organization_id == a.id


def test_hint_selects_sibling_company(app, factory):
    c1 = factory.company('One')
    c2 = factory.company('Two')
    c3 = factory.company('Three')
    u = factory.user('owner@example.com')
    factory.member(u, c1, role='owner')
    factory.member(u, c2, role='admin')
    factory.member(u, c3, role='member')

    assert resolve(u, 'company').organization_id == c1.id
    assert resolve(u, 'company', c2.id).organization_id == c2.id
    # plain membership is not a company role
    assert resolve(u, 'company', c3.id).organization_id == c1.id
    assert resolve(u, 'member', c3.id).organization_id == c3.id


def test_hint_is_authoritative(app, factory):
    association = factory.association('Guild')
    u = factory.user('manager@example.com')
    factory.manager(u, association)
    # holds association, but asked for admin: no fall-through
    assert resolve(u, 'admin').role == 'none'
    assert resolve(u, 'company').role == 'none'
    assert resolve(u, 'member').role == 'none'
    assert resolve(u, 'wizard').role == 'none'


def test_platform_admin_may_act_as_association(app, factory):
    association = factory.association('Guild')
    inactive = factory.association('Gone', is_active=False)
    admin = factory.user('admin@example.com')
    factory.admin(admin)

    resolved = resolve(admin, 'association', association.id)
    assert resolved.role == 'association'
    assert resolved.organization_id == association.id
    assert resolved.context['acting_as_admin'] is True
    assert resolve(admin, 'association').role == 'none'
    assert resolve(admin, 'association', inactive.id).role == 'none'

    plain = factory.user('plain@example.com')
    assert resolve(plain, 'association', association.id).role == 'none'


def test_hint_aliases_and_case(app, factory):
    u = factory.user('admin@example.com')
    factory.admin(u)
    assert resolve(u, 'Platform-Admin').role == 'platform-admin'
    assert resolve(u, 'ADMIN').role == 'platform-admin'


def test_available_roles_for_admin_lists_all_associations(app, factory):
    factory.association('Alpha')
    factory.association('Beta')
    u = factory.user('admin@example.com')
    factory.admin(u, is_super_admin=True, is_hidden=True)
    roles = RoleResolver().available_roles(u.id)
    assert roles['is_admin'] is True
    assert roles['is_distinguished_admin'] is True
    assert [a['name'] for a in roles['associations']] == ['Alpha', 'Beta']
    assert roles['is_member'] is False


def test_available_roles_for_manager_and_owner(app, factory):
    alpha = factory.association('Alpha')
    factory.association('Beta')
    company = factory.company('Acme')
    other = factory.company('Other')
    u = factory.user('busy@example.com')
    factory.manager(u, alpha)
    factory.member(u, company, role='admin')
    factory.member(u, other, role='member')
    roles = RoleResolver().available_roles(u.id)
    assert roles['is_admin'] is False
    assert [a['id'] for a in roles['associations']] == [alpha.id]
    assert [c['id'] for c in roles['companies']] == [company.id]
    assert roles['is_member'] is True


def test_deactivated_company_is_not_a_scope(app, factory):
    company = factory.company('Acme')
    u = factory.user('owner@example.com')
    factory.member(u, company, role='owner')
    company.is_active = False
    db.session.commit()

    assert resolve(u).role == 'none'
    assert resolve(u, 'company', company.id).role == 'none'
    assert resolve(u, 'member').role == 'none'
    assert RoleResolver().available_roles(u.id)['companies'] == []


def test_deactivated_company_falls_back_to_generic_member(app, factory):
    closed = factory.company('Closed')
    u = factory.user('member@example.com')
    factory.member(u, closed, role='owner')
    factory.member(u, None)
    closed.is_active = False
    db.session.commit()

    resolved = resolve(u)
    assert resolved.role == 'member'
    assert resolved.organization_id is None
