import threading
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from directory_app.app import create_app, db
from directory_app.app.auth.provider import IdentityProvider
from directory_app.app.errors import (
    ACCOUNT_EXISTS_MESSAGE,
    AccountExistsError,
    DependencyFailureError,
    InvalidOrExpiredError,
    InvitationAlreadyUsedError,
    InvitationError,
    NotFoundError,
    ValidationFailedError,
)
from directory_app.app.invitations import saga as saga_module
from directory_app.app.invitations.saga import AcceptanceSaga, SagaState
from directory_app.app.invitations.service import InvitationService
from directory_app.app.invitations.store import InvitationStore
from directory_app.app.models import (
    AssociationManager,
    Invitation,
    InvitationAudit,
    Member,
    User,
    utcnow,
)
from conftest import Factory, TestConfig

PASSWORD = 'correct-horse'


@pytest.fixture
def setup(factory):
    owner = factory.user('owner@example.com')
    company = factory.company('Acme')
    factory.member(owner, company, role='owner')
    association = factory.association('Guild')
    manager = factory.user('manager@example.com')
    factory.manager(manager, association)
    return {'owner': owner, 'company': company, 'association': association, 'manager': manager}


def issue_company(setup, email='new.hire@example.com', role='member'):
    return InvitationService().issue(
        issuer_id=setup['owner'].id,
        email=email,
        first_name='New',
        last_name='Hire',
        organization_id=setup['company'].id,
        organization_type='company',
        role=role,
        designation='Engineer',
        department='Platform',
    )


def issue_association(setup, role, email='joiner@example.com'):
    return InvitationService().issue(
        issuer_id=setup['manager'].id,
        email=email,
        first_name='Jo',
        last_name='Iner',
        organization_id=setup['association'].id,
        organization_type='association',
        role=role,
    )


def test_accept_company_invitation(app, setup):
    issued = issue_company(setup, role='admin')
    saga = AcceptanceSaga()
    result = saga.accept(issued.secret, PASSWORD)

    assert saga.state == SagaState.COMMITTED
    user = db.session.get(User, result.identity_id)
    assert user.email == 'new.hire@example.com'
    assert user.confirmed
    assert user.check_password(PASSWORD)
    assert user.profile.first_name == 'New'

    members = Member.query.filter_by(user_id=user.id).all()
    assert len(members) == 1
    assert members[0].company_id == setup['company'].id
    assert members[0].role == 'admin'
    assert members[0].designation == 'Engineer'
    assert members[0].department == 'Platform'
    assert [m.kind for m in result.memberships] == ['member']

    inv = db.session.get(Invitation, issued.invitation.id)
    assert inv.status == 'accepted'
    assert inv.accepted_by == user.id
    assert inv.accepted_at is not None
    assert InvitationAudit.query.filter_by(invitation_id=inv.id, action='accepted').count() == 1


def test_caller_names_override_invitation(app, setup):
    issued = issue_company(setup)
    result = AcceptanceSaga().accept(issued.secret, PASSWORD, first_name='Newton', last_name=' ')
    user = db.session.get(User, result.identity_id)
    assert user.profile.first_name == 'Newton'
    # blank override falls back to the invitation value
    assert user.profile.last_name == 'Hire'


def test_privileged_association_invitation_creates_manager_and_member(app, setup):
    issued = issue_association(setup, 'admin')
    result = AcceptanceSaga().accept(issued.secret, PASSWORD)

    managers = AssociationManager.query.filter_by(user_id=result.identity_id).all()
    assert len(managers) == 1
    assert managers[0].association_id == setup['association'].id
    assert managers[0].role == 'admin'
    members = Member.query.filter_by(user_id=result.identity_id).all()
    assert len(members) == 1
    assert members[0].company_id is None
    assert sorted(m.kind for m in result.memberships) == ['association_manager', 'member']


def test_plain_association_invitation_creates_generic_member_only(app, setup):
    issued = issue_association(setup, 'member')
    result = AcceptanceSaga().accept(issued.secret, PASSWORD)
    assert AssociationManager.query.filter_by(user_id=result.identity_id).count() == 0
    members = Member.query.filter_by(user_id=result.identity_id).all()
    assert len(members) == 1
    assert members[0].company_id is None
    assert members[0].role == 'member'


def test_short_password_rejected_before_anything(app, setup):
    issued = issue_company(setup)
    with pytest.raises(ValidationFailedError):
        AcceptanceSaga().accept(issued.secret, 'short')
    assert User.query.filter_by(email='new.hire@example.com').count() == 0
    assert db.session.get(Invitation, issued.invitation.id).status == 'pending'


def test_expired_secret_rejected(app, setup):
    issued = issue_company(setup)
    inv = db.session.get(Invitation, issued.invitation.id)
    inv.expires_at = utcnow() - timedelta(seconds=1)
    db.session.commit()
    with pytest.raises(InvalidOrExpiredError):
        AcceptanceSaga().accept(issued.secret, PASSWORD)
    assert User.query.filter_by(email='new.hire@example.com').count() == 0


def test_digest_is_not_a_secret(app, setup):
    issued = issue_company(setup)
    stored = db.session.get(Invitation, issued.invitation.id).token_hash
    with pytest.raises(InvalidOrExpiredError):
        AcceptanceSaga().accept(stored, PASSWORD)
    with pytest.raises(InvalidOrExpiredError):
        AcceptanceSaga().accept('not-a-token', PASSWORD)


def test_existing_account_conflict(app, setup, factory):
    issued = issue_company(setup)
    factory.user('new.hire@example.com')
    with pytest.raises(AccountExistsError) as excinfo:
        AcceptanceSaga().accept(issued.secret, PASSWORD)
    assert excinfo.value.code == 'user_exists'
    assert str(excinfo.value.message) == str(ACCOUNT_EXISTS_MESSAGE)
    assert db.session.get(Invitation, issued.invitation.id).status == 'pending'


def test_membership_failure_deletes_identity(app, setup, monkeypatch):
    issued = issue_company(setup)

    def boom(invitation, identity_id):
        raise DependencyFailureError('membership store down')

    monkeypatch.setattr(saga_module, 'provision_for_invitation', boom)
    saga = AcceptanceSaga()
    with pytest.raises(DependencyFailureError):
        saga.accept(issued.secret, PASSWORD)

    assert saga.state == SagaState.ROLLED_BACK
    assert User.query.filter_by(email='new.hire@example.com').count() == 0
    assert db.session.get(Invitation, issued.invitation.id).status == 'pending'


def test_vanished_organization_rolls_back(app, setup):
    issued = issue_company(setup)
    setup['company'].is_active = False
    db.session.commit()
    with pytest.raises(NotFoundError):
        AcceptanceSaga().accept(issued.secret, PASSWORD)
    assert User.query.filter_by(email='new.hire@example.com').count() == 0


def test_compensation_failure_is_logged_not_raised(app, setup, monkeypatch):
    issued = issue_company(setup)

    def boom(invitation, identity_id):
        raise DependencyFailureError('membership store down')

    def cannot_delete(self, identity_id):
        raise DependencyFailureError('identity provider down')

    monkeypatch.setattr(saga_module, 'provision_for_invitation', boom)
    monkeypatch.setattr(IdentityProvider, 'delete_identity', cannot_delete)
    with pytest.raises(DependencyFailureError) as excinfo:
        AcceptanceSaga().accept(issued.secret, PASSWORD)
    # the original failure surfaces, not the compensation one
    assert excinfo.value.message == 'membership store down'


def test_lost_race_compensates_everything(app, setup, monkeypatch):
    issued = issue_company(setup)
    invitation_id = issued.invitation.id
    real_provision = saga_module.provision_for_invitation

    def provision_then_lose_race(invitation, identity_id):
        rows = real_provision(invitation, identity_id)
        # a concurrent acceptance commits first
        Invitation.query.filter_by(id=invitation_id).update(
            {Invitation.status: 'accepted', Invitation.accepted_by: 424242}, synchronize_session=False
        )
        db.session.commit()
        return rows

    monkeypatch.setattr(saga_module, 'provision_for_invitation', provision_then_lose_race)
    saga = AcceptanceSaga()
    with pytest.raises(InvitationAlreadyUsedError):
        saga.accept(issued.secret, PASSWORD)

    assert saga.state == SagaState.ROLLED_BACK
    assert User.query.filter_by(email='new.hire@example.com').count() == 0
    assert Member.query.filter_by(company_id=setup['company'].id, role='member').count() == 0
    db.session.expire_all()
    assert db.session.get(Invitation, invitation_id).accepted_by == 424242


def test_at_most_once_acceptance(app, setup):
    issued = issue_company(setup)
    outcomes = []
    for attempt in range(5):
        try:
            AcceptanceSaga().accept(issued.secret, f'password-{attempt}')
            outcomes.append('ok')
        except InvalidOrExpiredError:
            outcomes.append('invalid')
    assert outcomes == ['ok', 'invalid', 'invalid', 'invalid', 'invalid']
    assert User.query.filter_by(email='new.hire@example.com').count() == 1
    assert Member.query.filter_by(company_id=setup['company'].id, role='member').count() == 1


def test_audit_failure_does_not_undo_acceptance(app, setup, monkeypatch):
    issued = issue_company(setup)

    def broken_audit(self, *args, **kwargs):
        raise OperationalError('INSERT', {}, Exception('audit table locked'))

    monkeypatch.setattr(InvitationStore, 'append_audit', broken_audit)
    result = AcceptanceSaga().accept(issued.secret, PASSWORD)
    assert db.session.get(Invitation, issued.invitation.id).status == 'accepted'
    assert db.session.get(User, result.identity_id) is not None


def test_saga_runs_once(app, setup):
    issued = issue_company(setup)
    saga = AcceptanceSaga()
    saga.accept(issued.secret, PASSWORD)
    with pytest.raises(RuntimeError):
        saga.accept(issued.secret, PASSWORD)


def test_identity_registered_between_lookup_and_insert(app, setup, factory, monkeypatch):
    issued = issue_company(setup)
    existing = factory.user('new.hire@example.com')
    monkeypatch.setattr(IdentityProvider, 'find_identity_by_email', lambda self, email: None)

    saga = AcceptanceSaga()
    with pytest.raises(AccountExistsError):
        saga.accept(issued.secret, PASSWORD)
    assert saga.identity_id is None
    assert [u.id for u in User.query.filter_by(email='new.hire@example.com')] == [existing.id]
    assert Member.query.filter_by(company_id=setup['company'].id, role='member').count() == 0
    assert db.session.get(Invitation, issued.invitation.id).status == 'pending'


def test_commit_failure_compensates_everything(app, setup, monkeypatch):
    issued = issue_company(setup)

    def store_down(self, invitation_id, identity_id, now=None):
        raise DependencyFailureError('Invitation store unavailable')

    monkeypatch.setattr(InvitationStore, 'mark_accepted', store_down)
    saga = AcceptanceSaga()
    with pytest.raises(DependencyFailureError):
        saga.accept(issued.secret, PASSWORD)

    assert saga.state == SagaState.ROLLED_BACK
    assert User.query.filter_by(email='new.hire@example.com').count() == 0
    assert Member.query.filter_by(company_id=setup['company'].id, role='member').count() == 0
    assert db.session.get(Invitation, issued.invitation.id).status == 'pending'


@pytest.fixture
def file_app(tmp_path):
    """App on a file-backed SQLite database so several threads share real connections."""

    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'directory.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {'connect_args': {'timeout': 30}}

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def test_concurrent_acceptance_succeeds_once(file_app):
    factory = Factory()
    owner = factory.user('owner@example.com')
    company = factory.company('Acme')
    factory.member(owner, company, role='owner')
    company_id = company.id
    issued = InvitationService().issue(
        owner.id, 'new.hire@example.com', 'New', 'Hire', organization_id=company.id, organization_type='company'
    )
    secret = issued.secret
    db.session.remove()

    attempts = 6
    barrier = threading.Barrier(attempts)
    outcomes = []
    lock = threading.Lock()

    def attempt(n):
        with file_app.app_context():
            barrier.wait()
            try:
                AcceptanceSaga().accept(secret, f'password-{n}')
                outcome = 'ok'
            except InvitationError as exc:
                outcome = exc.code
            finally:
                db.session.remove()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt, args=(n,)) for n in range(attempts)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count('ok') == 1, outcomes
    assert set(outcomes) <= {'ok', 'user_exists', 'invalid_or_expired', 'invitation_used'}, outcomes
    assert User.query.filter_by(email='new.hire@example.com').count() == 1
    assert Member.query.filter_by(company_id=company_id, role='member').count() == 1
    assert Invitation.query.filter_by(status='accepted').count() == 1
