import sys
import os
import re
import pytest

# ensure repository root is on sys.path so `directory_app` package can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# Ensure tests have a DATABASE_URL so importing app.config doesn't raise
os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')
from directory_app.app import create_app, db
from directory_app.app import mail
from directory_app.app.config import Config
from directory_app.app.models import (
    AdminUser,
    Association,
    AssociationManager,
    Company,
    Member,
    Profile,
    User,
)


# Config uses Final annotations, so the test config is a standalone class
# rather than a subclass redeclaring them.
class TestConfig:
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    WTF_CSRF_ENABLED = False
    SECRET_KEY = getattr(Config, "SECRET_KEY", "test-secret")
    APP_BASE_URL = "https://directory.test"
    MAIL_DEFAULT_SENDER = "no-reply@directory.test"
    INVITATION_TTL_HOURS = 48
    RESEND_INVITATION_TTL_HOURS = 48
    BULK_INVITATION_TTL_DAYS = 7
    INVITATION_RATE_LIMIT_PER_MINUTE = 5
    BULK_ERROR_LIMIT = 10
    PASSWORD_MIN_LENGTH = 8


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Capture outgoing email instead of talking to SMTP or Resend."""
    sent = []

    def fake_send_email(subject, recipient, body, html=None):
        sent.append({'subject': subject, 'to': recipient, 'body': body})
        return True

    monkeypatch.setattr(mail, 'send_email', fake_send_email)
    return sent


def secret_from(message):
    """Pull the invitation secret out of an email body."""
    match = re.search(r'token=([0-9a-f]{64})', message['body'])
    assert match, message['body']
    return match.group(1)


class Factory:
    def user(self, email, password='pw123456', first_name='Test', last_name='User'):
        u = User()
        u.email = email
        u.set_password(password)
        u.confirmed = True
        u.profile = Profile(email=email, first_name=first_name, last_name=last_name)
        db.session.add(u)
        db.session.commit()
        return u

    def admin(self, user, is_super_admin=False, is_hidden=False, is_active=True):
        row = AdminUser(user_id=user.id, is_super_admin=is_super_admin, is_hidden=is_hidden, is_active=is_active)
        db.session.add(row)
        db.session.commit()
        return row

    def association(self, name='Chamber of Commerce', logo=None, is_active=True):
        a = Association(name=name, contact_email=f'{name.lower().replace(" ", ".")}@example.com', logo=logo, is_active=is_active)
        db.session.add(a)
        db.session.commit()
        return a

    def company(self, name='Acme', association=None, is_active=True):
        c = Company(
            name=name,
            email=f'{name.lower().replace(" ", ".")}@example.com',
            association_id=association.id if association else None,
            is_active=is_active,
        )
        db.session.add(c)
        db.session.commit()
        return c

    def member(self, user, company=None, role='member', is_active=True):
        m = Member(user_id=user.id, company_id=company.id if company else None, role=role, is_active=is_active)
        db.session.add(m)
        db.session.commit()
        return m

    def manager(self, user, association, role='manager', is_active=True):
        m = AssociationManager(user_id=user.id, association_id=association.id, role=role, is_active=is_active)
        db.session.add(m)
        db.session.commit()
        return m


@pytest.fixture
def factory(app):
    return Factory()


@pytest.fixture
def login(client):
    def _login(email, password='pw123456'):
        return client.post('/login', json={'email': email, 'password': password})

    return _login
