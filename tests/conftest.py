"""
Shared pytest fixtures for the QA Hub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - tenant / other_tenant: Pre-created Tenant entities
    - admin, manager, tester, tester2, viewer: members of ``tenant``
    - active_test / draft_test: Test definitions owned by ``tenant``
    - auth_headers: factory for Bearer headers minted for a user

Helper factories (plain functions, importable from test modules):
    make_tenant, make_member, make_test, caller_of
"""

import pytest

from app import create_app
from app.models import db as _db
from app.models.auth import OrgMember, Tenant, User
from app.models.testing import Test
from app.services.identity import Caller
from app.services.jwt_service import generate_access_token


# ── Helper factories ─────────────────────────────────────────────────────


def make_tenant(slug="acme", name=None):
    t = Tenant(name=name or slug.title(), slug=slug)
    _db.session.add(t)
    _db.session.commit()
    return t


def make_member(tenant, role, email=None, full_name=None):
    """Create a User plus its OrgMember row in ``tenant``."""
    user = User(
        tenant_id=tenant.id,
        email=email or f"{role}-{tenant.slug}@example.com",
        full_name=full_name or role.title(),
    )
    _db.session.add(user)
    _db.session.flush()
    _db.session.add(OrgMember(tenant_id=tenant.id, user_id=user.id, role=role))
    _db.session.commit()
    return user


def make_test(tenant, title="Login works", steps=None, status="active"):
    if steps is None:
        steps = [
            {"title": "Open login page", "expected": "Form shown"},
            {"title": "Submit credentials", "expected": "Dashboard shown"},
            {"title": "Log out", "expected": "Back on login page"},
        ]
    t = Test(tenant_id=tenant.id, title=title, steps=steps, status=status)
    _db.session.add(t)
    _db.session.commit()
    return t


def caller_of(user, role):
    return Caller(user_id=user.id, tenant_id=user.tenant_id, role=role)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def tenant():
    return make_tenant("acme")


@pytest.fixture()
def other_tenant():
    return make_tenant("globex")


@pytest.fixture()
def admin(tenant):
    return make_member(tenant, "admin", full_name="Ada Admin")


@pytest.fixture()
def manager(tenant):
    return make_member(tenant, "manager", full_name="Morgan Manager")


@pytest.fixture()
def tester(tenant):
    return make_member(tenant, "tester", full_name="Tess Tester")


@pytest.fixture()
def tester2(tenant):
    return make_member(tenant, "tester", email="tester2-acme@example.com", full_name="Toni Tester")


@pytest.fixture()
def viewer(tenant):
    return make_member(tenant, "viewer", full_name="Vic Viewer")


@pytest.fixture()
def active_test(tenant):
    return make_test(tenant)


@pytest.fixture()
def draft_test(tenant):
    return make_test(tenant, title="Draft checkout", status="draft")


@pytest.fixture()
def auth_headers():
    """Return a function building Authorization headers for a user."""

    def _headers(user):
        token = generate_access_token(user.id, user.tenant_id)
        return {"Authorization": f"Bearer {token}"}

    return _headers
