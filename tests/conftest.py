"""
Shared pytest fixtures for the Stage Review Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate, default roles seeded (autouse)
    - client: Flask test client (function-scoped)
    - make_user / make_project / make_stage: ORM factories
    - grant_permission: attach a seeded "module:action" permission to a user's role
    - login: returns Authorization headers for a user created by make_user
"""

import pytest

from app import create_app
from app.models import db as _db
from app.models.auth import Permission, Role, RolePermission, User
from app.models.project import Project, Stage
from app.services.role_service import seed_default_roles
from app.utils.crypto import hash_password

DEFAULT_PASSWORD = "Passw0rd!"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


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
    """Per-test: open app context, seed roles, rollback + recreate tables after."""
    with app.app_context():
        seed_default_roles()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Create a user bound to one of the seeded roles.

    A ``role`` that is not seeded is created on the fly with the given
    ``allowed_pages`` (None → legacy lookup by name).
    """
    counter = {"n": 0}

    def _make(role="EXECUTOR", name=None, email=None, password=DEFAULT_PASSWORD,
              allowed_pages=None, is_active=True):
        counter["n"] += 1
        role_obj = Role.query.filter_by(name=role.upper()).first()
        if role_obj is None:
            role_obj = Role(name=role.upper(), allowed_pages=allowed_pages)
            _db.session.add(role_obj)
            _db.session.flush()
        user = User(
            name=name or f"{role.title()} {counter['n']}",
            email=email or f"{role.lower()}{counter['n']}@example.com",
            password_hash=hash_password(password),
            role=role_obj,
            is_active=is_active,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def grant_permission():
    def _grant(user, key):
        module, action = key.split(":", 1)
        permission = Permission.query.filter_by(module=module, action=action).one()
        user.role.role_permissions.append(RolePermission(permission=permission))
        _db.session.commit()
        return user

    return _grant


@pytest.fixture()
def make_project():
    def _make(name="Warehouse Retrofit", supervisor=None, responsibles=(), total_value=100000.0):
        project = Project(
            name=name,
            supervisor=supervisor,
            total_value=total_value,
        )
        project.responsibles = list(responsibles)
        _db.session.add(project)
        _db.session.commit()
        return project

    return _make


@pytest.fixture()
def make_stage():
    def _make(project, executor, name="Foundations", checklist=None, members=(),
              status="PENDING", supplies_value=0.0):
        stage = Stage(
            project=project,
            name=name,
            executor=executor,
            status=status,
            supplies_value=supplies_value,
            checklist=checklist,
        )
        stage.members = list(members)
        _db.session.add(stage)
        _db.session.commit()
        return stage

    return _make


@pytest.fixture()
def checklist3():
    """Three unmarked checklist entries."""
    return [
        {"text": "Excavation", "marked": False},
        {"text": "Rebar inspection", "marked": False},
        {"text": "Concrete pour", "marked": False},
    ]


@pytest.fixture()
def login(client):
    """Log a user in through the API and return the Authorization headers."""

    def _login(user, password=DEFAULT_PASSWORD):
        res = client.post("/api/v1/auth/login", json={"email": user.email, "password": password})
        assert res.status_code == 200, res.get_json()
        return {"Authorization": f"Bearer {res.get_json()['token']}"}

    return _login
