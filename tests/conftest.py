"""
Shared pytest fixtures for the Agency Hub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - user / company / website_project: pre-created entities via the API
"""

import pytest

from agencyhub import create_app
from agencyhub.middleware.timing import reset_metrics
from agencyhub.models import db as _db


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    application = create_app("testing")
    application.config["UPLOAD_FOLDER"] = str(tmp_path_factory.mktemp("uploads"))
    application.config["PUBLIC_FILES_BASE_URL"] = "/files"
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
def session(app, _setup_db, tmp_path):
    """Per-test: open app context, rollback after test, recreate tables."""
    app.config["UPLOAD_FOLDER"] = str(tmp_path)
    with app.app_context():
        reset_metrics()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def user(client):
    res = client.post("/api/v1/users", json={"email": "dana@agency.test", "full_name": "Dana Reyes"})
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def other_user(client):
    res = client.post("/api/v1/users", json={"email": "sam@agency.test", "first_name": "Sam", "last_name": "Ito"})
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def company(client):
    res = client.post("/api/v1/companies", json={"name": "Northwind Bakery", "industry": "Food"})
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def website_project(client, company):
    res = client.post("/api/v1/projects", json={
        "name": "Northwind website",
        "project_type": "website",
        "company_id": company["id"],
        "value": "12,500",
    })
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def auth_headers(user):
    """X-User-Id header for the default acting user."""
    return {"X-User-Id": str(user["id"])}
