"""
Shared pytest fixtures for the SLAM test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - sla_payload: factory for valid create payloads
    - make_sla: creates an SLA through the service and returns its id
"""

import pytest

from slam import create_app
from slam.models import db as _db


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
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


def _base_payload():
    return {
        "slaName": "Uptime",
        "slaType": "percentage",
        "teamId": "TEAM-001",
        "startDate": "2024-01-01",
        "endDate": "2024-12-31",
        "targetValue": 99.9,
    }


@pytest.fixture()
def sla_payload():
    """Return a factory: ``sla_payload(status="met")`` → valid create payload."""

    def _factory(**overrides):
        payload = _base_payload()
        payload.update(overrides)
        return payload

    return _factory


@pytest.fixture()
def make_sla(sla_payload):
    """Create an SLA via the service layer and return its id."""
    from slam.services.sla_service import create_sla

    def _make(**overrides):
        result = create_sla(sla_payload(**overrides), actor="tester@acme.com")
        assert result["success"], result
        return result["slaId"]

    return _make
