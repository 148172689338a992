"""
Shared pytest fixtures for the Demand Capacity Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - now: fixed evaluation instant (a Wednesday, 09:00 UTC)
    - reference: one coordination, two people, one area, Feature category
                 with a 48h medium-complexity SLA rule, stored in the DB
"""

from datetime import datetime, timezone

import pytest

from app import create_app
from app.models import db as _db
from app.models.domain import Area, Category, Coordination, Person, SLAConfig
from app.services.persistence import SqlRepository


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


@pytest.fixture()
def now():
    return datetime(2026, 3, 11, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def repo():
    return SqlRepository()


@pytest.fixture()
def reference(repo):
    """Minimal organisation + SLA configuration persisted through the repository."""
    records = {
        "coordination": Coordination("coord-eng", "Engineering", "Delivery team"),
        "area": Area("area-ops", "Operations"),
        "alice": Person("person-alice", "Alice", "Analyst", "coord-eng", "alice@example.com"),
        "bruno": Person("person-bruno", "Bruno", "Developer", "coord-eng"),
        "category": Category("cat-feature", "Feature"),
        "sla": SLAConfig("sla-feature-medium", "cat-feature", "medium", 48.0),
    }
    for key in ("coordination", "area", "alice", "bruno", "category", "sla"):
        repo.save_reference(records[key])
    return records
