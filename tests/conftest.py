"""
Shared pytest fixtures for the Check-in Data Health test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org1 / u1: Directory rows used by most service tests
    - make_checkin: factory that persists a raw Checkin row, bypassing the
      reconciler so tests can seed anomalous data
"""

import os
from datetime import date, timedelta

import pytest

from checkin_health import create_app
from checkin_health.models import db as _db
from checkin_health.models.checkin import Checkin
from checkin_health.models.directory import Organization, User

# Current week used across the suite: Monday 2024-06-03 (today is a Wednesday).
TODAY = date(2024, 6, 5)
CURRENT_WEEK = date(2024, 6, 3)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    os.environ.pop("SITE_USERNAME", None)
    os.environ.pop("SITE_PASSWORD", None)
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


@pytest.fixture()
def frozen_today(monkeypatch):
    """Pin the governing-timezone 'today' so the current week is 2024-06-03."""
    from checkin_health.services import week_normalizer

    monkeypatch.setattr(week_normalizer, "local_today", lambda tz=None: TODAY)
    return TODAY


# ── Directory fixtures ───────────────────────────────────────────────────


@pytest.fixture()
def org1():
    org = Organization(id="org1", name="Acme Corp", slug="acme")
    _db.session.add(org)
    _db.session.commit()
    return org


@pytest.fixture()
def u1(org1):
    user = User(id="u1", organization_id=org1.id, name="Uma One", email="u1@acme.test")
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def u2(org1):
    user = User(id="u2", organization_id=org1.id, name="Ugo Two", email="u2@acme.test")
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def make_checkin():
    """Persist a check-in row as-is. Due dates default to the canonical ones."""

    def _make(organization_id="org1", user_id="u1", week_start=date(2024, 5, 27), **kw):
        due = kw.pop("due_date", week_start + timedelta(days=6))
        checkin = Checkin(
            organization_id=organization_id,
            user_id=user_id,
            week_start=week_start,
            due_date=due,
            review_due_date=kw.pop("review_due_date", due),
            responses=kw.pop("responses", {}),
            **kw,
        )
        _db.session.add(checkin)
        _db.session.commit()
        return checkin

    return _make
