"""
Shared pytest fixtures for the Panel Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - make_panel: factory for Panel rows at an arbitrary starting status
"""

import pytest

from panel_tracker import create_app
from panel_tracker.models import db as _db
from panel_tracker.models.panel import Panel
from panel_tracker.models.panel_status import PanelStatus


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


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_panel():
    """Create a Panel at the given status (bypasses the lifecycle engine)."""
    counter = iter(range(1, 10_000))

    def _make(status=PanelStatus.ISSUED_FOR_PRODUCTION, **kw):
        n = next(counter)
        panel = Panel(
            name=kw.get("name", f"PNL-{n:03d}"),
            project_id=kw.get("project_id", "project-1"),
            status=int(status),
        )
        _db.session.add(panel)
        _db.session.flush()
        return panel

    return _make
