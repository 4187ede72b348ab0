"""
Pytest fixtures for opsdesk backend tests.

Provides an app on in-memory SQLite, a test client, an engine-bound record
store with its own change bus, operator auth headers, and a manual clock.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from opsdesk import create_app, live
from opsdesk.extensions import db
from opsdesk import models  # noqa: F401
from opsdesk.services.record_store import RecordStore
from opsdesk.services import session_service


ADMIN_KEY = "operator-key-123"
T0 = 1_700_000_000_000


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'ORDER_SWEEPER_ENABLED': False,
        'LIVE_KEEPALIVE_SECONDS': 0.2,
    })

    with app.app_context():
        yield app
        db.session.remove()

    live.records.close()
    with app.app_context():
        db.engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def records(app):
    """The app-wide record store, bound to the app's database."""
    return live.records


@pytest.fixture(scope='function')
def store():
    """A standalone RecordStore on its own in-memory database and bus."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    db.metadata.create_all(engine)
    record_store = RecordStore(engine)
    yield record_store
    record_store.close()
    engine.dispose()


@pytest.fixture(scope='function')
def admin_token(client, records):
    session_service.set_admin_key(records, ADMIN_KEY, hashed=False)
    resp = client.post('/api/auth/login', json={'key': ADMIN_KEY})
    assert resp.status_code == 200
    return resp.get_json()['token']


@pytest.fixture(scope='function')
def auth(admin_token):
    """Authorization headers for the operator console."""
    return auth_headers(admin_token)


class ManualClock:
    """Epoch-millisecond clock advanced explicitly by tests."""

    def __init__(self, start_ms: int = T0):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> int:
        self.now += int(seconds * 1000)
        return self.now


@pytest.fixture(scope='function')
def clock():
    return ManualClock()


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
