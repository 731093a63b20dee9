"""Shared test fixtures and configuration.

Sets up environment variables before any collab_todo imports, and
provides a temp-file document store, a controllable clock and a few
ready-made identities.
"""

import os

# Patch env vars BEFORE any collab_todo imports
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("COMPLETION_NOTIFY_POLICY", "assignee")
os.environ.setdefault("INVITATION_TTL_DAYS", "7")
os.environ.setdefault("APP_BASE_URL", "http://localhost:3000")
os.environ.setdefault("EMAILJS_SERVICE_ID", "")
os.environ.setdefault("EMAILJS_TEMPLATE_ID", "")
os.environ.setdefault("EMAILJS_PUBLIC_KEY", "")

import pytest
from datetime import datetime, timedelta, timezone


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(tmp_path, clock):
    """Return a SQLiteDocumentStore backed by a temp file."""
    from collab_todo.adapters.sqlite_store import SQLiteDocumentStore
    s = SQLiteDocumentStore(db_path=str(tmp_path / "test_store.db"), clock=clock)
    yield s
    s.close()


@pytest.fixture
def alice():
    from collab_todo.data.models import Identity
    return Identity("uid-alice", "alice@example.com", "Alice")


@pytest.fixture
def bob():
    from collab_todo.data.models import Identity
    return Identity("uid-bob", "bob@example.com", "Bob")


@pytest.fixture
def carol():
    from collab_todo.data.models import Identity
    return Identity("uid-carol", "carol@example.com", "Carol")


@pytest.fixture
def make_settings():
    """Build a Settings object with overrides."""
    from collab_todo.config import Settings

    def _make(**overrides):
        return Settings(**overrides)

    return _make


@pytest.fixture
def make_engine(store, clock, make_settings):
    """Return a factory for SyncEngines sharing the test store."""
    from collab_todo.core.sync_engine import SyncEngine
    engines = []

    def _make(identity=None, mailer=None, **settings_overrides):
        engine = SyncEngine(
            store, mailer=mailer, settings=make_settings(**settings_overrides), clock=clock,
        )
        if identity is not None:
            engine.set_identity(identity)
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.close()
