"""Shared test fixtures for the Habit Ledger test suite."""

import pytest
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import init_db
from schemas import BuildHabit, QuitHabit
from storage import DocumentStore


# ── Time Freezing ───────────────────────────────────────────────────────

@pytest.fixture
def frozen_now():
    """Fixed 'now': 2024-03-15T12:00:00Z (13:00 in Madrid, same civil day)."""
    return datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def today(frozen_now):
    return frozen_now.date()


# ── Habit Factories ─────────────────────────────────────────────────────

@pytest.fixture
def make_build():
    """Factory fixture for BuildHabit with sensible defaults.

    Usage:
        habit = make_build(id="m", name="Meditation", target_consistency=100)
    """
    _counter = 0

    def _factory(**overrides):
        nonlocal _counter
        _counter += 1
        defaults = {
            "id": f"b{_counter}",
            "name": f"Build Habit {_counter}",
            "category": "Health",
            "color": "#10b981",
            "goal_frequency": 7,
            "target_consistency": 80,
        }
        defaults.update(overrides)
        return BuildHabit(**defaults)

    return _factory


@pytest.fixture
def make_quit(frozen_now):
    """Factory fixture for QuitHabit; quit_date defaults to 3 days before now."""
    _counter = 0

    def _factory(**overrides):
        nonlocal _counter
        _counter += 1
        defaults = {
            "id": f"q{_counter}",
            "name": f"Quit Habit {_counter}",
            "category": "Health",
            "goal_frequency": 0,
            "target_consistency": 0,
            "quit_date": frozen_now - timedelta(days=3),
        }
        defaults.update(overrides)
        return QuitHabit(**defaults)

    return _factory


# ── Database ────────────────────────────────────────────────────────────

@pytest.fixture
def session_factory():
    """In-memory SQLite shared by every session of the test (StaticPool)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


@pytest.fixture
def documents(session_factory):
    return DocumentStore(session_factory)


# ── API ─────────────────────────────────────────────────────────────────

@pytest.fixture
def registry(documents, frozen_now):
    from main import StoreRegistry
    return StoreRegistry(documents, clock=lambda: frozen_now)


@pytest.fixture
def client(registry):
    from main import app, get_registry
    app.dependency_overrides[get_registry] = lambda: registry
    yield TestClient(app)
    app.dependency_overrides.clear()
