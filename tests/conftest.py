"""
Global test configuration and fixtures for the session store

Provides a temporary SQLite database, stores with fixed keys and an
adjustable clock, and a FastAPI application wired to the same database.
"""

import pytest
from fastapi.testclient import TestClient

from sessionstore.core.config import Settings
from sessionstore.core.store import DatabaseSessionStore
from sessionstore.db.record_store import SessionRecordStore
from sessionstore.db.session import create_db_engine
from sessionstore.main import create_app
from tests.utils.helpers import FakeClock

HASH_KEY = "test-hash-key-for-testing-only-0123456789"
BLOCK_KEY = "test-block-key-for-testing-only-9876543210"
OLD_HASH_KEY = "rotated-out-hash-key-for-testing-only"
OLD_BLOCK_KEY = "rotated-out-block-key-for-testing-only"

SESSION_NAME = "session"


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def database_url(tmp_path):
    """URL of a fresh SQLite database file for each test function"""
    return f"sqlite:///{tmp_path / 'sessions.db'}"


@pytest.fixture(scope="function")
def engine(database_url):
    """Engine bound to the test database"""
    engine = create_db_engine(database_url)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def record_store(engine):
    """Record store with its table created"""
    records = SessionRecordStore(engine)
    records.ensure_schema()
    return records


# ============================================================================
# Session Store Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def clock():
    """Adjustable clock for record timestamps"""
    return FakeClock()


@pytest.fixture(scope="function")
def store(engine, clock):
    """Encrypting store with a one hour default max-age"""
    return DatabaseSessionStore(engine, HASH_KEY, BLOCK_KEY, max_age=3600, clock=clock)


@pytest.fixture(scope="function")
def signed_store(engine, clock):
    """Sign-only store (no block key)"""
    return DatabaseSessionStore(engine, HASH_KEY, None, max_age=3600, clock=clock)


# ============================================================================
# Application Client Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def test_settings(database_url):
    """Settings pointing at the test database"""
    return Settings(
        DATABASE_URL=database_url,
        SESSION_KEYS=[f"{HASH_KEY}:{BLOCK_KEY}"],
        SESSION_COOKIE_NAME=SESSION_NAME,
        SESSION_MAX_AGE=3600,
        SESSION_SWEEP_INTERVAL=0,
    )


@pytest.fixture(scope="function")
def app(test_settings):
    """FastAPI application without logging reconfiguration"""
    return create_app(test_settings, configure_logging=False)


@pytest.fixture(scope="function")
def client(app):
    """Create FastAPI test client"""
    with TestClient(app) as test_client:
        yield test_client


# ============================================================================
# Test Markers and Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers and settings"""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "security: mark test as security-related"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as exercising the FastAPI application"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on file location"""
    for item in items:
        path = str(item.path)
        if "security" in path:
            item.add_marker(pytest.mark.security)
        if "integration" in path:
            item.add_marker(pytest.mark.integration)
        if "unit" in path:
            item.add_marker(pytest.mark.unit)
