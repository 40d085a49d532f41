"""
tests/conftest.py - Pytest configuration and fixtures

Every test that touches the database gets its own in-memory SQLite, and the
API client gets its own app, authenticator and replay cache. Nothing is
shared between tests and nothing touches DATABASE_URL.
"""

import os
import sys
from datetime import datetime

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.auth import Authenticator, HmacVerifier, ReplayCache
from database import create_session_factory, get_db
from services.reward_profile_service import reward_profile_service

TEST_API_KEY = "test-api-key-0123456789"
TEST_HMAC_SECRET = "test-hmac-secret-0123456789"

# Fixed instant for service tests (naive UTC, like the database)
T0 = datetime(2026, 3, 1, 12, 0, 0)

PROFILE_VALUES = {
    "name": "Weekend Parlay Ride",
    "description": "3+ legs at 1.2+, combined 3.0+",
    "min_selections": 3,
    "min_combined_odds": 3.0,
    "min_selection_odds": 1.2,
    "min_boost_pct": 0.05,
    "max_boost_pct": 0.5,
    "max_boost_min_selections": None,
    "max_boost_min_combined_odds": None,
    "ride_duration_seconds": 3600,
}

STRONG_TICKET = [
    {"id": "s1", "odds": 2.0},
    {"id": "s2", "odds": 1.8},
    {"id": "s3", "odds": 1.5},
    {"id": "s4", "odds": 1.9},
]

WEAK_TICKET = [
    {"id": "s1", "odds": 1.5},
    {"id": "s2", "odds": 1.1},
]


@pytest.fixture
def session_factory():
    """Fresh in-memory database per test."""
    factory = create_session_factory("sqlite://")
    yield factory
    factory.kw["bind"].dispose()


@pytest.fixture
def db(session_factory):
    """One session for the whole test, committed at the end."""
    with get_db(session_factory) as session:
        yield session


@pytest.fixture
def profile(db):
    result = reward_profile_service.create_profile(db, dict(PROFILE_VALUES))
    assert result.success
    return result.data


@pytest.fixture
def authenticator():
    verifier = HmacVerifier(
        secret=TEST_HMAC_SECRET,
        max_skew_ms=300000,
        replay_cache=ReplayCache(max_entries=100, max_age_ms=300000),
    )
    return Authenticator(api_key=TEST_API_KEY, hmac_verifier=verifier, enabled=True)


@pytest.fixture
def app(session_factory, authenticator):
    from main import create_app
    return create_app(session_factory=session_factory, authenticator=authenticator)


@pytest.fixture
def raw_client(app):
    """Client without credentials."""
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture
def client(app):
    """Client that sends the API key on every request."""
    from fastapi.testclient import TestClient
    return TestClient(app, headers={"X-API-Key": TEST_API_KEY})
