"""
Pytest fixtures for the test suite.

Data-layer tests use an in-memory SQLite engine with a static pool, so role
lookups running in worker threads see the same database. API tests build the
app with explicit settings and drive it through FastAPI's TestClient.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from league_auth.authz.claims import Identity, ScopeRoles
from league_auth.authz.issuer import CredentialIssuer
from league_auth.authz.keys import KeyRegistry
from league_auth.authz.verifier import CredentialVerifier
from league_auth.db.session import build_engine, build_session_factory
from league_auth.settings import Settings

TEST_DB_URL = "sqlite://"
ISSUER = "https://auth.test"
AUDIENCE = "https://api.test"
LIFETIME = timedelta(hours=1)
GRACE = timedelta(hours=2)
T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def t0():
    """Fixed "now" used by the registry, issuer and verifier fixtures."""
    return T0


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    engine = build_engine(TEST_DB_URL)
    yield engine
    engine.dispose()


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from league_auth import models  # noqa: F401
    from league_auth.db.base import Base

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def session_factory(tables):
    return build_session_factory(tables)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def registry():
    """In-memory key registry with one active key created at T0."""
    registry = KeyRegistry(GRACE, clock=lambda: T0)
    registry.rotate(T0)
    return registry


@pytest.fixture
def issuer(registry):
    return CredentialIssuer(registry, issuer=ISSUER, audience=AUDIENCE, lifetime=LIFETIME, clock=lambda: T0)


@pytest.fixture
def verifier(registry):
    return CredentialVerifier(registry, issuer=ISSUER, audience=AUDIENCE, clock=lambda: T0)


@pytest.fixture
def identity():
    return Identity(id="user-1", username="pat", email="pat@example.com")


@pytest.fixture
def roles():
    return ScopeRoles(
        locations={"loc-1": "owner"},
        leagues={"league-1": "manager", "league-2": "player"},
        teams={"team-1": "captain"},
    )


@pytest.fixture
def settings():
    return Settings(
        db_url=TEST_DB_URL,
        key_encryption_secret="test-key-encryption-secret",
        background_jobs=False,
        seed_demo_data=False,
        issuer=ISSUER,
        audience=AUDIENCE,
    )


@pytest.fixture
def client(settings):
    from league_auth.main import create_app

    with TestClient(create_app(settings)) as client:
        yield client
