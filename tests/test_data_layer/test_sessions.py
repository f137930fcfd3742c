"""Tests for cookie login sessions."""
from __future__ import annotations

from datetime import timedelta

import pytest

from league_auth.models.identity import User
from league_auth.security.sessions import SessionStore


@pytest.fixture
def user(db_session):
    user = User(username="pat", email="pat@example.com", password_hash="x")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def store(session_factory):
    return SessionStore(session_factory, timedelta(minutes=10))


def test_resolve_live_session(store, user, t0):
    record = store.create(user.id, ip_address="10.0.0.1", user_agent="pytest", now=t0)

    assert store.resolve(record.token, now=t0 + timedelta(minutes=9)) == user.id
    assert store.resolve("unknown-token", now=t0) is None


def test_expired_session_does_not_resolve(store, user, t0):
    record = store.create(user.id, now=t0)
    assert store.resolve(record.token, now=t0 + timedelta(minutes=10)) is None


def test_delete_session(store, user, t0):
    record = store.create(user.id, now=t0)

    assert store.delete(record.token) is True
    assert store.delete(record.token) is False
    assert store.resolve(record.token, now=t0) is None


def test_sweep_removes_only_expired(store, user, t0):
    old = store.create(user.id, now=t0)
    fresh = store.create(user.id, now=t0 + timedelta(minutes=8))

    assert store.sweep(now=t0 + timedelta(minutes=12)) == 1
    assert store.resolve(fresh.token, now=t0 + timedelta(minutes=12)) == user.id
    assert store.resolve(old.token, now=t0) is None


def test_session_tokens_are_unique(store, user, t0):
    tokens = {store.create(user.id, now=t0).token for _ in range(5)}
    assert len(tokens) == 5
