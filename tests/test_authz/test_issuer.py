"""Tests for credential issuance."""

from datetime import timedelta

import jwt
import pytest

from league_auth.authz.claims import ScopeRoles
from league_auth.authz.issuer import (
    DEFAULT_MAX_SCOPE_ROLES,
    CredentialIssuer,
    CredentialTooLargeError,
    SigningError,
)
from league_auth.authz.keys import KeyRegistry


def test_issue_sets_lifetime_and_key_id(registry, issuer, identity, roles, t0):
    issued = issuer.issue(identity, roles)

    assert issued.claims.iat == int(t0.timestamp())
    assert issued.expires_at == int(t0.timestamp()) + 3600
    assert issued.kid == registry.current_signing_key().kid
    assert jwt.get_unverified_header(issued.token)["kid"] == issued.kid


def test_issue_copies_identity_and_all_scopes(issuer, identity, roles):
    issued = issuer.issue(identity, roles)
    payload = jwt.decode(issued.token, options={"verify_signature": False})

    assert payload["sub"] == payload["id"] == identity.id
    assert payload["username"] == "pat"
    assert payload["email"] == "pat@example.com"
    assert payload["platform_role"] == "user"
    assert payload["locations"] == {"loc-1": "owner"}
    assert payload["leagues"] == {"league-1": "manager", "league-2": "player"}
    assert payload["teams"] == {"team-1": "captain"}
    assert payload["iss"] == "https://auth.test"
    assert payload["aud"] == "https://api.test"
    assert payload["jti"]


def test_issue_with_no_roles_has_empty_scopes(issuer, identity):
    issued = issuer.issue(identity, ScopeRoles())
    assert issued.claims.locations == {}
    assert issued.claims.leagues == {}
    assert issued.claims.teams == {}


def test_issue_without_active_key_raises_signing_error(identity, roles):
    registry = KeyRegistry(timedelta(hours=2))
    issuer = CredentialIssuer(registry, issuer="i", audience="a", lifetime=timedelta(hours=1))

    with pytest.raises(SigningError):
        issuer.issue(identity, roles)


def test_grace_period_shorter_than_lifetime_is_rejected():
    registry = KeyRegistry(timedelta(minutes=30))
    with pytest.raises(ValueError):
        CredentialIssuer(registry, issuer="i", audience="a", lifetime=timedelta(hours=1))


def test_oversize_role_set_is_refused_not_truncated(registry, identity):
    issuer = CredentialIssuer(
        registry, issuer="i", audience="a", lifetime=timedelta(hours=1), max_scope_roles=3
    )
    roles = ScopeRoles(leagues={f"league-{i}": "player" for i in range(4)})

    with pytest.raises(CredentialTooLargeError) as exc_info:
        issuer.issue(identity, roles)
    assert exc_info.value.count == 4
    assert exc_info.value.limit == 3

    at_limit = issuer.issue(identity, ScopeRoles(leagues={"a": "player", "b": "player", "c": "player"}))
    assert len(at_limit.claims.leagues) == 3


def test_thousands_of_scope_roles_are_refused_at_default_limit(issuer, identity):
    roles = ScopeRoles(
        leagues={f"league-{i}": "player" for i in range(1000)},
        teams={f"team-{i}": "member" for i in range(1000)},
    )

    with pytest.raises(CredentialTooLargeError) as exc_info:
        issuer.issue(identity, roles)
    assert exc_info.value.count == 2000
    assert exc_info.value.limit == DEFAULT_MAX_SCOPE_ROLES
