"""Tests for the polled JWK Set used by verify-only instances."""

import asyncio
from datetime import timedelta
from unittest.mock import MagicMock, patch

import requests

from league_auth.authz.remote_keys import RemoteKeySet
from league_auth.authz.verifier import CredentialVerifier, RejectionReason

JWKS_URI = "https://auth.test/.well-known/jwks.json"


def _response(data):
    resp = MagicMock()
    resp.json.return_value = data
    resp.raise_for_status.return_value = None
    return resp


def test_refresh_loads_keys_and_verifies(registry, issuer, identity, roles, t0):
    remote = RemoteKeySet(JWKS_URI, refresh_seconds=300)
    with patch("league_auth.authz.remote_keys.requests.get", return_value=_response(registry.jwks(t0))) as get:
        assert remote.refresh() == 1
    get.assert_called_once_with(JWKS_URI, timeout=10.0)

    verifier = CredentialVerifier(remote, issuer="https://auth.test", audience="https://api.test")
    assert verifier.verify(issuer.issue(identity, roles).token, now=t0).ok
    assert remote.jwks() == registry.jwks(t0)


def test_unknown_kid_requests_early_refresh(registry, issuer, identity, roles, t0):
    remote = RemoteKeySet(JWKS_URI, refresh_seconds=300, min_refresh_seconds=0)
    with patch("league_auth.authz.remote_keys.requests.get", return_value=_response(registry.jwks(t0))):
        remote.refresh()
    assert not remote.refresh_due()

    registry.rotate(t0 + timedelta(minutes=1))
    token = issuer.issue(identity, roles, now=t0 + timedelta(minutes=1)).token
    verifier = CredentialVerifier(remote, issuer="https://auth.test", audience="https://api.test")

    result = verifier.verify(token, now=t0 + timedelta(minutes=1))

    assert result.rejection.reason is RejectionReason.UNKNOWN_KEY
    assert remote.refresh_requested
    assert remote.refresh_due()

    with patch(
        "league_auth.authz.remote_keys.requests.get",
        return_value=_response(registry.jwks(t0 + timedelta(minutes=1))),
    ):
        assert remote.refresh() == 2
    assert not remote.refresh_requested
    assert verifier.verify(token, now=t0 + timedelta(minutes=1)).ok


def test_refresh_skips_unusable_keys(registry, t0):
    data = {"keys": registry.jwks(t0)["keys"] + [{"kid": "bad", "kty": "XYZ"}, {"kty": "OKP"}]}
    remote = RemoteKeySet(JWKS_URI, refresh_seconds=300)

    with patch("league_auth.authz.remote_keys.requests.get", return_value=_response(data)):
        assert remote.refresh() == 1

    assert "bad" not in remote.verification_keys()


def test_first_refresh_is_due_immediately():
    remote = RemoteKeySet(JWKS_URI, refresh_seconds=300)
    assert remote.seconds_since_refresh() is None
    assert remote.refresh_due()


def test_poller_keeps_previous_keys_when_fetch_fails(registry, t0):
    remote = RemoteKeySet(JWKS_URI, refresh_seconds=0)
    with patch("league_auth.authz.remote_keys.requests.get", return_value=_response(registry.jwks(t0))):
        remote.refresh()
    before = dict(remote.verification_keys())

    async def poll_briefly():
        task = asyncio.create_task(remote.run_forever(poll_step_seconds=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    with patch(
        "league_auth.authz.remote_keys.requests.get",
        side_effect=requests.ConnectionError("unreachable"),
    ) as get:
        asyncio.run(poll_briefly())

    assert get.called
    assert remote.verification_keys().keys() == before.keys()
