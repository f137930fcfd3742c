"""Tests for credential verification: every rejection reason and the check order."""

import json
from datetime import timedelta

import jwt
from jwt.utils import base64url_decode, base64url_encode

from league_auth.authz.keys import KeyRegistry
from league_auth.authz.verifier import CredentialVerifier, RejectionReason


def _tamper_signature(token: str) -> str:
    header, payload, signature = token.split(".")
    # Middle character: the last one may only carry padding bits.
    i = len(signature) // 2
    replacement = "A" if signature[i] != "A" else "B"
    return ".".join([header, payload, signature[:i] + replacement + signature[i + 1 :]])


def _tamper_payload(token: str, **changes) -> str:
    header, payload, signature = token.split(".")
    body = json.loads(base64url_decode(payload.encode("ascii")))
    body.update(changes)
    forged = base64url_encode(json.dumps(body).encode("utf-8")).decode("ascii")
    return ".".join([header, forged, signature])


def test_verify_accepts_fresh_credential(issuer, verifier, identity, roles):
    issued = issuer.issue(identity, roles)

    result = verifier.verify(issued.token)

    assert result.ok
    assert result.rejection is None
    assert result.claims.sub == identity.id
    assert result.claims.leagues == {"league-1": "manager", "league-2": "player"}
    assert result.claims == issued.claims


def test_verify_rejects_garbage_as_malformed(verifier):
    result = verifier.verify("not-a-jwt")
    assert not result.ok
    assert result.rejection.reason is RejectionReason.MALFORMED


def test_verify_rejects_token_without_kid_as_malformed(registry, verifier, t0):
    key = registry.current_signing_key()
    token = jwt.encode({"sub": "x", "iat": int(t0.timestamp())}, key.private_key, algorithm=key.algorithm)

    result = verifier.verify(token)

    assert result.rejection.reason is RejectionReason.MALFORMED


def test_verify_rejects_altered_signature(issuer, verifier, identity, roles):
    issued = issuer.issue(identity, roles)

    result = verifier.verify(_tamper_signature(issued.token))

    assert result.rejection.reason is RejectionReason.SIGNATURE_INVALID
    assert result.rejection.reason.is_tampering


def test_verify_rejects_non_base64_signature_byte(issuer, verifier, identity, roles):
    issued = issuer.issue(identity, roles)
    header, payload, signature = issued.token.split(".")
    damaged = ".".join([header, payload, signature[:10] + "!" + signature[11:]])

    result = verifier.verify(damaged)

    assert result.rejection.reason is RejectionReason.SIGNATURE_INVALID


def test_verify_rejects_unparseable_header_or_payload_as_malformed(issuer, verifier, identity, roles):
    header, payload, signature = issuer.issue(identity, roles).token.split(".")

    for token in (
        ".".join(["!" + header[1:], payload, signature]),
        ".".join([header, base64url_encode(b"[1, 2]").decode("ascii"), signature]),
        ".".join([header, payload]),
    ):
        assert verifier.verify(token).rejection.reason is RejectionReason.MALFORMED


def test_verify_rejects_escalated_roles_in_payload(issuer, verifier, identity, roles):
    issued = issuer.issue(identity, roles)
    forged = _tamper_payload(issued.token, leagues={"league-9": "manager"}, platform_role="admin")

    result = verifier.verify(forged)

    assert result.rejection.reason is RejectionReason.SIGNATURE_INVALID


def test_verify_rejects_credential_from_unknown_key(verifier, identity, roles, t0):
    from league_auth.authz.issuer import CredentialIssuer

    other = KeyRegistry(timedelta(hours=2))
    other.rotate(t0)
    foreign = CredentialIssuer(
        other, issuer="https://auth.test", audience="https://api.test", lifetime=timedelta(hours=1)
    ).issue(identity, roles, now=t0)

    result = verifier.verify(foreign.token)

    assert result.rejection.reason is RejectionReason.UNKNOWN_KEY
    assert not result.rejection.reason.is_tampering


def test_verify_expiry_boundary_is_exact(issuer, verifier, identity, roles, t0):
    issued = issuer.issue(identity, roles)
    lifetime = timedelta(hours=1)

    assert verifier.verify(issued.token, now=t0 + lifetime - timedelta(seconds=1)).ok

    expired = verifier.verify(issued.token, now=t0 + lifetime)
    assert expired.rejection.reason is RejectionReason.EXPIRED
    assert expired.rejection.reason.is_refreshable


def test_verify_tolerates_clock_skew_on_issued_at(issuer, verifier, identity, roles, t0):
    issued = issuer.issue(identity, roles)

    assert verifier.verify(issued.token, now=t0 - timedelta(seconds=5)).ok

    early = verifier.verify(issued.token, now=t0 - timedelta(seconds=6))
    assert early.rejection.reason is RejectionReason.NOT_YET_VALID


def test_verify_rejects_wrong_issuer(registry, issuer, identity, roles, t0):
    issued = issuer.issue(identity, roles)
    verifier = CredentialVerifier(registry, issuer="https://elsewhere.test", audience="https://api.test")

    result = verifier.verify(issued.token, now=t0)

    assert result.rejection.reason is RejectionReason.ISSUER_MISMATCH


def test_verify_rejects_wrong_audience(registry, issuer, identity, roles, t0):
    issued = issuer.issue(identity, roles)
    verifier = CredentialVerifier(registry, issuer="https://auth.test", audience="https://other-api.test")

    result = verifier.verify(issued.token, now=t0)

    assert result.rejection.reason is RejectionReason.AUDIENCE_MISMATCH


def test_verify_accepts_audience_list(registry, verifier, t0):
    key = registry.current_signing_key()
    iat = int(t0.timestamp())
    payload = {
        "sub": "user-1",
        "username": "pat",
        "email": "pat@example.com",
        "platform_role": "user",
        "iat": iat,
        "exp": iat + 60,
        "iss": "https://auth.test",
        "aud": ["https://api.test", "https://admin.test"],
    }
    token = jwt.encode(payload, key.private_key, algorithm=key.algorithm, headers={"kid": key.kid})

    assert verifier.verify(token).ok


def test_verify_rejects_missing_identity_claims(registry, verifier, t0):
    key = registry.current_signing_key()
    iat = int(t0.timestamp())
    payload = {"sub": "user-1", "iat": iat, "exp": iat + 60, "iss": "https://auth.test", "aud": "https://api.test"}
    token = jwt.encode(payload, key.private_key, algorithm=key.algorithm, headers={"kid": key.kid})

    result = verifier.verify(token)

    assert result.rejection.reason is RejectionReason.CLAIMS_INVALID


def test_verify_checks_signature_before_expiry(issuer, verifier, identity, roles, t0):
    issued = issuer.issue(identity, roles)

    result = verifier.verify(_tamper_signature(issued.token), now=t0 + timedelta(days=1))

    assert result.rejection.reason is RejectionReason.SIGNATURE_INVALID


def test_verify_checks_expiry_before_issuer(registry, issuer, identity, roles, t0):
    issued = issuer.issue(identity, roles)
    verifier = CredentialVerifier(registry, issuer="https://elsewhere.test", audience="https://api.test")

    result = verifier.verify(issued.token, now=t0 + timedelta(hours=1))

    assert result.rejection.reason is RejectionReason.EXPIRED


def test_unknown_key_asks_key_source_to_refresh(identity, roles, t0):
    class StaleKeySource:
        refreshes = 0

        def verification_keys(self, now=None):
            return {}

        def request_refresh(self):
            self.refreshes += 1

    source = StaleKeySource()
    verifier = CredentialVerifier(source, issuer="https://auth.test", audience="https://api.test")
    other = KeyRegistry(timedelta(hours=2))
    other.rotate(t0)
    key = other.current_signing_key()
    token = jwt.encode({"sub": "x"}, key.private_key, algorithm=key.algorithm, headers={"kid": key.kid})

    result = verifier.verify(token, now=t0)

    assert result.rejection.reason is RejectionReason.UNKNOWN_KEY
    assert source.refreshes == 1
