"""
Verify a presented credential and extract its claims.

Checks run in a fixed order and stop at the first failure:

    0. header and payload parse, header names a key -> MALFORMED
    1. the signature verifies against a known key   -> UNKNOWN_KEY / SIGNATURE_INVALID
    2. now < exp                                    -> EXPIRED
    3. now + clock skew >= iat                      -> NOT_YET_VALID
    4. issuer, then audience                        -> ISSUER_MISMATCH / AUDIENCE_MISMATCH
    5. the payload has the claims shape             -> CLAIMS_INVALID

Verification reads only the in-memory key set: no database and no network.
``UNKNOWN_KEY`` is kept apart from ``SIGNATURE_INVALID`` because a verifier
whose key set has not caught up with a rotation sees the former for a valid
credential, while the latter means the bytes were altered. The token itself
is never logged.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
import json
import logging
from typing import Any, Mapping, Protocol

import jwt
from jwt import PyJWK
from jwt.utils import base64url_decode
from pydantic import ValidationError

from .claims import CredentialClaims
from .clock import Clock, utcnow

logger = logging.getLogger(__name__)


class RejectionReason(str, Enum):
    MALFORMED = "malformed"
    UNKNOWN_KEY = "unknown_key"
    SIGNATURE_INVALID = "signature_invalid"
    EXPIRED = "expired"
    NOT_YET_VALID = "not_yet_valid"
    ISSUER_MISMATCH = "issuer_mismatch"
    AUDIENCE_MISMATCH = "audience_mismatch"
    CLAIMS_INVALID = "claims_invalid"

    @property
    def is_tampering(self) -> bool:
        """Security-relevant: never retried."""
        return self in (RejectionReason.MALFORMED, RejectionReason.SIGNATURE_INVALID)

    @property
    def is_refreshable(self) -> bool:
        """The client should refresh its credential rather than re-authenticate."""
        return self is RejectionReason.EXPIRED


@dataclass(frozen=True)
class Rejection:
    reason: RejectionReason
    detail: str = ""


@dataclass(frozen=True)
class VerificationResult:
    """Either validated claims or a tagged rejection, never both."""

    claims: CredentialClaims | None = None
    rejection: Rejection | None = None

    @property
    def ok(self) -> bool:
        return self.claims is not None

    @classmethod
    def accepted(cls, claims: CredentialClaims) -> VerificationResult:
        return cls(claims=claims)

    @classmethod
    def rejected(cls, reason: RejectionReason, detail: str = "") -> VerificationResult:
        return cls(rejection=Rejection(reason=reason, detail=detail))


class VerificationKeySource(Protocol):
    def verification_keys(self, now: datetime | None = None) -> Mapping[str, PyJWK]: ...


_DECODE_OPTIONS = {
    "verify_signature": True,
    # Time, issuer and audience are checked below so that each failure gets its own reason.
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_iss": False,
    "verify_aud": False,
    "require": [],
}


def _decode_segment(segment: str) -> dict | None:
    try:
        value = json.loads(base64url_decode(segment))
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def _get_kid(token: str) -> str | None:
    """
    Read ``kid`` from the JWS header without validating anything.

    Only the header and payload segments are parsed here. The signature
    segment is left to ``jwt.decode`` so that a damaged signature is reported
    as such rather than as an unparseable token.
    """
    parts = token.split(".") if isinstance(token, str) else []
    if len(parts) != 3:
        return None
    header = _decode_segment(parts[0])
    if header is None or _decode_segment(parts[1]) is None:
        return None
    kid = header.get("kid")
    return kid if isinstance(kid, str) and kid else None


def _is_timestamp(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class CredentialVerifier:
    """
    Validates credentials against a key source (``KeyRegistry`` on the issuing
    instance, ``RemoteKeySet`` elsewhere).
    """

    def __init__(
        self,
        keys: VerificationKeySource,
        *,
        issuer: str,
        audience: str,
        clock_skew: timedelta = timedelta(seconds=5),
        clock: Clock = utcnow,
    ) -> None:
        self._keys = keys
        self._issuer = issuer
        self._audience = audience
        self._clock_skew = clock_skew
        self._clock = clock

    def verify(self, token: str, now: datetime | None = None) -> VerificationResult:
        now = now or self._clock()

        kid = _get_kid(token)
        if kid is None:
            return self._reject(RejectionReason.MALFORMED, "not a signed token with a key id")

        key = self._keys.verification_keys(now).get(kid)
        if key is None:
            request_refresh = getattr(self._keys, "request_refresh", None)
            if callable(request_refresh):
                request_refresh()
            return self._reject(RejectionReason.UNKNOWN_KEY, f"kid {kid} not in current key set")

        try:
            payload = jwt.decode(token, key.key, algorithms=[key.algorithm_name], options=_DECODE_OPTIONS)
        except jwt.InvalidSignatureError:
            return self._reject(RejectionReason.SIGNATURE_INVALID, "signature verification failed")
        except jwt.InvalidAlgorithmError:
            return self._reject(RejectionReason.SIGNATURE_INVALID, "algorithm does not match key")
        except jwt.DecodeError:
            # Header and payload already parsed, so only the signature segment is left.
            return self._reject(RejectionReason.SIGNATURE_INVALID, "signature segment is not valid base64url")
        except jwt.InvalidTokenError as e:
            return self._reject(RejectionReason.MALFORMED, type(e).__name__)

        exp = payload.get("exp")
        iat = payload.get("iat")
        if not _is_timestamp(exp) or not _is_timestamp(iat):
            return self._reject(RejectionReason.CLAIMS_INVALID, "iat and exp must be numeric")

        timestamp = now.timestamp()
        if timestamp >= exp:
            return self._reject(RejectionReason.EXPIRED, "credential expired")
        if timestamp + self._clock_skew.total_seconds() < iat:
            return self._reject(RejectionReason.NOT_YET_VALID, "issued in the future")

        if payload.get("iss") != self._issuer:
            return self._reject(RejectionReason.ISSUER_MISMATCH, "unexpected issuer")
        if not self._audience_matches(payload.get("aud")):
            return self._reject(RejectionReason.AUDIENCE_MISMATCH, "unexpected audience")

        try:
            claims = CredentialClaims.model_validate(payload)
        except ValidationError as e:
            return self._reject(RejectionReason.CLAIMS_INVALID, f"{e.error_count()} invalid claim(s)")

        return VerificationResult.accepted(claims)

    def _audience_matches(self, aud: Any) -> bool:
        if isinstance(aud, str):
            return aud == self._audience
        if isinstance(aud, list):
            return self._audience in aud
        return False

    def _reject(self, reason: RejectionReason, detail: str) -> VerificationResult:
        if reason.is_tampering:
            logger.warning("Credential rejected (possible tampering) reason=%s detail=%s", reason.value, detail)
        elif reason is RejectionReason.UNKNOWN_KEY:
            logger.info("Credential rejected reason=%s detail=%s (key set may be stale)", reason.value, detail)
        elif reason is RejectionReason.EXPIRED:
            logger.debug("Credential rejected reason=%s", reason.value)
        else:
            logger.info("Credential rejected reason=%s detail=%s", reason.value, detail)
        return VerificationResult.rejected(reason, detail)
