"""
Credential issuance.

A credential is a JWS-signed JWT carrying the identity attributes and the
three scope-role mappings. It is never stored server side; the short lifetime
bounds how long a stale role set can be presented.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Any
import uuid

import jwt

from .claims import CredentialClaims, Identity, ScopeRoles
from .clock import Clock, utcnow
from .keys import KeyRegistry, NoActiveKeyError

logger = logging.getLogger(__name__)

DEFAULT_MAX_SCOPE_ROLES = 500


class SigningError(Exception):
    """Issuance cannot produce a signed credential. Configuration fault; not retried."""


class CredentialTooLargeError(ValueError):
    """The identity holds more scope roles than a credential may carry."""

    def __init__(self, count: int, limit: int) -> None:
        super().__init__(f"identity holds {count} scope roles; credentials carry at most {limit}")
        self.count = count
        self.limit = limit


@dataclass(frozen=True)
class IssuedCredential:
    token: str
    claims: CredentialClaims
    kid: str

    @property
    def expires_at(self) -> int:
        return self.claims.exp


class CredentialIssuer:
    """
    Builds and signs credentials with the registry's active key.

    ``max_scope_roles`` caps the number of scope entries; identities above
    it are refused rather than given a truncated (and therefore wrong) role set.
    """

    def __init__(
        self,
        registry: KeyRegistry,
        *,
        issuer: str,
        audience: str,
        lifetime: timedelta,
        max_scope_roles: int = DEFAULT_MAX_SCOPE_ROLES,
        clock: Clock = utcnow,
    ) -> None:
        if lifetime <= timedelta(0):
            raise ValueError("credential lifetime must be positive")
        if registry.grace_period < lifetime:
            raise ValueError(
                f"key grace period ({registry.grace_period}) must be at least "
                f"the credential lifetime ({lifetime})"
            )
        self._registry = registry
        self._issuer = issuer
        self._audience = audience
        self._lifetime = lifetime
        self._max_scope_roles = max_scope_roles
        self._clock = clock

    @property
    def lifetime(self) -> timedelta:
        return self._lifetime

    def issue(self, identity: Identity, roles: ScopeRoles, now: datetime | None = None) -> IssuedCredential:
        count = roles.total()
        if count > self._max_scope_roles:
            logger.warning(
                "Refusing to issue credential user_id=%s scope_roles=%d limit=%d",
                identity.id,
                count,
                self._max_scope_roles,
            )
            raise CredentialTooLargeError(count, self._max_scope_roles)

        try:
            key = self._registry.current_signing_key()
        except NoActiveKeyError as e:
            logger.error("Credential issuance halted: no active signing key")
            raise SigningError("no active signing key") from e

        now = now or self._clock()
        issued_at = int(now.timestamp())
        payload: dict[str, Any] = {
            "sub": identity.id,
            "id": identity.id,
            "username": identity.username,
            "email": identity.email,
            "platform_role": identity.platform_role,
            **roles.to_dict(),
            "iat": issued_at,
            "exp": issued_at + int(self._lifetime.total_seconds()),
            "iss": self._issuer,
            "aud": self._audience,
            "jti": uuid.uuid4().hex,
        }

        try:
            token = jwt.encode(payload, key.private_key, algorithm=key.algorithm, headers={"kid": key.kid})
        except (TypeError, ValueError, jwt.PyJWTError) as e:
            logger.error("Credential signing failed kid=%s: %s", key.kid, type(e).__name__)
            raise SigningError(f"signing with key {key.kid} failed") from e

        logger.debug("Issued credential user_id=%s kid=%s scope_roles=%d", identity.id, key.kid, count)
        return IssuedCredential(token=token, claims=CredentialClaims.model_validate(payload), kid=key.kid)
