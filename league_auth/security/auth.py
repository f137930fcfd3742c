from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from league_auth.authz.claims import CredentialClaims
from league_auth.authz.verifier import CredentialVerifier, RejectionReason
from league_auth.security.config import SecurityConfig

logger = logging.getLogger(__name__)


def unauthorized(reason: str, detail: str | None = None) -> HTTPException:
    """401 carrying a machine-readable reason (``expired`` means: refresh, don't re-login)."""
    description = reason if detail is None else f"{reason}: {detail}"
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": "unauthorized", "reason": reason},
        headers={"WWW-Authenticate": f'Bearer error="invalid_token", error_description="{description}"'},
    )


def extract_bearer_token(request: Request, config: SecurityConfig) -> str | None:
    """
    Extract the credential from `Authorization: Bearer <token>`.

    Returns None when the header is absent; a malformed header is a 401.
    """

    header_name = config.auth.authorization_header
    bearer_prefix = config.auth.bearer_prefix

    raw = request.headers.get(header_name)
    if not raw:
        logger.info("Missing %s header path=%s method=%s", header_name, request.url.path, request.method)
        return None

    prefix = f"{bearer_prefix} "
    if not raw.startswith(prefix):
        logger.warning("Invalid %s header format path=%s method=%s", header_name, request.url.path, request.method)
        raise unauthorized(RejectionReason.MALFORMED.value, f"expected '{bearer_prefix} <token>'")

    token = raw[len(prefix) :].strip()
    if not token:
        logger.warning("Empty bearer token path=%s method=%s", request.url.path, request.method)
        raise unauthorized(RejectionReason.MALFORMED.value, f"missing token after '{bearer_prefix}'")

    return token


def verify_credential(token: str, verifier: CredentialVerifier) -> CredentialClaims:
    """Verified claims, or a 401 tagged with the rejection reason."""

    result = verifier.verify(token)
    if result.claims is None:
        rejection = result.rejection
        reason = rejection.reason.value if rejection else RejectionReason.MALFORMED.value
        raise unauthorized(reason)
    return result.claims
