from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status

from league_auth.authz.claims import CredentialClaims
from league_auth.authz.decision import authorize
from league_auth.authz.refresh import RefreshFlow
from league_auth.authz.scopes import Scope
from league_auth.authz.verifier import CredentialVerifier
from league_auth.db.sources import SqlIdentitySource
from league_auth.security.auth import extract_bearer_token, unauthorized, verify_credential
from league_auth.security.config import ScopeRequirement, SecurityConfig
from league_auth.security.context import AuthzContext
from league_auth.security.sessions import SessionStore

logger = logging.getLogger(__name__)


def get_security_config(request: Request) -> SecurityConfig:
    config = getattr(request.app.state, "security_config", None)
    if config is None:
        raise RuntimeError("Security config not loaded. Did app startup run?")
    return config


def get_verifier(request: Request) -> CredentialVerifier:
    verifier = getattr(request.app.state, "verifier", None)
    if verifier is None:
        raise RuntimeError("Credential verifier not configured. Did app startup run?")
    return verifier


def _issuing_component(request: Request, name: str):
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "issuance_unavailable", "reason": "this instance only verifies credentials"},
        )
    return component


def get_refresh_flow(request: Request) -> RefreshFlow:
    return _issuing_component(request, "refresh_flow")


def get_identity_source(request: Request) -> SqlIdentitySource:
    return _issuing_component(request, "identities")


def get_session_store(request: Request) -> SessionStore:
    return _issuing_component(request, "sessions")


def get_current_claims(request: Request) -> CredentialClaims:
    claims = getattr(request.state, "claims", None)
    if claims is None:
        raise unauthorized("missing_credential")
    return claims


def enforce_security(
    request: Request,
    config: SecurityConfig = Depends(get_security_config),
    verifier: CredentialVerifier = Depends(get_verifier),
) -> None:
    """
    Global security dependency (configuration-driven, plus decorator metadata).

    Runs after routing, so path parameters and the endpoint are known:
    - no credential on a protected route -> 401
    - credential rejected by the verifier -> 401 with the rejection reason
    - any scope requirement denied -> 403
    """

    path = request.url.path
    method = request.method.upper()

    rule = config.match(path, method)

    endpoint = request.scope.get("endpoint")
    decorated: tuple[ScopeRequirement, ...] = tuple(getattr(endpoint, "__security_scope_requirements__", ())) if endpoint else ()

    requirements = ([rule.requirement] if rule.requirement else []) + list(decorated)
    if not (rule.auth_required or requirements):
        return

    token = extract_bearer_token(request, config)
    if token is None:
        raise unauthorized("missing_credential")

    claims = verify_credential(token, verifier)
    request.state.claims = claims

    checked: list[tuple[ScopeRequirement, str | None]] = []
    for requirement in requirements:
        scope_id = _scope_id(request, requirement)
        decision = authorize(claims, requirement.scope, scope_id, requirement.min_role, requirement.match)
        if not decision.permitted:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "forbidden",
                    "scope": requirement.scope.value,
                    "required_role": requirement.min_role,
                    "match": requirement.match.value,
                },
            )
        checked.append((requirement, scope_id))

    request.state.authz = AuthzContext(
        identity_id=claims.sub,
        platform_role=claims.platform_role,
        claims=claims,
        checked=tuple(checked),
    )


def _scope_id(request: Request, requirement: ScopeRequirement) -> str | None:
    if requirement.scope is Scope.PLATFORM or not requirement.scope_param:
        return None
    scope_id = request.path_params.get(requirement.scope_param)
    if not scope_id:
        logger.warning("Scope parameter %r missing path=%s", requirement.scope_param, request.url.path)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{requirement.scope_param} required",
        )
    return str(scope_id)
