from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from league_auth.authz.claims import CredentialClaims
from league_auth.authz.issuer import IssuedCredential
from league_auth.authz.refresh import RefreshFlow
from league_auth.db.sources import SqlIdentitySource
from league_auth.schemas.auth import ClaimsOut, LoginIn, RegisterIn, TokenOut, TokenUserOut
from league_auth.security.auth import unauthorized
from league_auth.security.dependencies import (
    get_current_claims,
    get_identity_source,
    get_refresh_flow,
    get_session_store,
)
from league_auth.security.passwords import hash_password, verify_password
from league_auth.security.sessions import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_out(issued: IssuedCredential) -> TokenOut:
    return TokenOut(
        token=issued.token,
        expires_at=issued.expires_at,
        user=TokenUserOut(id=issued.claims.sub, username=issued.claims.username),
    )


def _cookie_name(request: Request) -> str:
    return request.app.state.settings.session_cookie_name


@router.post("/register", response_model=TokenOut, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterIn,
    identities: SqlIdentitySource = Depends(get_identity_source),
    refresh_flow: RefreshFlow = Depends(get_refresh_flow),
) -> TokenOut:
    password_hash = await asyncio.to_thread(hash_password, body.password)
    identity = await identities.create_user(body.username, body.email, password_hash)
    if identity is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username or email already registered")
    logger.info("Registered user_id=%s", identity.id)
    return _token_out(await refresh_flow.issue_for(identity))


@router.post("/login", response_model=TokenOut)
async def login(
    body: LoginIn,
    request: Request,
    response: Response,
    identities: SqlIdentitySource = Depends(get_identity_source),
    refresh_flow: RefreshFlow = Depends(get_refresh_flow),
    sessions: SessionStore = Depends(get_session_store),
) -> TokenOut:
    found = await identities.find_credentials(body.email)
    if found is None or not await asyncio.to_thread(verify_password, body.password, found[1]):
        logger.info("Login failed path=%s", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "unauthorized", "reason": "invalid_login"},
        )
    identity = found[0]

    # Roles first: a failed lookup must not leave a session behind.
    issued = await refresh_flow.issue_for(identity)

    record = await asyncio.to_thread(
        sessions.create,
        identity.id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    response.set_cookie(
        key=_cookie_name(request),
        value=record.token,
        max_age=int(sessions.ttl.total_seconds()),
        httponly=True,
        samesite="lax",
        secure=request.url.scheme == "https",
    )
    return _token_out(issued)


@router.post("/session/token", response_model=TokenOut)
async def session_token(
    request: Request,
    refresh_flow: RefreshFlow = Depends(get_refresh_flow),
    sessions: SessionStore = Depends(get_session_store),
) -> TokenOut:
    token = request.cookies.get(_cookie_name(request))
    if not token:
        raise unauthorized("missing_session")
    user_id = await asyncio.to_thread(sessions.resolve, token)
    if user_id is None:
        raise unauthorized("invalid_session")
    return _token_out(await refresh_flow.refresh(user_id))


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    sessions: SessionStore = Depends(get_session_store),
) -> dict[str, str]:
    token = request.cookies.get(_cookie_name(request))
    if token:
        await asyncio.to_thread(sessions.delete, token)
    response.delete_cookie(_cookie_name(request))
    return {"status": "logged_out"}


@router.post("/token/refresh", response_model=TokenOut)
async def refresh_token(
    claims: CredentialClaims = Depends(get_current_claims),
    refresh_flow: RefreshFlow = Depends(get_refresh_flow),
) -> TokenOut:
    # Roles come from the database only; the request body is never read.
    return _token_out(await refresh_flow.refresh(claims.sub))


@router.get("/me", response_model=ClaimsOut)
def me(claims: CredentialClaims = Depends(get_current_claims)) -> ClaimsOut:
    return ClaimsOut.model_validate(claims.model_dump())
