from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from league_auth.authz.aggregator import DuplicateRoleError, RoleAggregator, RoleLookupError
from league_auth.authz.issuer import CredentialIssuer, CredentialTooLargeError, SigningError
from league_auth.authz.keys import KeyMaterialError, KeyRegistry
from league_auth.authz.refresh import IdentityNotFoundError, RefreshFlow
from league_auth.authz.remote_keys import RemoteKeySet
from league_auth.authz.rotation import KeyRotationJob, run_periodically
from league_auth.authz.verifier import CredentialVerifier
from league_auth.db.init_db import init_db
from league_auth.db.key_store import SqlKeyStore
from league_auth.db.session import build_engine, build_session_factory
from league_auth.db.sources import SqlIdentitySource, SqlRoleSource
from league_auth.logging_config import configure_app_logging
from league_auth.routers import admin, auth, health, jwks, leagues
from league_auth.security.config import load_security_config
from league_auth.security.dependencies import enforce_security
from league_auth.security.sessions import SessionStore
from league_auth.settings import Settings, get_settings

logger = logging.getLogger(__name__)

ROLE_LOOKUP_RETRY_AFTER_SECONDS = 1


def create_app(settings: Settings | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        resolved = settings or get_settings()
        configure_app_logging(resolved.log_level)
        logger.info("App startup beginning")

        app.state.settings = resolved
        engine = build_engine(resolved.resolved_db_url())
        session_factory = build_session_factory(engine)
        app.state.session_factory = session_factory

        app.state.security_config = load_security_config(resolved.resolved_security_config_path())
        logger.info("Loaded security config: %s", resolved.resolved_security_config_path())
        init_db(engine, session_factory, seed=resolved.seed_demo_data)
        logger.info("Database initialized (tables ensured, seed=%s)", resolved.seed_demo_data)

        app.state.identities = None
        app.state.refresh_flow = None
        app.state.sessions = None
        background: list = []

        if resolved.verify_only:
            remote = RemoteKeySet(resolved.jwks_uri, resolved.jwks_refresh_seconds)
            app.state.key_source = remote
            background.append(("JWKS poller", remote.run_forever()))
            logger.info("Verify-only instance; polling %s", resolved.jwks_uri)
        else:
            registry = KeyRegistry(
                resolved.key_grace_period,
                algorithm=resolved.signing_algorithm,
                store=SqlKeyStore(session_factory, resolved.key_encryption_secret),
            )
            registry.load()
            rotation = KeyRotationJob(
                registry,
                resolved.key_rotation_interval,
                check_interval_seconds=resolved.key_rotation_check_seconds,
            )
            rotation.run_once()
            app.state.key_source = registry

            issuer = CredentialIssuer(
                registry,
                issuer=resolved.issuer,
                audience=resolved.audience,
                lifetime=resolved.credential_lifetime,
                max_scope_roles=resolved.max_scope_roles,
            )
            identities = SqlIdentitySource(session_factory)
            aggregator = RoleAggregator(
                SqlRoleSource(session_factory),
                timeout_seconds=resolved.role_lookup_timeout_seconds,
            )
            sessions = SessionStore(session_factory, resolved.session_ttl)
            app.state.identities = identities
            app.state.refresh_flow = RefreshFlow(identities, aggregator, issuer)
            app.state.sessions = sessions

            background.append(("Key rotation", rotation.run_forever()))
            background.append(
                ("Session sweep", run_periodically(sessions.sweep, resolved.session_sweep_seconds, name="Session sweep"))
            )

        app.state.verifier = CredentialVerifier(
            app.state.key_source,
            issuer=resolved.issuer,
            audience=resolved.audience,
            clock_skew=resolved.clock_skew,
        )

        tasks: list[asyncio.Task] = []
        for name, coro in background:
            if resolved.background_jobs:
                tasks.append(asyncio.create_task(coro, name=name))
            else:
                coro.close()

        yield

        # Shutdown
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        engine.dispose()
        logger.info("App shutdown complete")

    # Global dependency: applies security with zero changes to route handlers.
    app = FastAPI(dependencies=[Depends(enforce_security)], lifespan=lifespan)
    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(jwks.router)
    app.include_router(auth.router)
    app.include_router(leagues.router)
    app.include_router(admin.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RoleLookupError)
    async def role_lookup_failed(request: Request, exc: RoleLookupError) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"detail": {"error": "role_lookup_failed", "retryable": True}},
            headers={"Retry-After": str(ROLE_LOOKUP_RETRY_AFTER_SECONDS)},
        )

    @app.exception_handler(DuplicateRoleError)
    async def duplicate_role(request: Request, exc: DuplicateRoleError) -> JSONResponse:
        logger.error("Role data integrity fault: %s", exc)
        return JSONResponse(status_code=500, content={"detail": {"error": "role_data_integrity"}})

    @app.exception_handler(SigningError)
    @app.exception_handler(KeyMaterialError)
    async def signing_unavailable(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Credential signing unavailable: %s", exc)
        return JSONResponse(status_code=500, content={"detail": {"error": "signing_unavailable"}})

    @app.exception_handler(CredentialTooLargeError)
    async def credential_too_large(request: Request, exc: CredentialTooLargeError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": {"error": "credential_too_large", "scope_roles": exc.count, "limit": exc.limit}},
        )

    @app.exception_handler(IdentityNotFoundError)
    async def identity_not_found(request: Request, exc: IdentityNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content={"detail": {"error": "unauthorized", "reason": "unknown_identity"}},
        )


app = create_app()
