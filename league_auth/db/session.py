from __future__ import annotations

from collections.abc import Generator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


def build_engine(db_url: str) -> Engine:
    """
    Create the engine for ``db_url``.

    In-memory SQLite shares one connection across threads; role lookups run in
    worker threads and must see the same database.
    """

    if db_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(db_url, **kwargs)
    return create_engine(db_url, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, class_=Session)


def get_db(request: Request) -> Generator[Session, None, None]:
    """Request-scoped session from the factory created at startup."""

    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
