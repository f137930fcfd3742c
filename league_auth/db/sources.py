"""
SQL-backed identity and role sources for the authorization core.

Each lookup opens its own session in a worker thread, so the aggregator's
three lookups really run side by side. All queries are read only.
"""

from __future__ import annotations

import asyncio

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from league_auth.authz.claims import Identity
from league_auth.models.identity import LeagueMember, Location, Owner, TeamMember, User


def _to_identity(user: User) -> Identity:
    return Identity(id=user.id, username=user.username, email=user.email, platform_role=user.role)


class SqlRoleSource:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def _rows(self, stmt: Select) -> list[tuple[str, str]]:
        with self._session_factory() as db:
            return [(str(scope_id), str(role)) for scope_id, role in db.execute(stmt).all()]

    async def location_roles(self, identity_id: str) -> list[tuple[str, str]]:
        # Ownership has a single role; every location of the identity's owner accounts is "owner".
        stmt = select(Location.id).join(Owner, Location.owner_id == Owner.id).where(Owner.user_id == identity_id)
        location_ids = await asyncio.to_thread(self._ids, stmt)
        return [(location_id, "owner") for location_id in location_ids]

    def _ids(self, stmt: Select) -> list[str]:
        with self._session_factory() as db:
            return [str(v) for v in db.scalars(stmt).all()]

    async def league_roles(self, identity_id: str) -> list[tuple[str, str]]:
        stmt = select(LeagueMember.league_id, LeagueMember.role).where(LeagueMember.user_id == identity_id)
        return await asyncio.to_thread(self._rows, stmt)

    async def team_roles(self, identity_id: str) -> list[tuple[str, str]]:
        stmt = select(TeamMember.team_id, TeamMember.role).where(
            TeamMember.user_id == identity_id,
            TeamMember.status == "active",
        )
        return await asyncio.to_thread(self._rows, stmt)


class SqlIdentitySource:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def _get(self, identity_id: str) -> Identity | None:
        with self._session_factory() as db:
            user = db.get(User, identity_id)
            if user is None or not user.is_active:
                return None
            return _to_identity(user)

    def _find_credentials(self, email: str) -> tuple[Identity, str] | None:
        with self._session_factory() as db:
            user = db.scalars(select(User).where(User.email == email)).first()
            if user is None or not user.is_active:
                return None
            return _to_identity(user), user.password_hash

    def _create(self, username: str, email: str, password_hash: str) -> Identity | None:
        with self._session_factory() as db:
            user = User(username=username, email=email, password_hash=password_hash, role="user")
            db.add(user)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                return None
            return _to_identity(user)

    async def get_identity(self, identity_id: str) -> Identity | None:
        return await asyncio.to_thread(self._get, identity_id)

    async def find_credentials(self, email: str) -> tuple[Identity, str] | None:
        """Identity and stored password hash for an active user, by email."""
        return await asyncio.to_thread(self._find_credentials, email)

    async def create_user(self, username: str, email: str, password_hash: str) -> Identity | None:
        """Insert a platform user; None when the username or email is taken."""
        return await asyncio.to_thread(self._create, username, email, password_hash)
