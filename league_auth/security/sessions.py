"""
Cookie login sessions.

A session only bootstraps credential issuance (``POST /auth/session/token``);
resource endpoints never accept it.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
import secrets

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from league_auth.authz.clock import as_utc, utcnow
from league_auth.models.auth import SessionRecord

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, session_factory: sessionmaker[Session], ttl: timedelta) -> None:
        self._session_factory = session_factory
        self._ttl = ttl

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def create(
        self,
        user_id: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
    ) -> SessionRecord:
        now = now or utcnow()
        record = SessionRecord(
            user_id=user_id,
            token=secrets.token_urlsafe(32),
            expires_at=now + self._ttl,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now,
        )
        with self._session_factory() as db:
            db.add(record)
            db.commit()
        logger.info("Session created user_id=%s", user_id)
        return record

    def resolve(self, token: str, now: datetime | None = None) -> str | None:
        """Owning user id of a live session, or None."""
        now = now or utcnow()
        with self._session_factory() as db:
            record = db.scalars(select(SessionRecord).where(SessionRecord.token == token)).first()
            if record is None:
                return None
            if as_utc(record.expires_at) <= now:
                return None
            return record.user_id

    def delete(self, token: str) -> bool:
        with self._session_factory() as db:
            result = db.execute(delete(SessionRecord).where(SessionRecord.token == token))
            db.commit()
            return result.rowcount > 0

    def sweep(self, now: datetime | None = None) -> int:
        """Delete expired sessions. Returns the number removed."""
        now = now or utcnow()
        with self._session_factory() as db:
            result = db.execute(delete(SessionRecord).where(SessionRecord.expires_at <= now))
            db.commit()
        if result.rowcount:
            logger.info("Swept %d expired session(s)", result.rowcount)
        return result.rowcount
