from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from league_auth import models  # noqa: F401  (register tables)
from league_auth.db.base import Base
from league_auth.models.identity import League, LeagueMember, Location, Owner, Team, TeamMember, User
from league_auth.security.passwords import hash_password

DEMO_PASSWORD = "league-demo-password"


def init_db(engine: Engine, session_factory: sessionmaker[Session], *, seed: bool = False) -> None:
    """
    Create tables and optionally seed demo data.

    The seed is small and deterministic so role aggregation and scope checks
    can be tried without further setup. Every demo user's password is
    ``DEMO_PASSWORD``.
    """

    Base.metadata.create_all(bind=engine)
    if not seed:
        return

    with session_factory() as db:
        if _has_seed_data(db):
            return
        _seed(db)


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(User.id).limit(1)).first() is not None


def _seed(db: Session) -> None:
    password_hash = hash_password(DEMO_PASSWORD)

    admin = User(username="alice_admin", email="alice@example.com", password_hash=password_hash, role="admin")
    owner = User(username="oscar_owner", email="oscar@example.com", password_hash=password_hash)
    manager = User(username="mia_manager", email="mia@example.com", password_hash=password_hash)
    captain = User(username="cara_captain", email="cara@example.com", password_hash=password_hash)
    player = User(username="pete_player", email="pete@example.com", password_hash=password_hash)
    db.add_all([admin, owner, manager, captain, player])
    db.flush()

    org = Owner(user_id=owner.id, name="Downtown Golf Sims LLC")
    db.add(org)
    db.flush()

    location = Location(owner_id=org.id, name="Downtown Bays", address="1 Main St")
    db.add(location)
    db.flush()

    league = League(location_id=location.id, name="Tuesday Night League", status="active")
    db.add(league)
    db.flush()

    db.add_all(
        [
            LeagueMember(league_id=league.id, user_id=manager.id, role="manager"),
            LeagueMember(league_id=league.id, user_id=captain.id, role="player"),
            LeagueMember(league_id=league.id, user_id=player.id, role="player"),
        ]
    )

    team = Team(league_id=league.id, name="Birdie Hunters")
    db.add(team)
    db.flush()

    db.add_all(
        [
            TeamMember(team_id=team.id, user_id=captain.id, role="captain"),
            TeamMember(team_id=team.id, user_id=player.id, role="member"),
        ]
    )

    db.commit()
