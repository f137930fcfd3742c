"""
Scope kinds and their role vocabularies.

Each scope level (platform, location, league, team) has its own closed role
enum. ``ROLE_RANKING`` lists every scope's roles from least to most
privileged; anything not listed has no rank and is denied by the decision
engine.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping


class Scope(str, Enum):
    """Hierarchy level a role is held at. Values match the claim keys."""

    PLATFORM = "platform"
    LOCATIONS = "locations"
    LEAGUES = "leagues"
    TEAMS = "teams"


class PlatformRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class LocationRole(str, Enum):
    OWNER = "owner"


class LeagueRole(str, Enum):
    SPECTATOR = "spectator"
    PLAYER = "player"
    MANAGER = "manager"


class TeamRole(str, Enum):
    MEMBER = "member"
    CAPTAIN = "captain"


# Least privileged first.
ROLE_RANKING: Mapping[Scope, tuple[Enum, ...]] = {
    Scope.PLATFORM: (PlatformRole.USER, PlatformRole.ADMIN),
    Scope.LOCATIONS: (LocationRole.OWNER,),
    Scope.LEAGUES: (LeagueRole.SPECTATOR, LeagueRole.PLAYER, LeagueRole.MANAGER),
    Scope.TEAMS: (TeamRole.MEMBER, TeamRole.CAPTAIN),
}


def parse_scope(value: Scope | str) -> Scope | None:
    """Return the Scope for ``value`` or None when it is not a known scope."""
    if isinstance(value, Scope):
        return value
    try:
        return Scope(str(value).strip().lower())
    except ValueError:
        return None


def parse_role(scope: Scope, role: Enum | str | None) -> Enum | None:
    """Map a raw role string onto the scope's enum; None when unrecognized."""
    if role is None:
        return None
    raw = role.value if isinstance(role, Enum) else str(role)
    for candidate in ROLE_RANKING[scope]:
        if candidate.value == raw:
            return candidate
    return None


def role_rank(scope: Scope, role: Enum | str | None) -> int | None:
    """Rank of ``role`` within ``scope`` (0 = least privileged), or None."""
    parsed = parse_role(scope, role)
    if parsed is None:
        return None
    return ROLE_RANKING[scope].index(parsed)


def roles_for(scope: Scope) -> tuple[str, ...]:
    return tuple(r.value for r in ROLE_RANKING[scope])
