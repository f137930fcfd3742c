"""
Role aggregation: compute an identity's roles at every scope level.

The three lookups (location ownership, league membership, active team
membership) run concurrently in one task group under a shared timeout. The
first failure cancels the others and the whole aggregation fails; a partial
role set is never returned, since a caller cannot tell it apart from a
complete one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Protocol

from .claims import ScopeRoles
from .scopes import Scope

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_TIMEOUT_SECONDS = 2.0

RoleRows = Iterable[tuple[str, str]]


class RoleSource(Protocol):
    """Read-only access to the three membership relations, as (scope_id, role) rows."""

    async def location_roles(self, identity_id: str) -> RoleRows: ...

    async def league_roles(self, identity_id: str) -> RoleRows: ...

    async def team_roles(self, identity_id: str) -> RoleRows: ...


class RoleLookupError(Exception):
    """A role lookup failed or timed out. Retryable; never means "no roles"."""

    retryable = True

    def __init__(self, message: str, *, identity_id: str) -> None:
        super().__init__(message)
        self.identity_id = identity_id


class DuplicateRoleError(Exception):
    """A relation returned two roles for the same scope id (data-integrity fault)."""

    retryable = False

    def __init__(self, scope: Scope, scope_id: str, roles: tuple[str, str]) -> None:
        super().__init__(f"duplicate {scope.value} role for scope id {scope_id!r}: {roles[0]!r} and {roles[1]!r}")
        self.scope = scope
        self.scope_id = scope_id
        self.roles = roles


def _fold(scope: Scope, rows: RoleRows) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for scope_id, role in rows:
        scope_id = str(scope_id)
        if scope_id in mapping:
            raise DuplicateRoleError(scope, scope_id, (mapping[scope_id], str(role)))
        mapping[scope_id] = str(role)
    return mapping


class RoleAggregator:
    def __init__(self, source: RoleSource, *, timeout_seconds: float = DEFAULT_LOOKUP_TIMEOUT_SECONDS) -> None:
        self._source = source
        self._timeout = timeout_seconds

    async def aggregate(self, identity_id: str) -> ScopeRoles:
        try:
            async with asyncio.timeout(self._timeout):
                async with asyncio.TaskGroup() as tg:
                    locations = tg.create_task(self._source.location_roles(identity_id))
                    leagues = tg.create_task(self._source.league_roles(identity_id))
                    teams = tg.create_task(self._source.team_roles(identity_id))
        except TimeoutError as e:
            logger.warning("Role lookup timed out user_id=%s timeout=%ss", identity_id, self._timeout)
            raise RoleLookupError(
                f"role lookup timed out after {self._timeout}s", identity_id=identity_id
            ) from e
        except ExceptionGroup as group:
            first = group.exceptions[0]
            logger.warning("Role lookup failed user_id=%s error=%s", identity_id, type(first).__name__)
            raise RoleLookupError(f"role lookup failed: {first}", identity_id=identity_id) from first

        return ScopeRoles(
            locations=_fold(Scope.LOCATIONS, locations.result()),
            leagues=_fold(Scope.LEAGUES, leagues.result()),
            teams=_fold(Scope.TEAMS, teams.result()),
        )
