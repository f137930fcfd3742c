"""
Authorization decisions over validated claims.

Evaluated as an ordered short-circuit:

1. Platform administrator -> permit (bypasses every scope check).
2. No role held for (scope, scope_id) -> deny.
3. Held role vs required role through the per-scope ranking table in
   ``scopes.ROLE_RANKING``: ``AT_LEAST`` permits equal or higher rank,
   ``EXACT`` only the same role.

Any scope, role or match mode the table does not recognize is denied. A deny
is a normal outcome and is logged at debug level only.
"""

from __future__ import annotations

from enum import Enum
import logging

from .claims import CredentialClaims
from .scopes import Scope, parse_scope, role_rank

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    PERMIT = "permit"
    DENY = "deny"

    @property
    def permitted(self) -> bool:
        return self is Decision.PERMIT


class RoleMatch(str, Enum):
    AT_LEAST = "at_least"
    EXACT = "exact"


def authorize(
    claims: CredentialClaims,
    required_scope: Scope | str,
    scope_id: str | None,
    min_role: Enum | str,
    match: RoleMatch | str = RoleMatch.AT_LEAST,
) -> Decision:
    if claims.is_platform_admin:
        return Decision.PERMIT

    try:
        match = RoleMatch(match)
    except ValueError:
        logger.debug("Authz: unknown match=%r user_id=%s", match, claims.sub)
        return Decision.DENY

    scope = parse_scope(required_scope)
    if scope is None:
        logger.debug("Authz: unknown scope=%r user_id=%s", required_scope, claims.sub)
        return Decision.DENY

    if scope is Scope.PLATFORM:
        held = claims.platform_role
    else:
        if scope_id is None:
            return Decision.DENY
        held = claims.roles_for(scope).get(str(scope_id))
        if held is None:
            logger.debug("Authz: no role user_id=%s scope=%s scope_id=%s", claims.sub, scope.value, scope_id)
            return Decision.DENY

    held_rank = role_rank(scope, held)
    required_rank = role_rank(scope, min_role)
    if held_rank is None or required_rank is None:
        logger.debug(
            "Authz: unranked role user_id=%s scope=%s held=%r required=%r",
            claims.sub,
            scope.value,
            held,
            min_role,
        )
        return Decision.DENY

    if match is RoleMatch.EXACT:
        permitted = held_rank == required_rank
    else:
        permitted = held_rank >= required_rank

    if permitted:
        return Decision.PERMIT

    logger.debug(
        "Authz: denied user_id=%s scope=%s scope_id=%s held=%s required=%s match=%s",
        claims.sub,
        scope.value,
        scope_id,
        held,
        min_role,
        match.value,
    )
    return Decision.DENY
