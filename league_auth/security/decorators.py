from __future__ import annotations

from collections.abc import Callable

from league_auth.authz.decision import RoleMatch
from league_auth.authz.scopes import Scope, parse_role
from league_auth.security.config import ScopeRequirement


def require_scope_role(
    scope: Scope,
    min_role: str,
    scope_param: str | None = None,
    match: RoleMatch = RoleMatch.AT_LEAST,
) -> Callable:
    """
    Decorator-style alternative to a route rule in ``security_config.yaml``.

    The decorator does NOT perform auth itself. It attaches a
    ``ScopeRequirement`` that the global security dependency reads after
    routing and enforces alongside any configured rule.
    """

    if parse_role(scope, min_role) is None:
        raise ValueError(f"{min_role!r} is not a {scope.value} role")
    if scope is not Scope.PLATFORM and not scope_param:
        raise ValueError(f"scope {scope.value!r} requires scope_param")
    requirement = ScopeRequirement(scope=scope, min_role=min_role, scope_param=scope_param, match=match)

    def decorator(fn: Callable) -> Callable:
        existing = tuple(getattr(fn, "__security_scope_requirements__", ()))
        setattr(fn, "__security_scope_requirements__", existing + (requirement,))
        return fn

    return decorator
