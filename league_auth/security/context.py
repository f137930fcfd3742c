from __future__ import annotations

from dataclasses import dataclass

from league_auth.authz.claims import CredentialClaims
from league_auth.security.config import ScopeRequirement


@dataclass(frozen=True)
class AuthzContext:
    """
    Per-request authorization context attached to ``request.state.authz``.

    Records which scope checks were permitted for this request so handlers
    can tell what the caller was admitted as.
    """

    identity_id: str
    platform_role: str
    claims: CredentialClaims
    checked: tuple[tuple[ScopeRequirement, str | None], ...] = ()

    @property
    def is_platform_admin(self) -> bool:
        return self.claims.is_platform_admin
