"""Identity, scope-role and claims types shared by issuer, verifier and decision engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

from .scopes import PlatformRole, Scope


@dataclass(frozen=True)
class Identity:
    """
    User attributes copied into a credential.

    Owned by the persistence layer; the authorization core only reads it.
    """

    id: str
    username: str
    email: str
    platform_role: str = PlatformRole.USER.value


@dataclass(frozen=True)
class ScopeRoles:
    """Roles held by one identity at each scope level (scope id -> role)."""

    locations: Mapping[str, str] = field(default_factory=dict)
    leagues: Mapping[str, str] = field(default_factory=dict)
    teams: Mapping[str, str] = field(default_factory=dict)

    def for_scope(self, scope: Scope) -> Mapping[str, str]:
        if scope is Scope.LOCATIONS:
            return self.locations
        if scope is Scope.LEAGUES:
            return self.leagues
        if scope is Scope.TEAMS:
            return self.teams
        return {}

    def total(self) -> int:
        """Number of scope entries; bounds the credential size."""
        return len(self.locations) + len(self.leagues) + len(self.teams)

    def to_dict(self) -> dict[str, dict[str, str]]:
        """Return a JSON-serializable dict."""
        return {
            "locations": dict(self.locations),
            "leagues": dict(self.leagues),
            "teams": dict(self.teams),
        }


class CredentialClaims(BaseModel):
    """
    Validated claims of a verified credential.

    Role values stay plain strings here; the decision engine maps them onto
    the per-scope enums and denies anything it does not recognize.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    sub: str
    username: str
    email: str
    platform_role: str
    locations: dict[str, str] = Field(default_factory=dict)
    leagues: dict[str, str] = Field(default_factory=dict)
    teams: dict[str, str] = Field(default_factory=dict)
    iat: int
    exp: int
    iss: str
    aud: str | list[str]
    jti: str | None = None

    @property
    def identity_id(self) -> str:
        return self.sub

    @property
    def is_platform_admin(self) -> bool:
        return self.platform_role == PlatformRole.ADMIN.value

    def roles_for(self, scope: Scope) -> Mapping[str, str]:
        return self.scope_roles().for_scope(scope)

    def scope_roles(self) -> ScopeRoles:
        return ScopeRoles(locations=self.locations, leagues=self.leagues, teams=self.teams)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dict."""
        return self.model_dump()
