from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

from league_auth.authz.decision import RoleMatch
from league_auth.authz.scopes import Scope, parse_role, roles_for


class AuthConfig(BaseModel):
    authorization_header: str = "Authorization"
    bearer_prefix: str = "Bearer"


class DefaultRule(BaseModel):
    auth_required: bool = True


@dataclass(frozen=True)
class ScopeRequirement:
    """Minimum role a caller must hold at ``scope`` for the id in path param ``scope_param``."""

    scope: Scope
    min_role: str
    scope_param: str | None = None
    match: RoleMatch = RoleMatch.AT_LEAST


class RouteRule(BaseModel):
    path: str
    methods: list[str] = Field(default_factory=lambda: ["GET"])

    auth_required: bool | None = None
    scope: Scope | None = None
    scope_param: str | None = None
    min_role: str | None = None
    match: RoleMatch = RoleMatch.AT_LEAST

    @model_validator(mode="after")
    def _check_scope(self) -> RouteRule:
        if self.scope is None:
            if self.min_role or self.scope_param:
                raise ValueError(f"route {self.path!r}: min_role/scope_param require a scope")
            return self
        if not self.min_role:
            raise ValueError(f"route {self.path!r}: scope {self.scope.value!r} requires min_role")
        if parse_role(self.scope, self.min_role) is None:
            raise ValueError(
                f"route {self.path!r}: {self.min_role!r} is not a {self.scope.value} role "
                f"(expected one of {list(roles_for(self.scope))})"
            )
        if self.scope is not Scope.PLATFORM:
            if not self.scope_param:
                raise ValueError(f"route {self.path!r}: scope {self.scope.value!r} requires scope_param")
            if f"{{{self.scope_param}}}" not in self.path:
                raise ValueError(f"route {self.path!r}: path has no {{{self.scope_param}}} parameter")
        return self

    def normalized_methods(self) -> set[str]:
        return {m.upper() for m in self.methods}

    def requirement(self) -> ScopeRequirement | None:
        if self.scope is None or self.min_role is None:
            return None
        return ScopeRequirement(
            scope=self.scope,
            min_role=self.min_role,
            scope_param=self.scope_param,
            match=self.match,
        )


class SecurityConfigModel(BaseModel):
    auth: AuthConfig = Field(default_factory=AuthConfig)
    default: DefaultRule = Field(default_factory=DefaultRule)
    routes: list[RouteRule] = Field(default_factory=list)


@dataclass(frozen=True)
class EffectiveRule:
    """
    Fully-resolved rule (defaults applied) for a particular request.
    """

    auth_required: bool
    requirement: ScopeRequirement | None = None


def _path_template_to_regex(path_template: str) -> re.Pattern[str]:
    # Convert "/leagues/{league_id}" -> r"^/leagues/[^/]+$"
    parts = re.split(r"(\{[^/]+\})", path_template)
    regex = "".join("[^/]+" if part.startswith("{") else re.escape(part) for part in parts)
    return re.compile(rf"^{regex}$")


class SecurityConfig:
    """
    Runtime helper around validated config + route matching.
    """

    def __init__(self, model: SecurityConfigModel):
        self.model = model

        compiled: list[tuple[str, re.Pattern[str], RouteRule]] = []
        for rule in self.model.routes:
            compiled.append((rule.path, _path_template_to_regex(rule.path), rule))

        # Prefer exact matches over templates.
        self._exact_rules: dict[str, list[RouteRule]] = {}
        for r in self.model.routes:
            self._exact_rules.setdefault(r.path, []).append(r)
        self._compiled_rules = compiled

    @property
    def auth(self) -> AuthConfig:
        return self.model.auth

    def match(self, path: str, method: str) -> EffectiveRule:
        """
        Find the best matching rule for (path, method), then apply defaults.
        """

        method = method.upper()
        default = self.model.default

        # 1) exact path match
        for candidate in self._exact_rules.get(path, []):
            if method in candidate.normalized_methods():
                return _effective(candidate, default)

        # 2) template match
        for _template, regex, candidate in self._compiled_rules:
            if method not in candidate.normalized_methods():
                continue
            if regex.match(path):
                return _effective(candidate, default)

        # 3) no match -> defaults
        return EffectiveRule(auth_required=default.auth_required)


def _effective(rule: RouteRule, default: DefaultRule) -> EffectiveRule:
    requirement = rule.requirement()
    # A scope requirement always implies authentication, even if the default is public.
    if requirement is not None:
        auth_required = True
    elif rule.auth_required is None:
        auth_required = default.auth_required
    else:
        auth_required = rule.auth_required
    return EffectiveRule(auth_required=auth_required, requirement=requirement)


def load_security_config(path: Path) -> SecurityConfig:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "security" not in raw:
        raise ValueError(f"Missing top-level 'security' key in config: {path}")

    model = SecurityConfigModel.model_validate(raw["security"])
    return SecurityConfig(model)
