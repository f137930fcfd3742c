"""
Entity-scoped authorization core.

This package has no dependency on the web, database or settings packages of
the application; persistence is reached only through the ``RoleSource``,
``IdentitySource`` and ``KeyStore`` protocols.
"""

from .aggregator import DuplicateRoleError, RoleAggregator, RoleLookupError, RoleSource
from .claims import CredentialClaims, Identity, ScopeRoles
from .decision import Decision, RoleMatch, authorize
from .issuer import CredentialIssuer, CredentialTooLargeError, IssuedCredential, SigningError
from .keys import KeyMaterialError, KeyRegistry, KeyStore, NoActiveKeyError, SigningKey
from .refresh import IdentityNotFoundError, IdentitySource, RefreshFlow
from .remote_keys import RemoteKeySet
from .rotation import KeyRotationJob
from .scopes import LeagueRole, LocationRole, PlatformRole, Scope, TeamRole
from .verifier import CredentialVerifier, Rejection, RejectionReason, VerificationResult

__all__ = [
    "CredentialClaims",
    "CredentialIssuer",
    "CredentialTooLargeError",
    "CredentialVerifier",
    "Decision",
    "DuplicateRoleError",
    "Identity",
    "IdentityNotFoundError",
    "IdentitySource",
    "IssuedCredential",
    "KeyMaterialError",
    "KeyRegistry",
    "KeyRotationJob",
    "KeyStore",
    "LeagueRole",
    "LocationRole",
    "NoActiveKeyError",
    "PlatformRole",
    "RefreshFlow",
    "Rejection",
    "RejectionReason",
    "RemoteKeySet",
    "RoleAggregator",
    "RoleLookupError",
    "RoleMatch",
    "RoleSource",
    "Scope",
    "ScopeRoles",
    "SigningError",
    "SigningKey",
    "TeamRole",
    "VerificationResult",
    "authorize",
]
