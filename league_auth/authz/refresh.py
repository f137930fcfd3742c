"""
Credential issuance for a known identity, and self-refresh after role changes.

Roles always come from the aggregator; nothing here accepts a role set from
the caller.
"""

from __future__ import annotations

import logging
from typing import Protocol

from .aggregator import RoleAggregator
from .claims import Identity
from .issuer import CredentialIssuer, IssuedCredential

logger = logging.getLogger(__name__)


class IdentityNotFoundError(LookupError):
    """The identity does not exist or is no longer active."""


class IdentitySource(Protocol):
    async def get_identity(self, identity_id: str) -> Identity | None: ...


class RefreshFlow:
    def __init__(self, identities: IdentitySource, aggregator: RoleAggregator, issuer: CredentialIssuer) -> None:
        self._identities = identities
        self._aggregator = aggregator
        self._issuer = issuer

    async def issue_for(self, identity: Identity) -> IssuedCredential:
        """Aggregate current roles for an already-authenticated identity and sign."""
        roles = await self._aggregator.aggregate(identity.id)
        return self._issuer.issue(identity, roles)

    async def refresh(self, identity_id: str) -> IssuedCredential:
        identity = await self._identities.get_identity(identity_id)
        if identity is None:
            raise IdentityNotFoundError(f"identity {identity_id!r} not found or inactive")
        issued = await self.issue_for(identity)
        logger.info("Refreshed credential user_id=%s kid=%s", identity_id, issued.kid)
        return issued
