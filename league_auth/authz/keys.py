"""
Key registry: the signing key pair used for new credentials plus the public
keys still accepted for verification.

Lifecycle of a key:

    rotate()  -> becomes the single active signer
    rotate()  -> superseded; still verifies for ``grace_period``
    purge()   -> retired once ``superseded_at + grace_period`` has passed

The grace period must be at least the credential lifetime, otherwise a
credential signed just before a rotation stops verifying before it expires.
``CredentialIssuer`` enforces that when it is constructed.

State is held in an immutable snapshot. Writers build a new snapshot under a
lock and swap the reference; readers take the reference once, so they always
see either the pre- or the post-rotation key set.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
import logging
import threading
from typing import Any, Iterable, Mapping, Protocol
import uuid

from cryptography.hazmat.primitives.asymmetric import ed25519, rsa
from jwt import PyJWK
from jwt.algorithms import OKPAlgorithm, RSAAlgorithm

from .clock import Clock, as_utc, utcnow

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHMS = ("EdDSA", "RS256")


class KeyMaterialError(Exception):
    """Key material is missing, unreadable or of an unsupported type."""


class NoActiveKeyError(LookupError):
    """The registry holds no active signing key."""


def generate_private_key(algorithm: str) -> Any:
    if algorithm == "EdDSA":
        return ed25519.Ed25519PrivateKey.generate()
    if algorithm == "RS256":
        return rsa.generate_private_key(public_exponent=65537, key_size=2048)
    raise KeyMaterialError(f"unsupported signing algorithm {algorithm!r}")


def public_jwk(private_key: Any, algorithm: str, kid: str) -> dict[str, Any]:
    """Public half of ``private_key`` as a JWK dict tagged with kid/alg/use."""
    if algorithm == "EdDSA":
        if not isinstance(private_key, ed25519.Ed25519PrivateKey):
            raise KeyMaterialError("EdDSA requires an Ed25519 private key")
        jwk = OKPAlgorithm.to_jwk(private_key.public_key(), as_dict=True)
    elif algorithm == "RS256":
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise KeyMaterialError("RS256 requires an RSA private key")
        jwk = RSAAlgorithm.to_jwk(private_key.public_key(), as_dict=True)
    else:
        raise KeyMaterialError(f"unsupported signing algorithm {algorithm!r}")
    jwk.update({"kid": kid, "alg": algorithm, "use": "sig"})
    return jwk


@dataclass(frozen=True)
class SigningKey:
    """One asymmetric key pair. ``superseded_at`` is None while it is the active signer."""

    kid: str
    algorithm: str
    private_key: Any = field(repr=False)
    public_jwk: Mapping[str, Any]
    created_at: datetime
    superseded_at: datetime | None = None

    @classmethod
    def generate(cls, algorithm: str, now: datetime) -> SigningKey:
        kid = uuid.uuid4().hex
        private_key = generate_private_key(algorithm)
        return cls.from_private_key(private_key, algorithm, kid, created_at=now)

    @classmethod
    def from_private_key(
        cls,
        private_key: Any,
        algorithm: str,
        kid: str,
        *,
        created_at: datetime,
        superseded_at: datetime | None = None,
    ) -> SigningKey:
        return cls(
            kid=kid,
            algorithm=algorithm,
            private_key=private_key,
            public_jwk=public_jwk(private_key, algorithm, kid),
            created_at=as_utc(created_at),
            superseded_at=as_utc(superseded_at) if superseded_at is not None else None,
        )

    @property
    def is_active(self) -> bool:
        return self.superseded_at is None

    def retires_at(self, grace_period: timedelta) -> datetime | None:
        if self.superseded_at is None:
            return None
        return self.superseded_at + grace_period

    def verifies_at(self, now: datetime, grace_period: timedelta) -> bool:
        retires_at = self.retires_at(grace_period)
        return retires_at is None or now < retires_at


class KeyStore(Protocol):
    """Persistence for registry state. Private keys must be stored encrypted."""

    def load_keys(self) -> list[SigningKey]: ...

    def record_rotation(
        self,
        new_key: SigningKey,
        superseded: SigningKey | None,
        retired_kids: Iterable[str],
    ) -> None: ...

    def delete_keys(self, kids: Iterable[str]) -> None: ...


@dataclass(frozen=True)
class _KeySet:
    active: SigningKey | None
    keys: tuple[SigningKey, ...]
    verifying: Mapping[str, PyJWK]

    @classmethod
    def build(cls, keys: Iterable[SigningKey]) -> _KeySet:
        keys = tuple(keys)
        active = [k for k in keys if k.is_active]
        if len(active) > 1:
            raise KeyMaterialError(f"more than one active signing key: {[k.kid for k in active]}")
        verifying = {k.kid: PyJWK.from_dict(dict(k.public_jwk)) for k in keys}
        return cls(active=active[0] if active else None, keys=keys, verifying=verifying)


class KeyRegistry:
    """
    Injectable holder of signing and verification keys.

    Usage:
        registry = KeyRegistry(timedelta(hours=2))
        registry.rotate()
        key = registry.current_signing_key()
        public = registry.verification_keys()
    """

    def __init__(
        self,
        grace_period: timedelta,
        *,
        algorithm: str = "EdDSA",
        store: KeyStore | None = None,
        clock: Clock = utcnow,
    ) -> None:
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"algorithm must be one of {SUPPORTED_ALGORITHMS}, got {algorithm!r}")
        if grace_period <= timedelta(0):
            raise ValueError("grace_period must be positive")
        self._grace_period = grace_period
        self._algorithm = algorithm
        self._store = store
        self._clock = clock
        self._write_lock = threading.Lock()
        self._state = _KeySet.build(())

    @property
    def grace_period(self) -> timedelta:
        return self._grace_period

    @property
    def algorithm(self) -> str:
        return self._algorithm

    def load(self) -> None:
        """Replace in-memory state with the store's keys (no-op without a store)."""
        if self._store is None:
            return
        with self._write_lock:
            keys = self._store.load_keys()
            self._state = _KeySet.build(keys)
        logger.info("Loaded %d signing key(s) from store", len(keys))

    # ---- Readers --------------------------------------------------------------------

    def current_signing_key(self) -> SigningKey:
        active = self._state.active
        if active is None:
            raise NoActiveKeyError("no active signing key; has the registry been rotated?")
        return active

    def active_age(self, now: datetime | None = None) -> timedelta | None:
        active = self._state.active
        if active is None:
            return None
        return (now or self._clock()) - active.created_at

    def verification_keys(self, now: datetime | None = None) -> Mapping[str, PyJWK]:
        """Public keys valid for verification at ``now``, by kid."""
        state = self._state
        now = now or self._clock()
        return {
            key.kid: state.verifying[key.kid]
            for key in state.keys
            if key.verifies_at(now, self._grace_period)
        }

    def keys(self) -> tuple[SigningKey, ...]:
        return self._state.keys

    def jwks(self, now: datetime | None = None) -> dict[str, list[dict[str, Any]]]:
        """Verification keys in JWK Set format."""
        state = self._state
        now = now or self._clock()
        return {
            "keys": [
                dict(key.public_jwk) for key in state.keys if key.verifies_at(now, self._grace_period)
            ]
        }

    # ---- Writers --------------------------------------------------------------------

    def rotate(self, now: datetime | None = None) -> SigningKey:
        """Generate a new active key; the previous one enters its grace period."""
        with self._write_lock:
            now = now or self._clock()
            state = self._state
            new_key = SigningKey.generate(self._algorithm, now)

            superseded: SigningKey | None = None
            kept: list[SigningKey] = []
            retired: list[str] = []
            for key in state.keys:
                if key.is_active:
                    key = replace(key, superseded_at=now)
                    superseded = key
                if key.verifies_at(now, self._grace_period):
                    kept.append(key)
                else:
                    retired.append(key.kid)
            kept.append(new_key)

            # Persist first so a store failure leaves the registry unchanged.
            if self._store is not None:
                self._store.record_rotation(new_key, superseded, retired)
            self._state = _KeySet.build(kept)

        logger.info(
            "Rotated signing key kid=%s previous=%s retired=%d",
            new_key.kid,
            superseded.kid if superseded else None,
            len(retired),
        )
        return new_key

    def purge(self, now: datetime | None = None) -> list[str]:
        """Drop keys whose grace period has elapsed. Returns the retired kids."""
        with self._write_lock:
            now = now or self._clock()
            state = self._state
            retired = [k.kid for k in state.keys if not k.verifies_at(now, self._grace_period)]
            if not retired:
                return []
            if self._store is not None:
                self._store.delete_keys(retired)
            self._state = _KeySet.build(k for k in state.keys if k.kid not in retired)

        logger.info("Retired %d signing key(s) past grace period: %s", len(retired), retired)
        return retired

    def revoke(self, kid: str) -> bool:
        """
        Remove a key immediately, e.g. after a compromise.

        Revoking the active key leaves the registry without a signer until the
        next ``rotate()``; issuance fails in the meantime.
        """
        with self._write_lock:
            state = self._state
            if kid not in state.verifying:
                return False
            if self._store is not None:
                self._store.delete_keys([kid])
            self._state = _KeySet.build(k for k in state.keys if k.kid != kid)

        logger.warning("Revoked signing key kid=%s", kid)
        return True
