"""
SQL persistence for the key registry.

Private keys are written as PKCS8 PEM encrypted with the configured
key-encryption secret and are never stored in plaintext.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable

from cryptography.hazmat.primitives import serialization
from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, sessionmaker

from league_auth.authz.keys import KeyMaterialError, SigningKey
from league_auth.models.auth import SigningKeyRecord

logger = logging.getLogger(__name__)


class SqlKeyStore:
    def __init__(self, session_factory: sessionmaker[Session], encryption_secret: str | None) -> None:
        if not encryption_secret:
            raise KeyMaterialError("a key encryption secret is required; refusing to store plaintext private keys")
        self._session_factory = session_factory
        self._password = encryption_secret.encode("utf-8")

    def _encrypt(self, key: SigningKey) -> str:
        pem = key.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.BestAvailableEncryption(self._password),
        )
        return pem.decode("ascii")

    def _decrypt(self, record: SigningKeyRecord) -> SigningKey:
        try:
            private_key = serialization.load_pem_private_key(record.private_key.encode("ascii"), password=self._password)
        except (ValueError, TypeError) as e:
            raise KeyMaterialError(f"cannot decrypt private key kid={record.kid}") from e
        return SigningKey.from_private_key(
            private_key,
            record.algorithm,
            record.kid,
            created_at=record.created_at,
            superseded_at=record.superseded_at,
        )

    def load_keys(self) -> list[SigningKey]:
        with self._session_factory() as db:
            records = db.scalars(select(SigningKeyRecord).order_by(SigningKeyRecord.created_at)).all()
            return [self._decrypt(r) for r in records]

    def record_rotation(
        self,
        new_key: SigningKey,
        superseded: SigningKey | None,
        retired_kids: Iterable[str],
    ) -> None:
        retired = list(retired_kids)
        with self._session_factory() as db:
            if superseded is not None:
                db.execute(
                    update(SigningKeyRecord)
                    .where(SigningKeyRecord.kid == superseded.kid)
                    .values(superseded_at=superseded.superseded_at)
                )
            if retired:
                db.execute(delete(SigningKeyRecord).where(SigningKeyRecord.kid.in_(retired)))
            db.add(
                SigningKeyRecord(
                    kid=new_key.kid,
                    algorithm=new_key.algorithm,
                    public_jwk=json.dumps(dict(new_key.public_jwk)),
                    private_key=self._encrypt(new_key),
                    created_at=new_key.created_at,
                )
            )
            db.commit()
        logger.debug("Persisted rotation kid=%s retired=%s", new_key.kid, retired)

    def delete_keys(self, kids: Iterable[str]) -> None:
        kids = list(kids)
        if not kids:
            return
        with self._session_factory() as db:
            db.execute(delete(SigningKeyRecord).where(SigningKeyRecord.kid.in_(kids)))
            db.commit()
