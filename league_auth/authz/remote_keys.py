"""
JWKS polling for verifier instances that do not issue credentials.

Background:
    The issuing instance publishes its verification keys at
    ``/.well-known/jwks.json``. Other instances poll that endpoint on their
    own schedule and keep the result in memory, so verification never waits
    on the network.

    Right after a rotation a credential may arrive signed with a key this
    instance has not fetched yet. The verifier then rejects it as
    ``UNKNOWN_KEY`` and calls ``request_refresh()``, which only wakes the
    poller early. The request that saw the unknown key is not retried.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
import logging
import threading
import time
from typing import Any, Mapping

from jwt import PyJWK
from jwt.exceptions import InvalidKeyError, PyJWKError
import requests

logger = logging.getLogger(__name__)


class RemoteKeySet:
    """
    In-memory JWK Set refreshed from ``jwks_uri`` every ``refresh_seconds``.

    ``min_refresh_seconds`` limits how often unknown key ids can pull the
    next poll forward.
    """

    def __init__(
        self,
        jwks_uri: str,
        refresh_seconds: int,
        *,
        min_refresh_seconds: float = 5.0,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._uri = jwks_uri
        self._refresh_seconds = refresh_seconds
        self._min_refresh_seconds = min_refresh_seconds
        self._timeout = timeout_seconds
        self._keys: Mapping[str, PyJWK] = {}
        self._raw: list[dict[str, Any]] = []
        self._fetched_at: float | None = None
        self._refresh_requested = threading.Event()

    def _fetch(self) -> dict[str, Any]:
        resp = requests.get(self._uri, timeout=self._timeout)
        resp.raise_for_status()
        return resp.json()

    def refresh(self) -> int:
        """Fetch the key set and swap it in. Returns the number of usable keys."""
        data = self._fetch()
        keys: dict[str, PyJWK] = {}
        raw: list[dict[str, Any]] = []
        for key_dict in data.get("keys") or []:
            kid = key_dict.get("kid")
            if not kid:
                continue
            try:
                keys[kid] = PyJWK.from_dict(key_dict)
            except (PyJWKError, InvalidKeyError) as e:
                logger.warning("Skipping unusable JWK kid=%s: %s", kid, type(e).__name__)
                continue
            raw.append(key_dict)

        self._keys = keys
        self._raw = raw
        self._fetched_at = time.monotonic()
        self._refresh_requested.clear()
        logger.debug("JWKS refreshed uri=%s keys=%d", self._uri, len(keys))
        return len(keys)

    def verification_keys(self, now: datetime | None = None) -> Mapping[str, PyJWK]:
        return self._keys

    def jwks(self, now: datetime | None = None) -> dict[str, list[dict[str, Any]]]:
        return {"keys": list(self._raw)}

    def request_refresh(self) -> None:
        self._refresh_requested.set()

    @property
    def refresh_requested(self) -> bool:
        return self._refresh_requested.is_set()

    def seconds_since_refresh(self) -> float | None:
        if self._fetched_at is None:
            return None
        return time.monotonic() - self._fetched_at

    def refresh_due(self) -> bool:
        age = self.seconds_since_refresh()
        if age is None or age >= self._refresh_seconds:
            return True
        return self.refresh_requested and age >= self._min_refresh_seconds

    async def run_forever(self, poll_step_seconds: float = 1.0) -> None:
        """Poll until cancelled. Fetch failures keep the previous key set."""
        while True:
            if self.refresh_due():
                try:
                    await asyncio.to_thread(self.refresh)
                except (requests.RequestException, ValueError) as e:
                    logger.warning("JWKS refresh failed uri=%s: %s", self._uri, type(e).__name__)
                    self._fetched_at = time.monotonic()
            await asyncio.sleep(poll_step_seconds)
