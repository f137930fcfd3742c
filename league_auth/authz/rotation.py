"""Scheduled key rotation and other periodic housekeeping."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
import logging
from typing import Callable

from .clock import Clock, utcnow
from .keys import KeyRegistry

logger = logging.getLogger(__name__)


async def run_periodically(fn: Callable[[], object], interval_seconds: float, *, name: str) -> None:
    """Run blocking ``fn`` in a worker thread every ``interval_seconds`` until cancelled."""
    while True:
        try:
            await asyncio.to_thread(fn)
        except Exception:
            logger.exception("%s failed; retrying in %ss", name, interval_seconds)
        await asyncio.sleep(interval_seconds)


class KeyRotationJob:
    """
    Rotates the registry's signing key every ``rotation_interval`` and retires
    keys past their grace period. Runs independently of request handling.
    """

    def __init__(
        self,
        registry: KeyRegistry,
        rotation_interval: timedelta,
        *,
        check_interval_seconds: float = 60.0,
        clock: Clock = utcnow,
    ) -> None:
        self._registry = registry
        self._rotation_interval = rotation_interval
        self._check_interval = check_interval_seconds
        self._clock = clock

    def run_once(self, now: datetime | None = None) -> bool:
        """Purge retired keys, then rotate if the active key is missing or too old."""
        now = now or self._clock()
        self._registry.purge(now)
        age = self._registry.active_age(now)
        if age is not None and age < self._rotation_interval:
            return False
        self._registry.rotate(now)
        return True

    async def run_forever(self) -> None:
        await run_periodically(self.run_once, self._check_interval, name="Key rotation")
