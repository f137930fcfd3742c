"""Tests for the scheduled rotation job."""

import asyncio
from datetime import timedelta

from league_auth.authz.keys import KeyRegistry
from league_auth.authz.rotation import KeyRotationJob, run_periodically


def test_run_once_creates_first_key(t0):
    registry = KeyRegistry(timedelta(hours=2))
    job = KeyRotationJob(registry, timedelta(days=1))

    assert job.run_once(t0) is True
    assert registry.current_signing_key().created_at == t0


def test_run_once_rotates_only_when_key_is_old(t0):
    registry = KeyRegistry(timedelta(hours=2))
    job = KeyRotationJob(registry, timedelta(days=1))
    job.run_once(t0)
    first = registry.current_signing_key()

    assert job.run_once(t0 + timedelta(hours=23)) is False
    assert registry.current_signing_key().kid == first.kid

    assert job.run_once(t0 + timedelta(days=1)) is True
    assert registry.current_signing_key().kid != first.kid


def test_run_once_purges_retired_keys(t0):
    registry = KeyRegistry(timedelta(hours=2))
    job = KeyRotationJob(registry, timedelta(hours=1))
    job.run_once(t0)
    first = registry.current_signing_key()
    job.run_once(t0 + timedelta(hours=1))

    job.run_once(t0 + timedelta(hours=1, minutes=30))
    assert first.kid in {k.kid for k in registry.keys()}

    job.run_once(t0 + timedelta(hours=3))
    assert first.kid not in {k.kid for k in registry.keys()}


def test_run_periodically_survives_failures():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first run fails")

    async def run_briefly():
        task = asyncio.create_task(run_periodically(flaky, 0.01, name="flaky"))
        await asyncio.sleep(0.1)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    asyncio.run(run_briefly())

    assert len(calls) >= 2
