"""Unit tests for the ExpiryScheduler single-timer lifecycle."""

from __future__ import annotations

import asyncio

import pytest

from custos.session.models import AuthTokens
from custos.session.scheduler import ExpiryScheduler
from fakes import FakeClock


async def _ticks(n: int = 5) -> None:
    for _ in range(n):
        await asyncio.sleep(0)


def _tokens(expires_in: int) -> AuthTokens:
    return AuthTokens(access_token="at", refresh_token="rt", expires_in=expires_in)


class _Recorder:
    def __init__(self) -> None:
        self.fired = 0

    async def __call__(self) -> None:
        self.fired += 1


@pytest.mark.anyio
async def test_margin_equal_to_lifetime_fires_on_next_tick() -> None:
    clock = FakeClock()
    recorder = _Recorder()
    scheduler = ExpiryScheduler(recorder, margin_seconds=300, clock=clock)

    assert scheduler.arm(_tokens(300), issued_at=clock()) is True
    assert recorder.fired == 0
    await _ticks()

    assert recorder.fired == 1
    assert scheduler.armed is False


@pytest.mark.anyio
async def test_fire_at_is_issued_at_plus_lifetime_minus_margin() -> None:
    clock = FakeClock()
    scheduler = ExpiryScheduler(_Recorder(), margin_seconds=300, clock=clock)

    scheduler.arm(_tokens(3600), issued_at=clock())

    assert scheduler.armed
    assert scheduler.fire_at == clock() + 3300
    scheduler.cancel()


@pytest.mark.anyio
async def test_expired_token_is_not_scheduled() -> None:
    clock = FakeClock()
    recorder = _Recorder()
    scheduler = ExpiryScheduler(recorder, margin_seconds=300, clock=clock)

    assert scheduler.arm(_tokens(600), issued_at=clock() - 601) is False
    await _ticks()

    assert scheduler.armed is False
    assert recorder.fired == 0


@pytest.mark.anyio
async def test_cancel_is_idempotent_and_prevents_fire() -> None:
    clock = FakeClock()
    recorder = _Recorder()
    scheduler = ExpiryScheduler(recorder, margin_seconds=300, clock=clock)

    scheduler.arm(_tokens(300), issued_at=clock())
    scheduler.cancel()
    scheduler.cancel()
    await _ticks()

    assert recorder.fired == 0
    assert scheduler.fire_at is None


@pytest.mark.anyio
async def test_rearm_replaces_previous_timer() -> None:
    clock = FakeClock()
    recorder = _Recorder()
    scheduler = ExpiryScheduler(recorder, margin_seconds=300, clock=clock)

    scheduler.arm(_tokens(300), issued_at=clock())  # would fire immediately
    scheduler.arm(_tokens(7200), issued_at=clock())  # superseding token
    await _ticks()

    assert recorder.fired == 0
    assert scheduler.fire_at == clock() + 6900
    scheduler.cancel()


@pytest.mark.anyio
async def test_cancel_does_not_abort_running_callback() -> None:
    clock = FakeClock()
    gate = asyncio.Event()
    finished: list[bool] = []

    async def slow_refresh() -> None:
        await gate.wait()
        finished.append(True)

    scheduler = ExpiryScheduler(slow_refresh, margin_seconds=300, clock=clock)
    scheduler.arm(_tokens(300), issued_at=clock())
    await _ticks()

    scheduler.cancel()
    gate.set()
    await scheduler.drain()

    assert finished == [True]


@pytest.mark.anyio
async def test_renewal_caps_margin_at_half_lifetime() -> None:
    clock = FakeClock()
    recorder = _Recorder()
    scheduler = ExpiryScheduler(recorder, margin_seconds=300, clock=clock)

    assert scheduler.arm(_tokens(300), issued_at=clock(), renewal=True)
    await _ticks()

    assert recorder.fired == 0
    assert scheduler.fire_at == clock() + 150

    scheduler.arm(_tokens(3600), issued_at=clock(), renewal=True)
    assert scheduler.fire_at == clock() + 3300
    scheduler.cancel()
