"""Unit tests for the fixed-window token bucket."""

import asyncio

import pytest

from services.exceptions import RateLimitedError
from services.resilience.rate_limiter import RateLimiter, RateLimiterConfig


def _limiter(clock, limit=2, period=60.0, timeout=5.0) -> RateLimiter:
    return RateLimiter(
        "test",
        RateLimiterConfig(limit_for_period=limit, refresh_period=period, timeout=timeout),
        clock=clock,
        sleep=clock.sleep,
    )


def test_permits_within_limit_do_not_wait(clock) -> None:
    limiter = _limiter(clock)
    assert limiter.reserve() == 0.0
    assert limiter.reserve() == 0.0
    assert limiter.available_permits == 0


def test_rejects_when_next_window_is_beyond_timeout(clock) -> None:
    limiter = _limiter(clock)
    limiter.reserve()
    limiter.reserve()
    assert limiter.reserve() is None

    async def upstream():
        return "ok"

    with pytest.raises(RateLimitedError):
        asyncio.run(limiter.call(upstream))


def test_waits_for_next_window_within_timeout(clock) -> None:
    limiter = _limiter(clock)
    limiter.reserve()
    limiter.reserve()
    clock.advance(57)

    async def upstream():
        return "ok"

    assert asyncio.run(limiter.call(upstream)) == "ok"
    assert clock.sleeps == pytest.approx([3.0])


def test_reserved_permits_are_taken_from_next_window(clock) -> None:
    limiter = _limiter(clock, limit=1)
    assert limiter.reserve() == 0.0
    clock.advance(58)
    assert limiter.reserve() == pytest.approx(2.0)
    # Next window's only permit is already reserved
    assert limiter.reserve() is None
    clock.advance(2)
    assert limiter.available_permits == 0
    clock.advance(60)
    assert limiter.available_permits == 1


def test_permits_refresh_each_period(clock) -> None:
    limiter = _limiter(clock)
    limiter.reserve()
    limiter.reserve()
    clock.advance(60)
    assert limiter.available_permits == 2
    clock.advance(600)
    assert limiter.available_permits == 2


def test_zero_timeout_rejects_immediately(clock) -> None:
    limiter = _limiter(clock, limit=1, timeout=0.0)
    limiter.reserve()
    assert limiter.reserve() is None


def test_cancelled_wait_returns_reserved_permit(clock) -> None:
    never = None

    async def blocking_sleep(seconds):
        await never.wait()

    limiter = RateLimiter(
        "test",
        RateLimiterConfig(limit_for_period=1, refresh_period=60.0, timeout=5.0),
        clock=clock,
        sleep=blocking_sleep,
    )
    assert limiter.reserve() == 0.0
    clock.advance(58)

    async def run():
        nonlocal never
        never = asyncio.Event()
        waiting = asyncio.ensure_future(limiter.acquire())
        await asyncio.sleep(0)
        waiting.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiting

    asyncio.run(run())

    # The next window's permit is free again
    assert limiter.reserve() == pytest.approx(2.0)
    clock.advance(2)
    assert limiter.available_permits == 0


def test_config_rejects_zero_limit() -> None:
    with pytest.raises(ValueError):
        RateLimiterConfig(limit_for_period=0)
