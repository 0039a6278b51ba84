"""
Tests for the per-service circuit breaker state machine.
"""

import asyncio

import pytest

from promptline.errors import CircuitOpenError
from promptline.resilience import BreakerState, CircuitBreaker


async def _fail():
    raise RuntimeError("boom")


async def _ok():
    return "ok"


async def _trip(breaker: CircuitBreaker, times: int) -> None:
    for _ in range(times):
        with pytest.raises(RuntimeError):
            await breaker.call(_fail)


class TestCircuitBreaker:
    @pytest.mark.asyncio
    async def test_opens_after_threshold_failures(self, fake_clock):
        breaker = CircuitBreaker("openai", threshold=3, reset_timeout=60, clock=fake_clock)

        await _trip(breaker, 2)
        assert breaker.state is BreakerState.CLOSED
        assert breaker.is_available()

        await _trip(breaker, 1)
        assert breaker.state is BreakerState.OPEN
        assert not breaker.is_available()

        with pytest.raises(CircuitOpenError, match="Circuit breaker is open for service: openai"):
            await breaker.call(_ok)

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, fake_clock):
        breaker = CircuitBreaker("openai", threshold=3, clock=fake_clock)

        await _trip(breaker, 2)
        assert await breaker.call(_ok) == "ok"
        await _trip(breaker, 2)

        assert breaker.state is BreakerState.CLOSED
        assert breaker.failures == 2

    @pytest.mark.asyncio
    async def test_half_open_after_cooldown_then_closes_on_success(self, fake_clock):
        breaker = CircuitBreaker("openai", threshold=1, reset_timeout=30, clock=fake_clock)
        await _trip(breaker, 1)

        fake_clock.advance(29.9)
        assert not breaker.is_available()

        fake_clock.advance(0.1)
        assert breaker.is_available()
        # Availability checks never move the state by themselves.
        assert breaker.state is BreakerState.OPEN

        assert await breaker.call(_ok) == "ok"
        assert breaker.state is BreakerState.CLOSED
        assert breaker.failures == 0

    @pytest.mark.asyncio
    async def test_failed_trial_reopens_with_fresh_cooldown(self, fake_clock):
        breaker = CircuitBreaker("openai", threshold=1, reset_timeout=30, clock=fake_clock)
        await _trip(breaker, 1)

        fake_clock.advance(30)
        await _trip(breaker, 1)

        assert breaker.state is BreakerState.OPEN
        assert breaker.opened_at == fake_clock.now
        fake_clock.advance(10)
        assert not breaker.is_available()

    @pytest.mark.asyncio
    async def test_half_open_admits_exactly_one_trial(self, fake_clock):
        breaker = CircuitBreaker("openai", threshold=1, reset_timeout=30, clock=fake_clock)
        await _trip(breaker, 1)
        fake_clock.advance(30)

        release = asyncio.Event()

        async def slow_ok():
            await release.wait()
            return "trial"

        trial = asyncio.create_task(breaker.call(slow_ok))
        await asyncio.sleep(0)
        assert breaker.state is BreakerState.HALF_OPEN

        with pytest.raises(CircuitOpenError):
            await breaker.call(_ok)

        release.set()
        assert await trial == "trial"
        assert breaker.state is BreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_cancelled_trial_releases_the_slot(self, fake_clock):
        breaker = CircuitBreaker("openai", threshold=1, reset_timeout=30, clock=fake_clock)
        await _trip(breaker, 1)
        fake_clock.advance(30)

        async def hang():
            await asyncio.Event().wait()

        task = asyncio.create_task(breaker.call(hang))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert breaker.is_available()
        assert await breaker.call(_ok) == "ok"

    def test_stats(self, fake_clock):
        breaker = CircuitBreaker("anthropic", clock=fake_clock)

        assert breaker.stats() == {
            "state": "closed",
            "failures": 0,
            "last_failure_time": None,
            "opened_at": None,
        }
