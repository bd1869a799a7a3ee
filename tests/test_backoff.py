import asyncio

import pytest

from sendit.config import PollSettings, RetrySettings
from sendit.orchestrator import BackoffPolicy, CancelToken, CircuitBreaker, CircuitState, sleep_or_cancel
from sendit.errors import CircuitOpenError

from conftest import FakeClock, FakeSleep, blocking_sleep


def test_delay_formula():
    policy = BackoffPolicy(initial_delay=1.0, multiplier=2.0, max_delay=30.0)
    assert policy.delays(6) == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]


def test_delays_are_capped_and_non_decreasing():
    policy = BackoffPolicy.for_polling(PollSettings(initial_delay=2.0, multiplier=1.5, max_delay=10.0))
    delays = policy.delays(10)
    assert delays[:4] == [2.0, 3.0, 4.5, 6.75]
    assert max(delays) == 10.0
    assert delays == sorted(delays)


def test_retry_policy_from_settings():
    policy = BackoffPolicy.for_retries(RetrySettings())
    assert (policy.initial_delay, policy.multiplier, policy.max_delay) == (1.0, 2.0, 30.0)


class TestSleepOrCancel:
    """Cancellable sleeps."""

    @pytest.mark.asyncio
    async def test_completes_without_cancel(self):
        sleep = FakeSleep()
        assert await sleep_or_cancel(3.0, CancelToken(), sleep) is False
        assert sleep.calls == [3.0]

    @pytest.mark.asyncio
    async def test_already_canceled_skips_sleep(self):
        token = CancelToken()
        token.cancel()
        sleep = FakeSleep()
        assert await sleep_or_cancel(3.0, token, sleep) is True
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_cancel_interrupts_sleep(self):
        token = CancelToken()
        waiter = asyncio.ensure_future(sleep_or_cancel(60.0, token, blocking_sleep))
        await asyncio.sleep(0)
        assert not waiter.done()

        token.cancel()
        assert await asyncio.wait_for(waiter, timeout=1.0) is True


class TestCircuitBreaker:
    """Circuit breaker state machine."""

    def test_opens_after_threshold(self):
        clock = FakeClock()
        breaker = CircuitBreaker("vercel", failure_threshold=3, reset_timeout=60, clock=clock)
        for _ in range(2):
            breaker.record_failure()
        breaker.check()
        breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError) as exc_info:
            breaker.check()
        assert exc_info.value.retry_after == 60

    def test_success_resets_failure_count(self):
        breaker = CircuitBreaker("netlify", failure_threshold=2, clock=FakeClock())
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_allows_one_trial(self):
        clock = FakeClock()
        breaker = CircuitBreaker("gcp", failure_threshold=1, reset_timeout=60, half_open_timeout=10, clock=clock)
        breaker.record_failure()
        clock.advance(60)

        assert breaker.state == CircuitState.HALF_OPEN
        breaker.check()
        with pytest.raises(CircuitOpenError):
            breaker.check()

        clock.advance(10)
        breaker.check()
        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    def test_failed_trial_reopens(self):
        clock = FakeClock()
        breaker = CircuitBreaker("aws", failure_threshold=5, reset_timeout=30, clock=clock)
        for _ in range(5):
            breaker.record_failure()
        clock.advance(30)
        breaker.check()
        breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert breaker.retry_after() == 30
