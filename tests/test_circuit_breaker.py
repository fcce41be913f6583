"""
Circuit Breaker Tests
=====================
"""

import asyncio

import pytest

from civix_core.circuit_breaker import CircuitBreaker
from civix_core.state import CircuitState, ConnectionState


def make_breaker(threshold=5, timeout_ms=50):
    state = ConnectionState()
    return CircuitBreaker(state, threshold=threshold, timeout_ms=timeout_ms), state


class TestCircuitBreakerTransitions:
    """Tests for the CLOSED/OPEN/HALF_OPEN state machine."""

    def test_starts_closed(self):
        """Should start in CLOSED state."""
        breaker, state = make_breaker()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.is_open() is False
        assert breaker.is_half_open() is False
        assert state.circuit_breaker_failures == 0

    def test_stays_closed_below_threshold(self):
        """Should stay closed after threshold - 1 failures."""
        breaker, state = make_breaker(threshold=5)

        for _ in range(4):
            breaker.record_failure()

        assert breaker.is_open() is False
        assert state.circuit_breaker_failures == 4

    def test_opens_at_threshold(self):
        """Should open after exactly threshold failures."""
        breaker, state = make_breaker(threshold=5)

        for _ in range(5):
            breaker.record_failure()

        assert breaker.is_open() is True
        assert state.circuit_breaker_state == CircuitState.OPEN

    def test_success_resets_open_circuit(self):
        """A single success should close the circuit and reset failures."""
        breaker, state = make_breaker(threshold=3)

        for _ in range(7):
            breaker.record_failure()
        assert breaker.is_open()

        before = state.last_circuit_breaker_reset
        breaker.record_success()

        assert breaker.state == CircuitState.CLOSED
        assert state.circuit_breaker_failures == 0
        assert state.last_circuit_breaker_reset >= before

    def test_no_running_loop_keeps_circuit_open(self):
        """Without an event loop the circuit opens and no timer is armed."""
        breaker, _ = make_breaker(threshold=1)

        breaker.record_failure()

        assert breaker.is_open()
        assert breaker._timer is None

    def test_metrics(self):
        """Should expose counters and state."""
        breaker, _ = make_breaker(threshold=10)

        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()

        metrics = breaker.metrics
        assert metrics["state"] == "closed"
        assert metrics["total_failures"] == 2
        assert metrics["total_successes"] == 1
        assert metrics["failure_count"] == 0


class TestCircuitBreakerTimer:
    """Tests for the OPEN -> HALF_OPEN timer."""

    @pytest.mark.asyncio
    async def test_half_open_after_timeout(self):
        """Should move to HALF_OPEN once the timeout elapses."""
        breaker, _ = make_breaker(threshold=5, timeout_ms=30)

        for _ in range(5):
            breaker.record_failure()
        assert breaker.is_open()

        await asyncio.sleep(0.1)

        assert breaker.is_half_open()
        assert breaker.is_open() is False

    @pytest.mark.asyncio
    async def test_timer_does_not_override_success(self):
        """A success before the timer fires should leave the circuit CLOSED."""
        breaker, _ = make_breaker(threshold=2, timeout_ms=30)

        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()

        await asyncio.sleep(0.1)

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self):
        """A failure in HALF_OPEN should reopen and re-arm the timer."""
        breaker, _ = make_breaker(threshold=2, timeout_ms=30)

        breaker.record_failure()
        breaker.record_failure()
        await asyncio.sleep(0.1)
        assert breaker.is_half_open()

        breaker.record_failure()
        assert breaker.is_open()

        await asyncio.sleep(0.1)
        assert breaker.is_half_open()

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self):
        """A success in HALF_OPEN should close the circuit."""
        breaker, state = make_breaker(threshold=1, timeout_ms=20)

        breaker.record_failure()
        await asyncio.sleep(0.08)
        assert breaker.is_half_open()

        breaker.record_success()

        assert breaker.state == CircuitState.CLOSED
        assert state.circuit_breaker_failures == 0

    @pytest.mark.asyncio
    async def test_retry_after_while_open(self):
        """Should report remaining open time in whole seconds."""
        breaker, _ = make_breaker(threshold=1, timeout_ms=60000)

        breaker.record_failure()

        assert 59 <= breaker.retry_after() <= 60
        breaker.close()
