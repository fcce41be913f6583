"""
Circuit Breaker
===============
Three-state circuit breaker guarding the database.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Failure threshold reached, calls fail fast
- HALF_OPEN: Timeout elapsed after opening, probing recovery

The breaker keeps its state on the shared ``ConnectionState`` so that the
connection manager, prober and executor all see the same view. HALF_OPEN
does not limit trial traffic: any call proceeds unless the state is OPEN.
"""

import asyncio
import time
from typing import Any, Dict, Optional

import structlog

from .state import CircuitState, ConnectionState

logger = structlog.get_logger(__name__)


class CircuitBreaker:
    """
    Circuit breaker over a ``ConnectionState``.

    Example:
        breaker = CircuitBreaker(state, threshold=5, timeout_ms=60000)

        breaker.record_failure()
        if breaker.is_open():
            ...
    """

    def __init__(
        self,
        state: ConnectionState,
        threshold: int = 5,
        timeout_ms: float = 60000,
    ):
        self._state = state
        self.threshold = threshold
        self.timeout_ms = timeout_ms

        self._timer: Optional[asyncio.TimerHandle] = None
        self._opened_at: Optional[float] = None
        self._total_successes = 0
        self._total_failures = 0

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._state.circuit_breaker_state

    @property
    def failure_count(self) -> int:
        return self._state.circuit_breaker_failures

    @property
    def metrics(self) -> Dict[str, Any]:
        """Get circuit breaker metrics."""
        return {
            "state": self.state.value,
            "failure_count": self._state.circuit_breaker_failures,
            "threshold": self.threshold,
            "total_successes": self._total_successes,
            "total_failures": self._total_failures,
            "last_reset": self._state.last_circuit_breaker_reset,
            "opened_at": self._opened_at,
        }

    def is_open(self) -> bool:
        return self._state.circuit_breaker_state == CircuitState.OPEN

    def is_half_open(self) -> bool:
        return self._state.circuit_breaker_state == CircuitState.HALF_OPEN

    def record_success(self) -> None:
        """Record a successful call and close the circuit."""
        previous = self._state.circuit_breaker_state
        self._total_successes += 1
        self._state.circuit_breaker_failures = 0
        self._state.circuit_breaker_state = CircuitState.CLOSED
        self._state.last_circuit_breaker_reset = time.time()

        if previous != CircuitState.CLOSED:
            logger.info("circuit_closed", previous_state=previous.value)

    def record_failure(self) -> None:
        """Record a failed call, opening the circuit at the threshold."""
        self._total_failures += 1
        self._state.circuit_breaker_failures += 1

        if self._state.circuit_breaker_failures >= self.threshold:
            self._state.circuit_breaker_state = CircuitState.OPEN
            self._opened_at = time.time()
            logger.error(
                "circuit_opened",
                failures=self._state.circuit_breaker_failures,
                timeout_ms=self.timeout_ms,
            )
            self._arm_half_open_timer()

    def retry_after(self) -> int:
        """Whole seconds until an open circuit moves to half-open."""
        if not self.is_open() or self._opened_at is None:
            return 0
        remaining = self.timeout_ms / 1000 - (time.time() - self._opened_at)
        return max(0, int(remaining + 0.999))

    def _arm_half_open_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Without a loop the circuit stays open until the next success
            logger.debug("circuit_timer_skipped", reason="no_running_loop")
            return

        self._timer = loop.call_later(self.timeout_ms / 1000, self._on_timeout)

    def _on_timeout(self) -> None:
        self._timer = None
        # A success may have closed the circuit in the meantime
        if self._state.circuit_breaker_state == CircuitState.OPEN:
            self._state.circuit_breaker_state = CircuitState.HALF_OPEN
            logger.info("circuit_half_open")

    def close(self) -> None:
        """Cancel a pending half-open timer."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
