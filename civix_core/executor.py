"""
Fallback Executor
=================
Runs database operations with a timeout race, circuit breaker gating and an
optional fallback.

The timeout is a race, not a cancellation: when the timer wins, the
operation itself is not cancelled on timeout, only the caller's wait is
abandoned. The operation keeps running in the background and its side
effects still happen; a result arriving after the deadline is logged and
dropped.

Retries are not done here; they belong to the connection manager.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Set, TypeVar, Union

import structlog

from .circuit_breaker import CircuitBreaker
from .config import DatabaseConfig
from .exceptions import CircuitBreakerError, DatabaseTimeoutError
from .health import HealthProber
from .state import ConnectionState

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
Fallback = Callable[[], Union[T, Awaitable[T]]]


def describe_operation(operation: Callable[..., Any]) -> str:
    """Label an operation by its function name, or a generic one for lambdas."""
    name = getattr(operation, "__name__", None)
    if not name or name == "<lambda>":
        return "database_operation"
    return name


async def _invoke(fallback: Fallback) -> Any:
    result = fallback()
    if inspect.isawaitable(result):
        result = await result
    return result


class FallbackExecutor:
    """
    Fail-fast executor with fallback substitution.

    Example:
        executor = FallbackExecutor(config, state, breaker, prober)

        issue = await executor.execute_with_fallback(
            lambda: issues.find_one({"_id": issue_id}),
            fallback=lambda: cache.get(f"issue_{issue_id}"),
        )
    """

    def __init__(
        self,
        config: DatabaseConfig,
        state: ConnectionState,
        breaker: CircuitBreaker,
        prober: HealthProber,
    ):
        self.config = config
        self.state = state
        self.breaker = breaker
        self.prober = prober
        self._orphans: Set[asyncio.Future] = set()

    @property
    def pending_orphans(self) -> int:
        """Operations still running after their caller timed out."""
        return len(self._orphans)

    def _circuit_blocks(self) -> bool:
        return not self.state.is_connected and self.breaker.is_open()

    def _circuit_error(self) -> CircuitBreakerError:
        return CircuitBreakerError(
            self.breaker.state.value, retry_after=self.breaker.retry_after() or 60
        )

    async def execute_with_fallback(
        self,
        operation: Operation,
        fallback: Optional[Fallback] = None,
        timeout_ms: Optional[float] = None,
        operation_name: Optional[str] = None,
    ) -> Any:
        """
        Execute an operation with circuit breaker protection and a timeout.

        Args:
            operation: Zero-argument callable returning an awaitable
            fallback: Zero-argument callable (sync or async) used on failure
            timeout_ms: Time budget (default: config.socket_timeout_ms)
            operation_name: Label used in errors and logs

        Returns:
            The operation's result, or the fallback's result on failure

        Raises:
            CircuitBreakerError: If the circuit is open and there is no fallback
            Exception: The operation's own error when there is no fallback
        """
        timeout = timeout_ms if timeout_ms is not None else self.config.socket_timeout_ms
        name = operation_name or describe_operation(operation)

        if self._circuit_blocks():
            logger.warning("circuit_open_skipping_operation", operation=name)
            if fallback is not None:
                return await _invoke(fallback)
            raise self._circuit_error()

        try:
            result = await self._race(operation, name, timeout)
        except Exception as e:
            logger.error("database_operation_failed", operation=name, error=str(e))

            if isinstance(e, DatabaseTimeoutError):
                logger.error("database_operation_timed_out", operation=name, timeout_ms=timeout)
                await self.prober.check_database_health()

            self.breaker.record_failure()

            if fallback is not None:
                logger.info("using_fallback", operation=name)
                return await _invoke(fallback)
            raise

        self.breaker.record_success()
        return result

    async def critical_operation(
        self,
        operation: Operation,
        critical_fallback: Optional[Fallback] = None,
    ) -> Any:
        """Like execute_with_fallback, but never starts the race while blocked."""
        if self._circuit_blocks():
            logger.warning(
                "critical_operation_circuit_open", operation=describe_operation(operation)
            )
            if critical_fallback is not None:
                logger.info("using_critical_fallback")
                return await _invoke(critical_fallback)
            raise self._circuit_error()

        return await self.execute_with_fallback(operation, critical_fallback)

    def is_read_only_mode(self) -> bool:
        return not self.state.is_connected or self.breaker.is_open()

    async def _race(self, operation: Operation, name: str, timeout_ms: float) -> Any:
        task = asyncio.ensure_future(operation())
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            self._track_orphan(task, name)
            raise

        if task in done:
            return task.result()

        self._track_orphan(task, name)
        raise DatabaseTimeoutError(name, timeout_ms)

    def _track_orphan(self, task: asyncio.Future, name: str) -> None:
        self._orphans.add(task)

        def _finished(fut: asyncio.Future) -> None:
            self._orphans.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.warning("late_operation_failed", operation=name, error=str(exc))
            else:
                logger.info("late_operation_completed", operation=name)

        task.add_done_callback(_finished)
