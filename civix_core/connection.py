"""
Connection Manager
==================
Establishes the MongoDB connection with bounded retries and exponential
backoff with jitter, and mirrors driver lifecycle events into the shared
connection state.
"""

import asyncio
import random
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog

from .circuit_breaker import CircuitBreaker
from .config import DatabaseConfig
from .driver import DatabaseDriver, DriverEvent, LifecycleEvent
from .exceptions import CircuitBreakerError, DatabaseConnectionError
from .state import ConnectionState, HealthStatus

logger = structlog.get_logger(__name__)


class ConnectionManager:
    """
    Owns the connect cycle and the lifecycle-event listener.

    Example:
        manager = ConnectionManager(config, state, breaker, driver)
        await manager.start()
        await manager.connect_with_retry()
        ...
        await manager.graceful_shutdown()
    """

    def __init__(
        self,
        config: DatabaseConfig,
        state: ConnectionState,
        breaker: CircuitBreaker,
        driver: DatabaseDriver,
    ):
        self.config = config
        self.state = state
        self.breaker = breaker
        self.driver = driver
        self._events: Optional[asyncio.Queue] = None
        self._listener: Optional[asyncio.Task] = None

    async def connect_with_retry(
        self,
        max_attempts: Optional[int] = None,
        initial_delay_ms: Optional[float] = None,
    ) -> None:
        """
        Connect to the database, retrying with exponential backoff.

        Args:
            max_attempts: Attempts in this cycle (default: config.retry_attempts)
            initial_delay_ms: Base backoff delay (default: config.initial_delay_ms)

        Raises:
            CircuitBreakerError: If the circuit is open
            DatabaseConnectionError: If every attempt failed
            ValueError: If max_attempts is below 1
        """
        attempts = max_attempts if max_attempts is not None else self.config.retry_attempts
        delay_ms = (
            initial_delay_ms if initial_delay_ms is not None else self.config.initial_delay_ms
        )
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        if self.state.is_connecting:
            logger.info("connect_already_in_progress")
            return

        if self.breaker.is_open():
            raise CircuitBreakerError(
                self.breaker.state.value, retry_after=self.breaker.retry_after()
            )

        self.state.is_connecting = True
        self.state.last_error = None
        try:
            await self._connect_cycle(attempts, delay_ms)
        finally:
            self.state.is_connecting = False

    async def _connect_cycle(self, attempts: int, delay_ms: float) -> None:
        options = self.config.driver_options()

        for attempt in range(attempts):
            logger.info("connect_attempt", attempt=attempt + 1, max_attempts=attempts)
            start = time.monotonic()
            try:
                await self.driver.connect(**options)
            except Exception as e:
                self.state.last_error = e
                self.state.retry_count = attempt + 1
                self.state.health_check.status = HealthStatus.DISCONNECTED
                self.breaker.record_failure()

                logger.warning(
                    "connect_attempt_failed",
                    attempt=attempt + 1,
                    error=str(e),
                )

                if attempt == attempts - 1:
                    self.state.is_connected = False
                    error = DatabaseConnectionError(
                        f"All MongoDB connection attempts failed after {attempts} retries",
                        cause=e,
                        retry_count=attempts,
                    )
                    logger.error(
                        "connect_exhausted",
                        attempts=attempts,
                        cause=str(e),
                        timestamp=error.timestamp,
                    )
                    raise error from e

                backoff_ms = delay_ms * (2 ** attempt) + random.uniform(
                    0, self.config.retry_jitter_ms
                )
                logger.info("connect_backoff", delay_ms=round(backoff_ms))
                await asyncio.sleep(backoff_ms / 1000)
                continue

            elapsed_ms = (time.monotonic() - start) * 1000
            self.state.is_connected = True
            self.state.retry_count = 0
            self.state.health_check.last_check = datetime.now(timezone.utc)
            self.state.health_check.response_time_ms = round(elapsed_ms, 2)
            self.state.health_check.status = HealthStatus.CONNECTED
            self.breaker.record_success()

            logger.info(
                "connected",
                elapsed_ms=round(elapsed_ms, 2),
                max_pool_size=self.config.max_pool_size,
                min_pool_size=self.config.min_pool_size,
            )
            return

    async def start(self) -> None:
        """Subscribe to driver lifecycle events."""
        if self._listener is not None and not self._listener.done():
            return
        self._events = asyncio.Queue()
        self.driver.attach(self._events)
        self._listener = asyncio.create_task(
            self._listen(self._events), name="civix-db-lifecycle"
        )

    async def stop(self) -> None:
        """Stop the lifecycle listener."""
        self.driver.detach()
        if self._listener is None:
            return
        listener, self._listener = self._listener, None
        listener.cancel()
        try:
            await listener
        except asyncio.CancelledError:
            pass

    async def _listen(self, events: asyncio.Queue) -> None:
        while True:
            event = await events.get()
            self.handle_event(event)

    def handle_event(self, event: DriverEvent) -> None:
        """Mirror one lifecycle event into the state and breaker."""
        if event.kind in (LifecycleEvent.CONNECTED, LifecycleEvent.RECONNECTED):
            logger.info("mongo_" + event.kind.value)
            self.state.is_connected = True
            self.state.health_check.status = HealthStatus.CONNECTED
            self.breaker.record_success()

        elif event.kind == LifecycleEvent.ERROR:
            logger.error("mongo_error", error=str(event.error))
            self.state.is_connected = False
            self.state.last_error = event.error
            self.state.health_check.status = HealthStatus.ERROR
            self.breaker.record_failure()

        elif event.kind == LifecycleEvent.DISCONNECTED:
            logger.warning("mongo_disconnected")
            self.state.is_connected = False
            self.state.health_check.status = HealthStatus.DISCONNECTED

    def get_connection_status(self) -> Dict[str, Any]:
        return {
            "is_connected": self.state.is_connected,
            "is_connecting": self.state.is_connecting,
            "circuit_breaker_state": self.state.circuit_breaker_state.value,
            "last_error": self.state.last_error_message,
            "retry_count": self.state.retry_count,
        }

    async def graceful_shutdown(self) -> None:
        """Stop listening for events and close the connection."""
        logger.info("shutdown_started")
        await self.stop()
        self.breaker.close()
        try:
            await self.driver.close()
        except Exception as e:
            logger.error("shutdown_failed", error=str(e))
            raise
        self.state.is_connected = False
        self.state.health_check.status = HealthStatus.DISCONNECTED
        logger.info("shutdown_complete")
