"""
Resilience Context
==================
One handle owning every component of the database resilience layer.

Build it once at process start and pass it to whatever needs database
access. Tests build a fresh context per test.

Usage:
    context = create_context()
    await context.start()
    install_signal_handlers(context)

    issue = await context.issues.find_issue_by_id(issue_id)
"""

import asyncio
import signal
from dataclasses import dataclass
from typing import Optional

import structlog

from .cache import CacheManager
from .circuit_breaker import CircuitBreaker
from .config import DatabaseConfig
from .connection import ConnectionManager
from .driver import DatabaseDriver, MongoDriver
from .exceptions import DatabaseError
from .executor import FallbackExecutor
from .health import HealthProber
from .issues import IssueRepository
from .operations import DatabaseOperations
from .state import ConnectionState

logger = structlog.get_logger(__name__)


@dataclass
class ResilienceContext:
    config: DatabaseConfig
    state: ConnectionState
    breaker: CircuitBreaker
    driver: DatabaseDriver
    manager: ConnectionManager
    prober: HealthProber
    executor: FallbackExecutor
    cache: CacheManager
    operations: DatabaseOperations
    issues: IssueRepository

    async def start(self, connect: bool = True) -> None:
        """
        Start the lifecycle listener and run the initial connect cycle.

        A failed initial connect is logged, not raised; the process keeps
        serving in degraded mode and callers see read-only mode.
        """
        await self.manager.start()
        if not connect:
            return
        try:
            await self.manager.connect_with_retry()
        except DatabaseError as e:
            logger.error("initial_connect_failed", error=str(e))

    async def graceful_shutdown(self) -> None:
        await self.manager.graceful_shutdown()


def create_context(
    config: Optional[DatabaseConfig] = None,
    driver: Optional[DatabaseDriver] = None,
) -> ResilienceContext:
    """Wire every component around one shared connection state."""
    config = config or DatabaseConfig.from_env()
    driver = driver or MongoDriver(config.uri, config.database_name)

    state = ConnectionState()
    breaker = CircuitBreaker(
        state,
        threshold=config.circuit_breaker_threshold,
        timeout_ms=config.circuit_breaker_timeout_ms,
    )
    manager = ConnectionManager(config, state, breaker, driver)
    prober = HealthProber(state, driver)
    executor = FallbackExecutor(config, state, breaker, prober)
    cache = CacheManager(default_ttl=config.cache_ttl_seconds)
    operations = DatabaseOperations(executor, cache, manager)

    return ResilienceContext(
        config=config,
        state=state,
        breaker=breaker,
        driver=driver,
        manager=manager,
        prober=prober,
        executor=executor,
        cache=cache,
        operations=operations,
        issues=IssueRepository(operations, driver),
    )


def install_signal_handlers(context: ResilienceContext) -> None:
    """Run graceful_shutdown on SIGINT/SIGTERM, then stop the loop."""
    loop = asyncio.get_running_loop()

    async def _shutdown(sig: signal.Signals) -> None:
        logger.info("shutdown_signal_received", signal=sig.name)
        try:
            await context.graceful_shutdown()
        finally:
            loop.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(
            sig, lambda s=sig: asyncio.ensure_future(_shutdown(s))
        )
