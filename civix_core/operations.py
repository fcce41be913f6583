"""
Database Operation Helpers
==========================
Cached reads, validated writes and batches built on the fallback executor.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog

from .cache import CacheManager
from .connection import ConnectionManager
from .exceptions import DataUnavailableError, WriteValidationError
from .executor import Fallback, FallbackExecutor, Operation, describe_operation

logger = structlog.get_logger(__name__)


@dataclass
class BatchFailure:
    operation: str
    error: str


@dataclass
class BatchResult:
    """Outcome of a batch; ``partial`` means it stopped at a failure."""
    successful: List[Any] = field(default_factory=list)
    failed: List[BatchFailure] = field(default_factory=list)
    partial: bool = False


class DatabaseOperations:
    """
    Facade used by request handlers for every database call.

    Example:
        issue = await ops.read_with_cache(
            lambda: issues.find_one({"_id": oid}),
            cache_key=f"issue_{issue_id}",
        )
    """

    def __init__(
        self,
        executor: FallbackExecutor,
        cache: CacheManager,
        manager: ConnectionManager,
    ):
        self.executor = executor
        self.cache = cache
        self.manager = manager

    async def read_with_cache(
        self,
        operation: Operation,
        cache_key: str,
        fallback_data: Any = None,
    ) -> Any:
        """
        Read through the executor, caching successful results.

        On failure, serve the cached value for ``cache_key``, then
        ``fallback_data``; raise DataUnavailableError if neither exists.
        """
        try:
            result = await self.executor.execute_with_fallback(operation)
        except Exception as e:
            logger.error("database_read_failed", cache_key=cache_key, error=str(e))

            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info("serving_cached_data", cache_key=cache_key)
                return cached

            if fallback_data is not None:
                logger.info("serving_fallback_data", cache_key=cache_key)
                return fallback_data

            raise DataUnavailableError(cache_key) from e

        if result is not None and cache_key:
            self.cache.set(cache_key, result)
        return result

    async def write_with_retry(
        self,
        operation: Operation,
        validation_fn: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """
        Run a write through the executor; writes are never served from cache.

        A result rejected by ``validation_fn`` raises WriteValidationError and
        counts as a failure for the circuit breaker.
        """

        async def validated_write() -> Any:
            result = await operation()
            if validation_fn is not None and not validation_fn(result):
                raise WriteValidationError()
            return result

        try:
            return await self.executor.execute_with_fallback(
                validated_write, operation_name=describe_operation(operation)
            )
        except Exception as e:
            logger.error("database_write_failed", error=str(e))
            raise

    async def batch_operation(
        self,
        operations: Sequence[Operation],
        continue_on_error: bool = False,
        batch_size: int = 10,
    ) -> BatchResult:
        """
        Run operations sequentially in chunks of ``batch_size``.

        Args:
            operations: Zero-argument callables returning awaitables
            continue_on_error: Keep going after a failure
            batch_size: Chunk size

        Returns:
            BatchResult with successes, failures and the partial flag
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        results = BatchResult()

        for start in range(0, len(operations), batch_size):
            chunk = operations[start:start + batch_size]

            for operation in chunk:
                label = describe_operation(operation)
                try:
                    value = await self.executor.execute_with_fallback(operation)
                except Exception as e:
                    logger.error("batch_operation_failed", operation=label, error=str(e))
                    results.failed.append(BatchFailure(operation=label, error=str(e)))

                    if not continue_on_error:
                        results.partial = True
                        return results
                    continue

                results.successful.append(value)

        return results

    async def critical_operation(
        self,
        operation: Operation,
        critical_fallback: Optional[Fallback] = None,
    ) -> Any:
        return await self.executor.critical_operation(operation, critical_fallback)

    def is_read_only_mode(self) -> bool:
        return self.executor.is_read_only_mode()

    def get_connection_status(self) -> Dict[str, Any]:
        return self.manager.get_connection_status()

    async def health_check(self) -> Dict[str, Any]:
        """Cheap status summary; does not touch the database."""
        return {
            "connection": self.manager.state.is_connected,
            "circuit_breaker": self.manager.state.circuit_breaker_state.value,
            "cache": self.cache.get_stats(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
