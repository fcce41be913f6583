"""
Database Exceptions
===================
Error taxonomy for the resilience layer.

Each error carries enough structure (kind, retry count, timeout, timestamp,
suggested status code and retry-after) for the HTTP error middleware to
build a response without inspecting messages.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class DatabaseError(Exception):
    """Base exception for all database resilience errors."""

    status_code: int = 500
    retry_after: Optional[int] = None

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "details": {**self.details, "timestamp": self.timestamp},
            "retry_after": self.retry_after,
        }


class DatabaseConnectionError(DatabaseError):
    """Raised when every attempt of a connect cycle has failed."""

    status_code = 503
    retry_after = 30

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        retry_count: int = 0,
    ):
        self.cause = cause
        self.retry_count = retry_count
        super().__init__(
            message,
            details={
                "retry_count": retry_count,
                "cause": str(cause) if cause is not None else None,
            },
        )


class DatabaseTimeoutError(DatabaseError):
    """Raised when an operation exceeds its time budget."""

    status_code = 408
    retry_after = 10

    def __init__(self, operation: str, timeout_ms: float):
        self.operation = operation
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Database operation '{operation}' timed out after {timeout_ms}ms",
            details={"operation": operation, "timeout_ms": timeout_ms},
        )


class CircuitBreakerError(DatabaseError):
    """Raised when the circuit is open and no fallback is available."""

    status_code = 503

    def __init__(self, state: str = "open", retry_after: int = 60):
        self.state = state
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker is {state.upper()} - too many consecutive failures",
            details={"state": state},
        )


class WriteValidationError(DatabaseError):
    """Raised when a write result fails caller-supplied validation."""

    status_code = 422

    def __init__(self, message: str = "Write operation validation failed"):
        super().__init__(message)


class DataUnavailableError(DatabaseError):
    """Raised when a read failed and neither cache nor fallback data exists."""

    status_code = 503
    retry_after = 30

    def __init__(self, cache_key: Optional[str] = None):
        self.cache_key = cache_key
        super().__init__(
            "No cached or fallback data available",
            details={"cache_key": cache_key},
        )
