"""
Database Configuration
======================
Connection, retry, circuit breaker and cache settings for the MongoDB layer.

All timing values are milliseconds except the cache TTL, which is seconds.
Every field can be overridden through a ``MONGO_*`` environment variable.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(
            f"Environment variable {name} must be an integer, got {raw!r}"
        ) from None


@dataclass
class DatabaseConfig:
    """Configuration for the resilient MongoDB connection."""
    uri: str = "mongodb://localhost:27017/civix"
    database_name: str = "civix"

    # Connect cycle
    retry_attempts: int = 5
    initial_delay_ms: int = 1000
    retry_jitter_ms: int = 1000         # Upper bound of random backoff jitter

    # Driver timeouts
    connection_timeout_ms: int = 30000
    socket_timeout_ms: int = 45000      # Also the default operation timeout
    server_selection_timeout_ms: int = 30000

    # Pool
    max_pool_size: int = 10
    min_pool_size: int = 2
    max_idle_time_ms: int = 30000

    # Circuit breaker
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout_ms: int = 60000

    # Fallback cache
    cache_ttl_seconds: float = 300.0

    @classmethod
    def from_env(cls, uri: Optional[str] = None) -> "DatabaseConfig":
        """Build a config from ``MONGO_*`` environment variables."""
        defaults = cls()
        return cls(
            uri=uri or os.environ.get("MONGO_URI", defaults.uri),
            database_name=os.environ.get("MONGO_DB_NAME", defaults.database_name),
            retry_attempts=_env_int("MONGO_RETRY_ATTEMPTS", defaults.retry_attempts),
            initial_delay_ms=_env_int("MONGO_INITIAL_DELAY", defaults.initial_delay_ms),
            retry_jitter_ms=_env_int("MONGO_RETRY_JITTER", defaults.retry_jitter_ms),
            connection_timeout_ms=_env_int(
                "MONGO_CONNECTION_TIMEOUT", defaults.connection_timeout_ms
            ),
            socket_timeout_ms=_env_int("MONGO_SOCKET_TIMEOUT", defaults.socket_timeout_ms),
            server_selection_timeout_ms=_env_int(
                "MONGO_SERVER_SELECTION_TIMEOUT", defaults.server_selection_timeout_ms
            ),
            max_pool_size=_env_int("MONGO_MAX_POOL_SIZE", defaults.max_pool_size),
            min_pool_size=_env_int("MONGO_MIN_POOL_SIZE", defaults.min_pool_size),
            max_idle_time_ms=_env_int("MONGO_MAX_IDLE_TIME", defaults.max_idle_time_ms),
            circuit_breaker_threshold=_env_int(
                "MONGO_CIRCUIT_BREAKER_THRESHOLD", defaults.circuit_breaker_threshold
            ),
            circuit_breaker_timeout_ms=_env_int(
                "MONGO_CIRCUIT_BREAKER_TIMEOUT", defaults.circuit_breaker_timeout_ms
            ),
            cache_ttl_seconds=float(
                _env_int("MONGO_CACHE_TTL", int(defaults.cache_ttl_seconds))
            ),
        )

    def driver_options(self) -> Dict[str, Any]:
        """Keyword options forwarded to the MongoDB client on connect."""
        return {
            "serverSelectionTimeoutMS": self.server_selection_timeout_ms,
            "socketTimeoutMS": self.socket_timeout_ms,
            "connectTimeoutMS": self.connection_timeout_ms,
            "maxPoolSize": self.max_pool_size,
            "minPoolSize": self.min_pool_size,
            "maxIdleTimeMS": self.max_idle_time_ms,
            "retryWrites": True,
            "retryReads": True,
        }
