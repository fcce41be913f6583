"""
Civix Core Library
==================
Database resilience and fallback layer for the Civix issue-reporting backend.
"""

__version__ = "1.0.0"

# Configuration
from civix_core.config import DatabaseConfig

# Errors
from civix_core.exceptions import (
    DatabaseError,
    DatabaseConnectionError,
    DatabaseTimeoutError,
    CircuitBreakerError,
    WriteValidationError,
    DataUnavailableError,
)

# State & Circuit Breaker
from civix_core.state import CircuitState, ConnectionState, HealthStatus
from civix_core.circuit_breaker import CircuitBreaker

# Driver & Connection
from civix_core.driver import DatabaseDriver, MongoDriver, LifecycleEvent, DriverEvent
from civix_core.connection import ConnectionManager

# Health
from civix_core.health import HealthProber, HealthReport

# Fallback & Cache
from civix_core.cache import CacheManager
from civix_core.executor import FallbackExecutor
from civix_core.operations import DatabaseOperations, BatchResult, BatchFailure

# Issues
from civix_core.issues import IssueRepository

# Context
from civix_core.context import ResilienceContext, create_context, install_signal_handlers

# Logging
from civix_core.logging import setup_logging

__all__ = [
    # Configuration
    "DatabaseConfig",
    # Errors
    "DatabaseError",
    "DatabaseConnectionError",
    "DatabaseTimeoutError",
    "CircuitBreakerError",
    "WriteValidationError",
    "DataUnavailableError",
    # State & Circuit Breaker
    "CircuitState",
    "ConnectionState",
    "HealthStatus",
    "CircuitBreaker",
    # Driver & Connection
    "DatabaseDriver",
    "MongoDriver",
    "LifecycleEvent",
    "DriverEvent",
    "ConnectionManager",
    # Health
    "HealthProber",
    "HealthReport",
    # Fallback & Cache
    "CacheManager",
    "FallbackExecutor",
    "DatabaseOperations",
    "BatchResult",
    "BatchFailure",
    # Issues
    "IssueRepository",
    # Context
    "ResilienceContext",
    "create_context",
    "install_signal_handlers",
    # Logging
    "setup_logging",
]
