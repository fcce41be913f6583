"""
Connection State
================
Runtime record of connectivity, retry counters and the last health snapshot.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, reject requests
    HALF_OPEN = "half_open"  # Probing recovery


class HealthStatus(str, Enum):
    UNKNOWN = "unknown"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass
class HealthSnapshot:
    """Result of the most recent connect or probe."""
    last_check: Optional[datetime] = None
    response_time_ms: Optional[float] = None
    status: HealthStatus = HealthStatus.UNKNOWN


@dataclass
class ConnectionState:
    """Shared state mutated by the connection manager, breaker and prober."""
    is_connected: bool = False
    is_connecting: bool = False
    last_error: Optional[BaseException] = None
    retry_count: int = 0

    circuit_breaker_state: CircuitState = CircuitState.CLOSED
    circuit_breaker_failures: int = 0
    last_circuit_breaker_reset: float = field(default_factory=time.time)

    health_check: HealthSnapshot = field(default_factory=HealthSnapshot)

    @property
    def last_error_message(self) -> Optional[str]:
        if self.last_error is None:
            return None
        return str(self.last_error) or type(self.last_error).__name__
