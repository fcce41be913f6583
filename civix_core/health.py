"""
Database Health Probe
=====================
Lightweight liveness check against MongoDB with latency reporting.
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from pydantic import BaseModel, Field

from .driver import DatabaseDriver
from .state import ConnectionState, HealthStatus

logger = structlog.get_logger(__name__)


class HealthReport(BaseModel):
    status: HealthStatus
    message: str
    response_time_ms: float
    timestamp: str
    details: Dict[str, Any] = Field(default_factory=dict)


class HealthProber:
    """Probes the database and records the outcome on the connection state."""

    def __init__(self, state: ConnectionState, driver: DatabaseDriver):
        self.state = state
        self.driver = driver

    async def check_database_health(self) -> HealthReport:
        """
        Check database connectivity and latency.

        Never raises on dependency failure; the failure is reported with
        status ``error`` instead.
        """
        start = time.monotonic()

        if not self.driver.is_ready:
            return HealthReport(
                status=HealthStatus.DISCONNECTED,
                message="Database connection not established",
                response_time_ms=_elapsed_ms(start),
                timestamp=_now_iso(),
                details={
                    "ready": False,
                    "circuit_breaker_state": self.state.circuit_breaker_state.value,
                    "last_error": self.state.last_error_message,
                },
            )

        try:
            await self.driver.ping()
            connection = self.driver.connection_details()
        except Exception as e:
            response_time = _elapsed_ms(start)
            self.state.health_check.status = HealthStatus.ERROR
            self.state.last_error = e
            logger.error("database_health_check_failed", error=str(e))
            return HealthReport(
                status=HealthStatus.ERROR,
                message="Database health check failed",
                response_time_ms=response_time,
                timestamp=_now_iso(),
                details={
                    "error": str(e),
                    "ready": self.driver.is_ready,
                    "circuit_breaker_state": self.state.circuit_breaker_state.value,
                },
            )

        response_time = _elapsed_ms(start)
        self.state.health_check.last_check = datetime.now(timezone.utc)
        self.state.health_check.response_time_ms = response_time
        self.state.health_check.status = HealthStatus.CONNECTED

        return HealthReport(
            status=HealthStatus.CONNECTED,
            message="Database is healthy",
            response_time_ms=response_time,
            timestamp=_now_iso(),
            details={
                "ready": True,
                **connection,
                "circuit_breaker_state": self.state.circuit_breaker_state.value,
            },
        )


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 2)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
