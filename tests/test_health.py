"""
Health Probe Tests
==================
"""

import asyncio

import pytest

from civix_core.state import HealthStatus


class TestCheckDatabaseHealth:
    """Tests for check_database_health."""

    @pytest.mark.asyncio
    async def test_not_ready_reports_disconnected(self, context, driver):
        """Should report disconnected without pinging."""
        context.state.last_error = RuntimeError("refused")

        report = await context.prober.check_database_health()

        assert report.status == HealthStatus.DISCONNECTED
        assert driver.ping_calls == 0
        assert report.details["circuit_breaker_state"] == "closed"
        assert report.details["last_error"] == "refused"
        assert report.response_time_ms >= 0

    @pytest.mark.asyncio
    async def test_ping_success(self, context, driver):
        """Should report connected with connection details."""
        driver.ready = True

        report = await context.prober.check_database_health()

        assert report.status == HealthStatus.CONNECTED
        assert report.message == "Database is healthy"
        assert report.details["host"] == "localhost"
        assert report.details["port"] == 27017
        assert report.details["name"] == "civix_test"
        assert context.state.health_check.status == HealthStatus.CONNECTED
        assert context.state.health_check.last_check is not None

    @pytest.mark.asyncio
    async def test_ping_failure_reports_error(self, context, driver):
        """Should capture the failure instead of raising."""
        driver.ready = True
        driver.ping_error = TimeoutError("ping timed out")

        report = await context.prober.check_database_health()

        assert report.status == HealthStatus.ERROR
        assert report.details["error"] == "ping timed out"
        assert context.state.health_check.status == HealthStatus.ERROR
        assert context.state.last_error is driver.ping_error

    @pytest.mark.asyncio
    async def test_details_failure_reports_error(self, context, driver):
        """A failing details lookup after a good ping should be reported, not raised."""
        driver.ready = True

        def broken_details():
            raise LookupError("no server address")

        driver.connection_details = broken_details

        report = await context.prober.check_database_health()

        assert report.status == HealthStatus.ERROR
        assert report.details["error"] == "no server address"

    @pytest.mark.asyncio
    async def test_timeout_fallback_survives_details_failure(self, context, driver):
        """The probe run on timeout should not replace the fallback result."""
        driver.ready = True
        context.state.is_connected = True

        def broken_details():
            raise LookupError("no server address")

        driver.connection_details = broken_details
        release = asyncio.Event()

        async def slow_query():
            await release.wait()

        result = await context.executor.execute_with_fallback(
            slow_query, lambda: "fallback", timeout_ms=20
        )

        assert result == "fallback"
        release.set()
        await asyncio.sleep(0.01)

    @pytest.mark.asyncio
    async def test_report_serialises(self, context, driver):
        """The report should dump to plain JSON types."""
        driver.ready = True

        payload = (await context.prober.check_database_health()).model_dump(mode="json")

        assert payload["status"] == "connected"
        assert isinstance(payload["timestamp"], str)
