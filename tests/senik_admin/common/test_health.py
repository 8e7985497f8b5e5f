"""Tests for the health check and metrics server."""

import json
import time
from unittest.mock import Mock

import aiohttp
import pytest
from prometheus_client import CollectorRegistry, Counter

from senik_admin.common.health import HealthCheckServer


def body(response) -> dict:
    return json.loads(response.text)


@pytest.fixture
def server():
    return HealthCheckServer(port=0, worker_name="income_calculation")


class TestReadiness:

    @pytest.mark.asyncio
    async def test_not_ready_initially(self, server):
        response = await server.handle_readiness(Mock())

        assert response.status == 503
        assert body(response)["status"] == "not_ready"
        assert body(response)["checks"] == {"consumer_connected": False}

    @pytest.mark.asyncio
    async def test_ready_when_consumer_connected(self, server):
        server.set_ready(consumer_connected=True)

        response = await server.handle_readiness(Mock())

        assert server._snapshot().ready
        assert response.status == 200
        assert body(response)["status"] == "ready"
        assert body(response)["worker"] == "income_calculation"

    @pytest.mark.asyncio
    async def test_error_state_reports_error(self, server):
        server.set_ready(consumer_connected=True)
        server.set_error("bootstrap_servers is required")

        response = await server.handle_readiness(Mock())

        assert not server._snapshot().ready
        assert response.status == 200
        assert body(response)["status"] == "error"
        assert body(response)["error"] == "bootstrap_servers is required"

    def test_error_keeps_not_ready_until_cleared(self, server):
        server.set_error("boom")
        server.set_ready(consumer_connected=True)

        assert not server._snapshot().ready

        server.clear_error()

        assert server._snapshot().ready
        assert server._snapshot().error is None


class TestLiveness:

    @pytest.mark.asyncio
    async def test_alive_without_heartbeat(self, server):
        response = await server.handle_liveness(Mock())

        assert response.status == 200
        assert body(response)["status"] == "alive"

    @pytest.mark.asyncio
    async def test_fresh_heartbeat(self, server):
        server.record_heartbeat()

        response = await server.handle_liveness(Mock())

        assert response.status == 200

    @pytest.mark.asyncio
    async def test_stale_heartbeat(self):
        server = HealthCheckServer(port=0, heartbeat_timeout_seconds=1.0)
        server.record_heartbeat()
        server._state.last_heartbeat = time.monotonic() - 5

        response = await server.handle_liveness(Mock())

        assert response.status == 503
        assert body(response)["reason"] == "event_loop_stale"

    @pytest.mark.asyncio
    async def test_zero_timeout_disables_check(self):
        server = HealthCheckServer(port=0, heartbeat_timeout_seconds=0)
        server.record_heartbeat()
        server._state.last_heartbeat = time.monotonic() - 500

        response = await server.handle_liveness(Mock())

        assert response.status == 200


class TestMetrics:

    @pytest.mark.asyncio
    async def test_exposes_registry(self):
        registry = CollectorRegistry()
        Counter("senik_test_events_total", "Test counter", registry=registry).inc(3)
        server = HealthCheckServer(port=0, registry=registry)

        response = await server.handle_metrics(Mock())

        assert response.status == 200
        assert response.headers["Content-Type"].startswith("text/plain")
        assert b"senik_test_events_total 3.0" in response.body


class TestServerLifecycle:

    @pytest.mark.asyncio
    async def test_disabled_server_is_noop(self):
        server = HealthCheckServer(port=None)

        await server.start()
        await server.stop()

        assert not server._enabled
        assert server._actual_port is None

    @pytest.mark.asyncio
    async def test_serves_probes_on_dynamic_port(self, server):
        await server.start()
        try:
            port = server._actual_port
            assert port

            server.set_ready(consumer_connected=True)
            async with aiohttp.ClientSession() as session:
                async with session.get(f"http://127.0.0.1:{port}/health/live") as resp:
                    assert resp.status == 200
                async with session.get(f"http://127.0.0.1:{port}/health/ready") as resp:
                    assert resp.status == 200
                    assert (await resp.json())["status"] == "ready"
                async with session.get(f"http://127.0.0.1:{port}/metrics") as resp:
                    assert resp.status == 200
                    assert "python_info" in await resp.text()
        finally:
            await server.stop()

        assert server._actual_port is None
