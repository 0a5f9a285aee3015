"""Tests for EnvoyHealthChecker against real local endpoints."""

import pytest

from proxyagent.core.types import TimeoutConfig
from proxyagent.instances.echo_server import EchoServer
from proxyagent.instances.health_checker import EnvoyHealthChecker
from proxyagent.utils.ports import find_free_port


@pytest.fixture
def checker(mock_logger):
    return EnvoyHealthChecker(mock_logger, TimeoutConfig(health_check_quick=1.0))


class TestEnvoyHealthChecker:
    """Test readiness and health checks."""

    def test_healthy_endpoint(self, checker):
        server = EchoServer()
        port = server.start(1)[0]
        try:
            status = checker.check_health(f"http://127.0.0.1:{port}", timeout=2.0)
            assert status.is_healthy
            assert status.response_time >= 0
            assert "URL=/ready" in status.details["state"]
            assert checker.check_readiness(f"http://127.0.0.1:{port}")
        finally:
            server.stop()

    def test_error_status_is_unhealthy(self, checker):
        server = EchoServer()
        port = server.start(1)[0]
        try:
            # The echo server rejects the malformed status with a 400
            status = checker.check_health(
                f"http://127.0.0.1:{port}/?status=bad", timeout=2.0
            )
            assert not status.is_healthy
            assert status.error_message.startswith("HTTP 400")
        finally:
            server.stop()

    def test_nothing_listening(self, checker, mock_logger):
        endpoint = f"http://127.0.0.1:{find_free_port()}"

        status = checker.check_health(endpoint, timeout=1.0)

        assert not status.is_healthy
        assert status.error_message
        assert not checker.check_readiness(endpoint)
        mock_logger.debug.assert_called()
