"""Test configuration and fixtures for framework tests."""

import shutil
import tempfile
from pathlib import Path
from unittest.mock import Mock

import pytest

from proxyagent.core.context import AgentContext
from proxyagent.core.types import AgentConfig, HarnessSettings, PortConfig


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp(prefix="proxyagent_test_"))
    try:
        yield temp_path
    finally:
        if temp_path.exists():
            shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def mock_logger():
    """Logger double satisfying the Logger protocol."""
    return Mock()


@pytest.fixture
def settings():
    """Harness settings with short timeouts."""
    return HarnessSettings(
        envoy_binary="envoy",
        wait_for_proxy_ready=False,
        timeouts={"backend_startup": 5.0, "backend_shutdown": 5.0},
    )


@pytest.fixture
def fake_context(settings):
    """Agent context backed by the fake backend and proxy."""
    return AgentContext.for_testing(settings)


@pytest.fixture
def echo_config(temp_dir):
    """The single-HTTP-port agent configuration."""
    return AgentConfig(
        service_name="echo",
        ports=[PortConfig(name="http")],
        temp_dir=temp_dir / "agent",
    )
