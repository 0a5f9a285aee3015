"""Tests for core type definitions."""

from pathlib import Path
import tempfile

import pytest
from pydantic import ValidationError

from proxyagent.core.enums import (
    SUPPORTED_PROTOCOLS,
    AgentState,
    EnvoyLogLevel,
    PortProtocol,
)
from proxyagent.core.errors import ConfigurationError
from proxyagent.core.types import (
    AgentConfig,
    HarnessSettings,
    Port,
    PortConfig,
    TimeoutConfig,
)


class TestEnums:
    """Test enum values."""

    def test_only_http_supported(self):
        assert SUPPORTED_PROTOCOLS == frozenset({PortProtocol.HTTP})
        assert PortProtocol.GRPC not in SUPPORTED_PROTOCOLS

    def test_protocol_values(self):
        assert PortProtocol.HTTP.value == "HTTP"
        assert PortProtocol.GRPC.value == "GRPC"
        assert PortProtocol.MONGO.value == "Mongo"

    def test_agent_states(self):
        assert [s.value for s in AgentState] == ["unstarted", "running", "stopped"]

    def test_envoy_log_level_values(self):
        assert EnvoyLogLevel("warning") is EnvoyLogLevel.WARNING


class TestPortConfig:
    """Test PortConfig model."""

    def test_defaults_to_http(self):
        assert PortConfig(name="http").protocol is PortProtocol.HTTP

    def test_protocol_from_value(self):
        assert PortConfig(name="grpc", protocol="GRPC").protocol is PortProtocol.GRPC

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            PortConfig(name="")

    def test_frozen(self):
        config = PortConfig(name="http")
        with pytest.raises(ValidationError):
            config.name = "other"


class TestAgentConfig:
    """Test AgentConfig model."""

    def test_defaults(self):
        config = AgentConfig()
        assert config.service_name == ""
        assert config.ports == []
        assert config.tls_cert_path is None
        assert config.tls_key_path is None
        assert config.version == ""
        assert config.temp_dir == Path(tempfile.gettempdir()) / "proxyagent"

    def test_ports_keep_declaration_order(self):
        config = AgentConfig(
            ports=[PortConfig(name="b"), PortConfig(name="a"), PortConfig(name="c")]
        )
        assert [p.name for p in config.ports] == ["b", "a", "c"]


class TestPort:
    """Test Port model."""

    def test_envoy_port_aliases_proxy_port(self):
        port = Port(config=PortConfig(name="http"), proxy_port=15001, service_port=8080)
        assert port.envoy_port == 15001

    @pytest.mark.parametrize("value", [0, -1, 65536])
    def test_port_range_enforced(self, value):
        with pytest.raises(ValidationError):
            Port(config=PortConfig(name="http"), proxy_port=value, service_port=8080)


class TestHarnessSettings:
    """Test HarnessSettings validation."""

    def test_defaults(self):
        settings = HarnessSettings()
        assert settings.envoy_binary == "envoy"
        assert settings.envoy_log_level is EnvoyLogLevel.WARNING
        assert settings.envoy_base_id is None
        assert settings.wait_for_proxy_ready is True
        assert settings.listen_host == "127.0.0.1"
        assert settings.timeouts == TimeoutConfig()

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ConfigurationError, match="proxy_startup"):
            HarnessSettings(timeouts=TimeoutConfig(proxy_startup=0))

    def test_negative_base_id_rejected(self):
        with pytest.raises(ConfigurationError):
            HarnessSettings(envoy_base_id=-1)

    def test_empty_binary_rejected(self):
        with pytest.raises(ConfigurationError):
            HarnessSettings(envoy_binary="")
