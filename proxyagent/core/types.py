"""Core type definitions for the proxy agent harness."""

import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enums import EnvoyLogLevel, PortProtocol


def _default_temp_dir() -> Path:
    return Path(tempfile.gettempdir()) / "proxyagent"


class PortConfig(BaseModel):
    """Meta information about one logical port exposed by the backend."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    protocol: PortProtocol = PortProtocol.HTTP


class AgentConfig(BaseModel):
    """Configuration for an Agent. Supplied once at construction."""

    model_config = ConfigDict(frozen=True)

    service_name: str = ""
    ports: List[PortConfig] = Field(default_factory=list)
    tls_cert_path: Optional[Path] = None
    tls_key_path: Optional[Path] = None
    version: str = ""
    temp_dir: Path = Field(default_factory=_default_temp_dir)


class Port(BaseModel):
    """Port mapping for a single configured port."""

    model_config = ConfigDict(frozen=True)

    config: PortConfig
    proxy_port: int = Field(gt=0, lt=65536)
    service_port: int = Field(gt=0, lt=65536)

    @property
    def envoy_port(self) -> int:
        """Port Envoy listens on for this mapping."""
        return self.proxy_port


class TimeoutConfig(BaseModel):
    """Centralized timeout configuration for process lifecycles."""

    # Backend lifecycle
    backend_startup: float = 10.0
    backend_shutdown: float = 10.0

    # Proxy lifecycle
    proxy_startup: float = 30.0
    proxy_shutdown: float = 10.0
    process_force_kill: float = 5.0

    # Health checks
    health_check_quick: float = 2.0
    readiness_poll_interval: float = 0.2


class HarnessSettings(BaseModel):
    """Harness-wide settings shared by every Agent in a process."""

    envoy_binary: str = "envoy"
    envoy_log_level: EnvoyLogLevel = EnvoyLogLevel.WARNING
    envoy_base_id: Optional[int] = None
    wait_for_proxy_ready: bool = True
    listen_host: str = "127.0.0.1"
    inherit_console: bool = False
    log_level: str = "INFO"
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)

    @model_validator(mode="after")
    def validate_settings(self) -> "HarnessSettings":
        """Validate settings - NO SIDE EFFECTS."""
        from .errors import ConfigurationError

        for name, value in self.timeouts.model_dump().items():  # pylint: disable=no-member
            if value <= 0:
                raise ConfigurationError(f"Timeout {name} must be positive")

        if self.envoy_base_id is not None and self.envoy_base_id < 0:
            raise ConfigurationError("Envoy base id must not be negative")

        if not self.envoy_binary:
            raise ConfigurationError("Envoy binary must be specified")

        return self


class HealthStatus(BaseModel):
    """Proxy admin health status."""

    is_healthy: bool
    response_time: float
    error_message: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class CrashInfo(BaseModel):
    """Information about a crashed process."""

    exit_code: int
    timestamp: float
    stderr: Optional[str] = None
    signal: Optional[int] = None
