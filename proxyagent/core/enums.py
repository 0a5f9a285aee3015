"""Core enumerations for the proxy agent harness.

Separated from types.py to break circular dependencies. This module contains
only enum definitions with no dependencies on other core modules.
"""

from enum import Enum


class PortProtocol(Enum):
    """Application protocol spoken on a declared port."""

    HTTP = "HTTP"
    HTTP2 = "HTTP2"
    HTTPS = "HTTPS"
    GRPC = "GRPC"
    TCP = "TCP"
    TLS = "TLS"
    UDP = "UDP"
    MONGO = "Mongo"
    REDIS = "Redis"
    MYSQL = "MySQL"


# Protocols the agent can currently put behind Envoy
SUPPORTED_PROTOCOLS = frozenset({PortProtocol.HTTP})


class AgentState(Enum):
    """Agent lifecycle state."""

    UNSTARTED = "unstarted"
    RUNNING = "running"
    STOPPED = "stopped"


class EnvoyLogLevel(Enum):
    """Log levels accepted by Envoy's --log-level flag."""

    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    OFF = "off"
