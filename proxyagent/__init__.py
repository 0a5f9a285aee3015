"""
proxyagent: local Envoy test harness

Stands up a "service behind a proxy" topology for tests: an HTTP echo backend
on dynamically allocated loopback ports, fronted by an Envoy process whose
configuration is generated from the resulting port mappings. The Agent manages
both as one unit.
"""

__version__ = "1.0.0"

# Core exports
from .core.enums import PortProtocol, AgentState, EnvoyLogLevel
from .core.errors import ProxyAgentError, TeardownError, UnsupportedProtocolError
from .core.types import AgentConfig, PortConfig, Port, HarnessSettings, TimeoutConfig
from .core.context import AgentContext
from .instances.agent import Agent

__all__ = [
    "__version__",
    "Agent",
    "AgentContext",
    "AgentConfig",
    "PortConfig",
    "Port",
    "PortProtocol",
    "AgentState",
    "EnvoyLogLevel",
    "HarnessSettings",
    "TimeoutConfig",
    "ProxyAgentError",
    "TeardownError",
    "UnsupportedProtocolError",
]
