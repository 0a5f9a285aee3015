"""Instance management components.

API:
    - Agent: Orchestrates backend, port mapping, config and proxy
    - EchoServer: HTTP echo backend
    - EnvoyProcess: Envoy process wrapper
    - EnvoyConfigBuilder, EnvoyConfig: Bootstrap generation and its artifact
    - PortMapper: Backend to proxy port pairing
"""

from .agent import Agent
from .echo_server import EchoServer
from .envoy import EnvoyProcess
from .envoy_config_builder import EnvoyConfig, EnvoyConfigBuilder
from .port_mapper import PortMapper

__all__ = [
    "Agent",
    "EchoServer",
    "EnvoyProcess",
    "EnvoyConfig",
    "EnvoyConfigBuilder",
    "PortMapper",
]
