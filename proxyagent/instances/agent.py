"""Agent orchestrating a backend service and the Envoy proxy in front of it."""

from typing import Any, List, Optional

from ..core.context import AgentContext
from ..core.enums import SUPPORTED_PROTOCOLS, AgentState
from ..core.errors import (
    AgentStateError,
    TeardownError,
    UnsupportedProtocolError,
    combine_errors,
)
from ..core.log import get_logger, log_agent_event
from ..core.protocols import Backend, Proxy
from ..core.types import AgentConfig, Port
from .envoy_config_builder import EnvoyConfig, EnvoyConfigBuilder
from .port_mapper import PortMapper

logger = get_logger(__name__)


class Agent:
    """Bootstraps a local Envoy proxy in front of a backend application.

    ``start()`` brings up the backend, maps each of its ports to a fresh proxy
    port, writes the Envoy configuration and launches Envoy. ``stop()`` tears
    all of it down again; it has to be called even when ``start()`` failed,
    since whatever was already started is kept.
    """

    def __init__(self, config: AgentConfig, context: Optional[AgentContext] = None) -> None:
        self.config = config
        self._context = context or AgentContext.create()
        self._logger = self._context.logger
        self._state = AgentState.UNSTARTED

        self._backend: Optional[Backend] = None
        self._proxy: Optional[Proxy] = None
        self._envoy_config: Optional[EnvoyConfig] = None
        self._admin_port = 0
        self._ports: List[Port] = []
        self._holds_ports = False

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def context(self) -> AgentContext:
        return self._context

    @property
    def envoy_config(self) -> Optional[EnvoyConfig]:
        """The generated configuration, while it exists."""
        return self._envoy_config

    def _holds_resources(self) -> bool:
        return (
            self._backend is not None
            or self._proxy is not None
            or self._envoy_config is not None
        )

    def _check_protocols(self) -> None:
        for port in self.config.ports:
            if port.protocol not in SUPPORTED_PROTOCOLS:
                raise UnsupportedProtocolError(
                    f"protocol {port.protocol.value} not currently supported",
                    protocol=port.protocol,
                    details={"port": port.name},
                )

    def start(self) -> None:
        """Start the backend, generate the Envoy config and start Envoy.

        Raises:
            UnsupportedProtocolError: if a declared port uses an unsupported
                protocol; nothing has been started in that case
            AgentStateError: if the agent still holds resources from a previous start
            BackendStartError, PortAllocationError, ConfigGenerationError,
            ProxyStartError: from the failing step; earlier steps stay up
                until ``stop()`` is called
        """
        self._check_protocols()
        if self._holds_resources():
            raise AgentStateError(
                f"Agent {self.config.service_name or '-'} is already started; call stop() first",
                details={"state": self._state.value},
            )
        self._admin_port = 0
        self._ports = []

        service_name = self.config.service_name
        log_agent_event(self._logger, "starting", service_name, ports=len(self.config.ports))

        self._backend = self._context.backend_factory()
        bound = self._backend.start(
            len(self.config.ports),
            tls_cert_path=self.config.tls_cert_path,
            tls_key_path=self.config.tls_key_path,
            version=self.config.version,
        )
        log_agent_event(
            self._logger, "started", service_name, component="backend", ports=list(bound)
        )

        mapper = PortMapper(self._context.port_allocator, logger=self._logger)
        admin_port, ports = mapper.map(self.config.ports, bound)
        self._admin_port = admin_port
        self._ports = ports
        self._holds_ports = True

        builder = EnvoyConfigBuilder(
            service_name, admin_port, ports, self.config.temp_dir, logger=self._logger
        )
        self._envoy_config = builder.build()

        self._proxy = self._context.proxy_factory()
        self._proxy.start(self._envoy_config)

        self._state = AgentState.RUNNING
        log_agent_event(
            self._logger, "running", service_name,
            admin_port=admin_port,
            mappings={p.config.name: [p.proxy_port, p.service_port] for p in ports},
        )

    def stop(self) -> None:
        """Stop Envoy and the backend and remove the generated config.

        Every step runs even if an earlier one fails. Components that stopped
        cleanly are released, so calling ``stop()`` again only retries the
        ones that failed.

        Raises:
            TeardownError: holding every failure, after all steps have run
        """
        failures: List[Optional[BaseException]] = []

        if self._proxy is not None:
            try:
                self._proxy.stop()
                self._proxy = None
            except Exception as e:  # pylint: disable=broad-exception-caught
                self._logger.error("Failed to stop proxy: %s", e)
                failures.append(e)

        if self._backend is not None:
            try:
                self._backend.stop()
                self._backend = None
            except Exception as e:  # pylint: disable=broad-exception-caught
                self._logger.error("Failed to stop backend: %s", e)
                failures.append(e)

        if self._envoy_config is not None:
            try:
                self._envoy_config.dispose()
                self._envoy_config = None
            except Exception as e:  # pylint: disable=broad-exception-caught
                self._logger.error("Failed to remove Envoy config: %s", e)
                failures.append(e)

        error = combine_errors(failures)
        if error is not None:
            raise error

        self._release_ports()
        if self._state is AgentState.RUNNING:
            self._state = AgentState.STOPPED
            log_agent_event(self._logger, "stopped", self.config.service_name)

    def _release_ports(self) -> None:
        if not self._holds_ports:
            return
        allocated = [p.proxy_port for p in self._ports]
        if self._admin_port:
            allocated.append(self._admin_port)
        for port in allocated:
            self._context.port_allocator.release_port(port)
        self._holds_ports = False

    def get_ports(self) -> List[Port]:
        """Port mappings in declaration order (empty before start)."""
        return list(self._ports)

    def get_envoy_admin_port(self) -> int:
        """Envoy's admin port (0 before start)."""
        return self._admin_port

    def __enter__(self) -> "Agent":
        try:
            self.start()
        except Exception:
            try:
                self.stop()
            except TeardownError as e:
                self._logger.error("Cleanup after failed start of %r failed: %s", self, e)
            raise
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.stop()

    def __repr__(self) -> str:
        return (
            f"Agent(service={self.config.service_name!r}, state={self._state.value}, "
            f"admin_port={self._admin_port})"
        )
