"""Agent context for explicit dependency management.

The AgentContext is the single immutable container for everything an Agent
needs besides its own AgentConfig: harness settings, logger, port allocator,
process supervisor, and the factories producing backends and proxies.

Usage:
    settings = load_settings(config_file=Path("harness.yaml"))
    context = AgentContext.create(settings)
    agent = Agent(AgentConfig(service_name="echo", ports=[...]), context)

    # For testing: fake backend and proxy, nothing is spawned
    context = AgentContext.for_testing()
"""

from dataclasses import dataclass
from typing import Callable, Optional

from .log import Logger
from .process import ProcessSupervisor
from .protocols import Backend, Proxy
from .types import HarnessSettings
from ..utils.ports import PortAllocator

BackendFactory = Callable[[], Backend]
ProxyFactory = Callable[[], Proxy]


@dataclass(frozen=True)
class AgentContext:
    """Immutable dependency container shared by agents.

    Attributes:
        settings: Harness settings
        logger: Logging instance
        port_allocator: Source of free proxy and admin ports
        process_supervisor: Supervisor the default proxy runs under
        backend_factory: Creates an unstarted Backend per agent start
        proxy_factory: Creates an unstarted Proxy per agent start
    """

    settings: HarnessSettings
    logger: Logger
    port_allocator: PortAllocator
    process_supervisor: ProcessSupervisor
    backend_factory: BackendFactory
    proxy_factory: ProxyFactory

    @classmethod
    def create(
        cls,
        settings: Optional[HarnessSettings] = None,
        *,
        logger: Optional[Logger] = None,
        port_allocator: Optional[PortAllocator] = None,
        process_supervisor: Optional[ProcessSupervisor] = None,
        backend_factory: Optional[BackendFactory] = None,
        proxy_factory: Optional[ProxyFactory] = None,
    ) -> "AgentContext":
        """Create a context, filling in default implementations.

        Defaults: settings from ``get_settings()``, the shared process
        supervisor, an EchoServer backend and an EnvoyProcess proxy.
        """
        # Imported here to avoid circular imports with the instances package
        from .config import get_settings
        from .log import get_logger
        from .process import get_process_supervisor
        from ..instances.echo_server import EchoServer
        from ..instances.envoy import EnvoyProcess
        from ..utils.ports import FreePortAllocator

        if settings is None:
            settings = get_settings()
        if logger is None:
            logger = get_logger("proxyagent")
        if port_allocator is None:
            port_allocator = FreePortAllocator(host=settings.listen_host)
        if process_supervisor is None:
            process_supervisor = get_process_supervisor()

        if backend_factory is None:
            def backend_factory() -> Backend:
                return EchoServer(
                    host=settings.listen_host, timeouts=settings.timeouts, logger=logger
                )

        if proxy_factory is None:
            def proxy_factory() -> Proxy:
                return EnvoyProcess(
                    settings=settings, supervisor=process_supervisor, logger=logger
                )

        return cls(
            settings=settings,
            logger=logger,
            port_allocator=port_allocator,
            process_supervisor=process_supervisor,
            backend_factory=backend_factory,
            proxy_factory=proxy_factory,
        )

    @classmethod
    def for_testing(
        cls, settings: Optional[HarnessSettings] = None, **overrides
    ) -> "AgentContext":
        """Create a context backed by in-memory fakes.

        Keyword overrides are passed through to ``create``. The fake backend
        draws its ports from the context's allocator.
        """
        from ..testing.fakes import FakeBackend, FakeProxy
        from ..utils.ports import FreePortAllocator

        settings = settings or HarnessSettings()
        port_allocator = overrides.setdefault(
            "port_allocator", FreePortAllocator(host=settings.listen_host)
        )
        overrides.setdefault(
            "backend_factory", lambda: FakeBackend(port_allocator=port_allocator)
        )
        overrides.setdefault("proxy_factory", FakeProxy)
        overrides.setdefault("process_supervisor", ProcessSupervisor())
        return cls.create(settings, **overrides)
