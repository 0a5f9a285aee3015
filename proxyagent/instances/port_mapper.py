"""Pairs backend ports with freshly allocated proxy ports."""

from typing import List, Optional, Sequence, Tuple

from ..core.errors import ConfigurationError, PortAllocationError
from ..core.log import Logger, get_logger
from ..core.types import Port, PortConfig
from ..utils.ports import FreePortAllocator, PortAllocator

_module_logger = get_logger(__name__)


class PortMapper:
    """Generates the port mappings between the proxy and the backend service."""

    def __init__(
        self,
        port_allocator: Optional[PortAllocator] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._port_allocator = port_allocator or FreePortAllocator()
        self._logger = logger or _module_logger

    def map(
        self, declared: Sequence[PortConfig], bound: Sequence[int]
    ) -> Tuple[int, List[Port]]:
        """Allocate the admin port and one proxy port per backend port.

        Args:
            declared: Port configs, in declaration order
            bound: Backend ports, positionally aligned with ``declared``

        Returns:
            ``(admin_port, ports)`` with ``ports[i]`` built from ``declared[i]``
            and ``bound[i]``

        Raises:
            ConfigurationError: if ``declared`` and ``bound`` differ in length
            PortAllocationError: on the first allocation failure; ports
                allocated before it are released again
        """
        if len(declared) != len(bound):
            raise ConfigurationError(
                f"Got {len(bound)} backend ports for {len(declared)} declared ports",
                details={"declared": len(declared), "bound": list(bound)},
            )

        allocated: List[int] = []
        try:
            admin_port = self._port_allocator.allocate_port()
            allocated.append(admin_port)
            for _ in declared:
                allocated.append(self._port_allocator.allocate_port())
        except PortAllocationError:
            for port in allocated:
                self._port_allocator.release_port(port)
            raise

        ports: List[Port] = []
        for config, service_port, proxy_port in zip(declared, bound, allocated[1:]):
            ports.append(
                Port(config=config, proxy_port=proxy_port, service_port=service_port)
            )
            self._logger.debug(
                "Mapped port %s (%s): proxy %s -> service %s",
                config.name,
                config.protocol.value,
                proxy_port,
                service_port,
            )

        return admin_port, ports
