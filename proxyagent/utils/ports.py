"""Ephemeral loopback port discovery."""

import socket
import threading
from typing import Optional, Protocol, Set

from ..core.errors import PortAllocationError
from ..core.log import get_logger

logger = get_logger(__name__)


class PortAllocator(Protocol):
    """Protocol for port allocation to enable dependency injection."""

    def allocate_port(self) -> int:
        """Allocate a currently free port."""

    def release_port(self, port: int) -> None:
        """Forget a previously allocated port."""


def find_free_port(host: str = "127.0.0.1") -> int:
    """Ask the OS for a free TCP port on ``host``.

    Binds a listener to port 0, reads back the assigned port and closes the
    listener before returning, so another process can bind it. Nothing stops a
    third process from taking the port in between.

    Raises:
        PortAllocationError: if the address cannot be resolved or bound
    """
    try:
        family, sock_type, proto, _, address = socket.getaddrinfo(
            host, 0, type=socket.SOCK_STREAM
        )[0]
    except (socket.gaierror, IndexError) as e:
        raise PortAllocationError(
            f"Cannot resolve {host} for port allocation: {e}", details={"host": host}
        ) from e

    try:
        with socket.socket(family, sock_type, proto) as sock:
            sock.bind(address)
            sock.listen(1)
            port = sock.getsockname()[1]
    except OSError as e:
        raise PortAllocationError(
            f"Cannot bind a free port on {host}: {e}", details={"host": host}
        ) from e

    logger.debug("Found free port %s on %s", port, host)
    return port


class FreePortAllocator:
    """Hands out OS-assigned free ports, never the same one twice.

    Each port is released right after discovery, so the OS may offer it again;
    such repeats are skipped. Thread-safe.
    """

    def __init__(self, host: str = "127.0.0.1", max_attempts: int = 10) -> None:
        """Initialize allocator.

        Args:
            host: Address the ports must be free on
            max_attempts: How many OS answers to try before giving up
        """
        self.host = host
        self.max_attempts = max_attempts
        self._allocated: Set[int] = set()
        self._lock = threading.Lock()

    def allocate_port(self) -> int:
        """Allocate a free port not handed out before.

        Raises:
            PortAllocationError: if the OS refuses or keeps repeating ports
        """
        with self._lock:
            last: Optional[int] = None
            for _ in range(self.max_attempts):
                port = find_free_port(self.host)
                if port not in self._allocated:
                    self._allocated.add(port)
                    logger.debug("Allocated port %s", port)
                    return port
                last = port
            raise PortAllocationError(
                f"No new free port on {self.host} after {self.max_attempts} attempts",
                details={"host": self.host, "last_port": last},
            )

    def release_port(self, port: int) -> None:
        """Forget a previously allocated port."""
        with self._lock:
            self._allocated.discard(port)
            logger.debug("Released port %s", port)

    @property
    def allocated(self) -> Set[int]:
        with self._lock:
            return set(self._allocated)
