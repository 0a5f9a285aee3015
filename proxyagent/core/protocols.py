"""Protocol definitions for the components an Agent orchestrates.

Protocols define the "what" (interfaces) without depending on "how" (implementations).
The Agent only talks to these, so echo servers, Envoy processes and test fakes
are interchangeable.
"""

from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from .types import Port


class Backend(Protocol):
    """Backend application exposing a set of listening ports once started."""

    @property
    def ports(self) -> List[int]:
        """Bound ports in request order (empty until started)."""

    def start(
        self,
        port_count: int,
        tls_cert_path: Optional[Path] = None,
        tls_key_path: Optional[Path] = None,
        version: str = "",
    ) -> List[int]:
        """Listen on ``port_count`` ports and return them in order.

        Raises:
            BackendStartError: if the service could not be brought up
        """

    def stop(self) -> None:
        """Release every bound port.

        Raises:
            BackendStopError: if the service could not be shut down
        """


class ConfigArtifact(Protocol):
    """Materialized proxy configuration consumed by a Proxy."""

    @property
    def config_file(self) -> Path:
        """Path of the configuration file."""

    @property
    def admin_port(self) -> int:
        """Port of the proxy's administrative listener."""

    @property
    def ports(self) -> Sequence[Port]:
        """Port mappings the configuration describes."""

    @property
    def service_name(self) -> str:
        """Name of the proxied service."""

    def dispose(self) -> None:
        """Remove everything the artifact created. Never raises."""


class Proxy(Protocol):
    """Proxy process driven by a configuration artifact."""

    def start(self, config: ConfigArtifact) -> None:
        """Launch the proxy against ``config``.

        Raises:
            ProxyStartError: if the process could not be spawned or became unhealthy
        """

    def stop(self) -> None:
        """Terminate the proxy.

        Raises:
            ProxyStopError: if termination could not be confirmed
        """
