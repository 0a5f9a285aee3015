"""Envoy bootstrap configuration generation for an agent's port mappings."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from ..core.errors import ConfigGenerationError, FilesystemError
from ..core.log import Logger, get_logger
from ..core.types import Port
from ..utils.filesystem import (
    atomic_write,
    ensure_dir,
    make_temp_dir,
    remove_empty_dir,
    safe_remove,
)

_module_logger = get_logger(__name__)

LOOPBACK = "127.0.0.1"
DEFAULT_NODE_NAME = "proxyagent"
CONFIG_FILE_NAME = "envoy.yaml"

HTTP_CONNECTION_MANAGER = "envoy.filters.network.http_connection_manager"
HTTP_CONNECTION_MANAGER_TYPE = (
    "type.googleapis.com/envoy.extensions.filters.network."
    "http_connection_manager.v3.HttpConnectionManager"
)
ROUTER_FILTER = "envoy.filters.http.router"
ROUTER_FILTER_TYPE = "type.googleapis.com/envoy.extensions.filters.http.router.v3.Router"
FILE_ACCESS_LOG = "envoy.access_loggers.file"
FILE_ACCESS_LOG_TYPE = (
    "type.googleapis.com/envoy.extensions.access_loggers.file.v3.FileAccessLog"
)


class EnvoyConfig:
    """A materialized Envoy configuration and the paths created for it.

    Paths are recorded as they are created, so dispose() also works on a
    configuration whose build failed halfway.
    """

    def __init__(
        self,
        service_name: str,
        admin_port: int,
        ports: Sequence[Port],
        logger: Optional[Logger] = None,
    ) -> None:
        self._service_name = service_name
        self._admin_port = admin_port
        self._ports = list(ports)
        self._logger = logger or _module_logger
        self._config_file: Optional[Path] = None
        self._config_dir: Optional[Path] = None
        self._created_dirs: List[Path] = []
        self._disposed = False

    @property
    def service_name(self) -> str:
        return self._service_name

    @property
    def admin_port(self) -> int:
        return self._admin_port

    @property
    def ports(self) -> List[Port]:
        return list(self._ports)

    @property
    def config_file(self) -> Path:
        if self._config_file is None:
            raise ConfigGenerationError("Envoy configuration has not been written")
        return self._config_file

    @property
    def config_dir(self) -> Optional[Path]:
        return self._config_dir

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _track_dirs(self, dirs: Sequence[Path]) -> None:
        self._created_dirs.extend(dirs)

    def _set_config_dir(self, config_dir: Path) -> None:
        self._config_dir = config_dir

    def _set_config_file(self, config_file: Path) -> None:
        self._config_file = config_file

    def dispose(self) -> None:
        """Remove the config file and every directory created for it.

        Idempotent and never raises; failures are logged.
        """
        if self._disposed:
            return
        self._disposed = True

        if self._config_dir is not None and not safe_remove(self._config_dir):
            if self._config_dir.exists():
                self._logger.warning(
                    "Could not remove Envoy config directory %s", self._config_dir
                )

        # Parents we created, deepest first; only removed while empty
        for directory in reversed(self._created_dirs):
            remove_empty_dir(directory)

        self._logger.debug("Disposed Envoy config for %s", self._service_name)

    def __enter__(self) -> "EnvoyConfig":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return (
            f"EnvoyConfig(service={self._service_name!r}, admin_port={self._admin_port}, "
            f"config_file={self._config_file})"
        )


class EnvoyConfigBuilder:
    """Builds an Envoy v3 bootstrap that fronts each backend port with a listener.

    Listener, route and cluster entries follow the order of ``ports``.
    """

    def __init__(
        self,
        service_name: str,
        admin_port: int,
        ports: Sequence[Port],
        temp_dir: Path,
        logger: Optional[Logger] = None,
    ) -> None:
        self.service_name = service_name
        self.admin_port = admin_port
        self.ports = list(ports)
        self.temp_dir = Path(temp_dir)
        self._logger = logger or _module_logger

    @property
    def node_name(self) -> str:
        return self.service_name or DEFAULT_NODE_NAME

    def build(self) -> EnvoyConfig:
        """Render the bootstrap and write it under ``temp_dir``.

        Raises:
            ConfigGenerationError: on any rendering or filesystem failure, after
                removing whatever had been created
        """
        config = EnvoyConfig(
            self.service_name, self.admin_port, self.ports, logger=self._logger
        )
        try:
            content = yaml.safe_dump(
                self.build_bootstrap(), default_flow_style=False, sort_keys=False
            )

            config._track_dirs(_missing_dirs(self.temp_dir))
            ensure_dir(self.temp_dir)

            config_dir = make_temp_dir(self.temp_dir, f"envoy-{self.node_name}-")
            config._set_config_dir(config_dir)

            config_file = config_dir / CONFIG_FILE_NAME
            atomic_write(config_file, content)
            config._set_config_file(config_file)
        except (yaml.YAMLError, FilesystemError, OSError, ValueError, TypeError) as e:
            config.dispose()
            raise ConfigGenerationError(
                f"Failed to generate Envoy config for {self.node_name}: {e}",
                details={"temp_dir": str(self.temp_dir)},
            ) from e

        self._logger.debug("Wrote Envoy config %s", config.config_file)
        return config

    def build_bootstrap(self) -> Dict[str, Any]:
        """Return the bootstrap document as plain data."""
        return {
            "node": {"id": self.node_name, "cluster": self.node_name},
            "admin": {
                "access_log": [
                    {
                        "name": FILE_ACCESS_LOG,
                        "typed_config": {"@type": FILE_ACCESS_LOG_TYPE, "path": "/dev/null"},
                    }
                ],
                "address": _socket_address(self.admin_port),
            },
            "static_resources": {
                "listeners": [self._listener(port) for port in self.ports],
                "clusters": [self._cluster(port) for port in self.ports],
            },
        }

    def cluster_name(self, port: Port) -> str:
        return f"{self.node_name}_{port.config.name}_{port.service_port}"

    def listener_name(self, port: Port) -> str:
        return f"{port.config.name}_{port.proxy_port}"

    def _metadata(self, port: Port) -> Dict[str, Any]:
        return {
            "filter_metadata": {
                "proxyagent": {
                    "port_name": port.config.name,
                    "protocol": port.config.protocol.value,
                }
            }
        }

    def _listener(self, port: Port) -> Dict[str, Any]:
        return {
            "name": self.listener_name(port),
            "address": _socket_address(port.proxy_port),
            "metadata": self._metadata(port),
            "filter_chains": [
                {
                    "filters": [
                        {
                            "name": HTTP_CONNECTION_MANAGER,
                            "typed_config": {
                                "@type": HTTP_CONNECTION_MANAGER_TYPE,
                                "stat_prefix": port.config.name,
                                "codec_type": "AUTO",
                                "route_config": {
                                    "name": f"{port.config.name}_route",
                                    "virtual_hosts": [
                                        {
                                            "name": self.node_name,
                                            "domains": ["*"],
                                            "routes": [
                                                {
                                                    "match": {"prefix": "/"},
                                                    "route": {
                                                        "cluster": self.cluster_name(port)
                                                    },
                                                }
                                            ],
                                        }
                                    ],
                                },
                                "http_filters": [
                                    {
                                        "name": ROUTER_FILTER,
                                        "typed_config": {"@type": ROUTER_FILTER_TYPE},
                                    }
                                ],
                            },
                        }
                    ]
                }
            ],
        }

    def _cluster(self, port: Port) -> Dict[str, Any]:
        name = self.cluster_name(port)
        return {
            "name": name,
            "connect_timeout": "1s",
            "type": "STATIC",
            "metadata": self._metadata(port),
            "load_assignment": {
                "cluster_name": name,
                "endpoints": [
                    {
                        "lb_endpoints": [
                            {"endpoint": {"address": _socket_address(port.service_port)}}
                        ]
                    }
                ],
            },
        }


def _socket_address(port: int) -> Dict[str, Any]:
    return {"socket_address": {"address": LOOPBACK, "port_value": port}}


def _missing_dirs(path: Path) -> List[Path]:
    """Directories from the first missing ancestor down to ``path``."""
    missing: List[Path] = []
    current = Path(path)
    while not current.exists() and current != current.parent:
        missing.append(current)
        current = current.parent
    return list(reversed(missing))
