"""Envoy command line builder."""

import os
import shutil
from pathlib import Path
from typing import List, Protocol

from ..core.config import ENV_PREFIX
from ..core.errors import ProxyStartError
from ..core.log import Logger
from ..core.protocols import ConfigArtifact
from ..core.types import HarnessSettings

LOG_FORMAT_SUFFIX = "[%Y-%m-%d %T.%e][%t][%l][%n] %v"


class CommandBuilder(Protocol):
    """Protocol for command builders to enable dependency injection."""

    def build_command(self, config: ConfigArtifact, base_id: int) -> List[str]:
        """Build command line arguments for proxy startup."""


class EnvoyCommandBuilder:
    """Builds Envoy command lines from harness settings."""

    def __init__(self, settings: HarnessSettings, logger: Logger) -> None:
        self._settings = settings
        self._logger = logger

    def resolve_binary(self) -> str:
        """Locate the Envoy executable.

        Raises:
            ProxyStartError: if no executable Envoy binary can be found
        """
        configured = self._settings.envoy_binary
        if os.sep in configured:
            path = Path(configured).expanduser()
            if path.is_file() and os.access(path, os.X_OK):
                return str(path)
        else:
            found = shutil.which(configured)
            if found:
                return found
        raise ProxyStartError(
            f"Envoy binary not found: {configured} "
            f"(set {ENV_PREFIX}ENVOY_BINARY or envoy_binary in the config file)",
            details={"envoy_binary": configured},
        )

    def build_command(self, config: ConfigArtifact, base_id: int) -> List[str]:
        """Build the Envoy command line for ``config``.

        ``base_id`` keeps the shared memory regions of concurrently running
        Envoys apart.
        """
        command = [
            self.resolve_binary(),
            "--base-id",
            str(base_id),
            "--config-path",
            str(config.config_file),
            "--log-level",
            self._settings.envoy_log_level.value,
            "--log-format",
            f"[envoy {config.service_name or '-'}]{LOG_FORMAT_SUFFIX}",
        ]
        self._logger.debug("Envoy command: %s", " ".join(command))
        return command
