"""Envoy proxy process wrapper with lifecycle management."""

import random
from typing import Optional

from ..core.errors import ProcessError, ProxyStartError, ProxyStopError
from ..core.log import Logger, get_logger, log_agent_event
from ..core.process import ProcessSupervisor, get_process_supervisor
from ..core.protocols import ConfigArtifact
from ..core.types import CrashInfo, HarnessSettings
from .command_builder import CommandBuilder, EnvoyCommandBuilder
from .health_checker import EnvoyHealthChecker, HealthChecker

_module_logger = get_logger(__name__)

# Envoy multiplies the base id internally; stay well inside a uint32
MAX_BASE_ID = 2**16


class EnvoyProcess:
    """A single Envoy process started from a generated configuration."""

    def __init__(
        self,
        settings: Optional[HarnessSettings] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        health_checker: Optional[HealthChecker] = None,
        command_builder: Optional[CommandBuilder] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._settings = settings or HarnessSettings()
        self._logger = logger or _module_logger
        self._supervisor = supervisor or get_process_supervisor()
        self._health_checker = health_checker or EnvoyHealthChecker(
            self._logger, self._settings.timeouts
        )
        self._command_builder = command_builder or EnvoyCommandBuilder(
            self._settings, self._logger
        )
        self._process_id: Optional[str] = None
        self._base_id: Optional[int] = None
        self._admin_endpoint: Optional[str] = None

    @property
    def process_id(self) -> Optional[str]:
        return self._process_id

    @property
    def base_id(self) -> Optional[int]:
        return self._base_id

    @property
    def admin_endpoint(self) -> Optional[str]:
        return self._admin_endpoint

    def is_running(self) -> bool:
        return self._process_id is not None and self._supervisor.is_running(
            self._process_id
        )

    @property
    def crash_info(self) -> Optional[CrashInfo]:
        """Exit details if Envoy died on its own while supervised."""
        if self._process_id is None:
            return None
        return self._supervisor.get_crash_state(self._process_id).get(self._process_id)

    def start(self, config: ConfigArtifact) -> None:
        """Launch Envoy with ``config`` and wait for its admin endpoint to report ready."""
        if self._process_id is not None:
            raise ProxyStartError(f"Envoy {self._process_id} is already running")

        base_id = self._settings.envoy_base_id
        if base_id is None:
            base_id = random.randint(1, MAX_BASE_ID)
        command = self._command_builder.build_command(config, base_id)

        process_id = f"envoy-{config.service_name or 'proxy'}-{base_id}"
        admin_endpoint = f"http://127.0.0.1:{config.admin_port}"

        readiness_check = None
        if self._settings.wait_for_proxy_ready:
            readiness_check = lambda: self._health_checker.check_readiness(admin_endpoint)

        try:
            info = self._supervisor.start(
                process_id,
                command,
                cwd=config.config_file.parent,
                startup_timeout=self._settings.timeouts.proxy_startup,
                readiness_check=readiness_check,
                inherit_console=self._settings.inherit_console,
            )
        except ProcessError as e:
            raise ProxyStartError(
                f"Envoy failed to start for {config.service_name or 'proxy'}: {e}",
                details={"config_file": str(config.config_file), "base_id": base_id},
            ) from e

        self._process_id = process_id
        self._base_id = base_id
        self._admin_endpoint = admin_endpoint
        log_agent_event(
            self._logger, "started", config.service_name, component="proxy",
            pid=info.pid, admin_port=config.admin_port, base_id=base_id,
        )

    def stop(self) -> None:
        """Terminate Envoy. A no-op when it is not running.

        A crash recorded while Envoy was supervised is logged and cleared.
        """
        if self._process_id is None:
            return
        crash = self.crash_info
        timeouts = self._settings.timeouts
        try:
            self._supervisor.stop(
                self._process_id,
                timeout=timeouts.proxy_shutdown,
                force_kill_timeout=timeouts.process_force_kill,
            )
        except ProcessError as e:
            raise ProxyStopError(
                f"Could not confirm Envoy {self._process_id} terminated: {e}",
                details={"process_id": self._process_id},
            ) from e
        if crash is not None:
            self._logger.warning(
                "Envoy %s had exited unexpectedly with code %s",
                self._process_id,
                crash.exit_code,
            )
            self._supervisor.clear_crash_state(self._process_id)
        log_agent_event(
            self._logger, "stopped", component="proxy", process_id=self._process_id
        )
        self._process_id = None
        self._admin_endpoint = None
