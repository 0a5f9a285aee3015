"""Agent run CLI command."""

import threading
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import BaseModel, ConfigDict, Field, field_validator
from rich.console import Console
from rich.table import Table

from ...core.config import load_settings
from ...core.context import AgentContext
from ...core.enums import PortProtocol
from ...core.errors import ProxyAgentError
from ...core.log import get_logger
from ...core.types import AgentConfig, PortConfig
from ...instances.agent import Agent

_HELP = {
    "service_name": "Name of the proxied service",
    "port": "Declared backend port as NAME[:PROTOCOL], repeatable",
    "version": "Version string reported by the echo backend",
    "temp_dir": "Directory for generated Envoy configuration",
    "tls_cert": "TLS certificate for the echo backend",
    "tls_key": "TLS private key for the echo backend",
    "envoy_binary": "Envoy executable (name on PATH or path)",
    "duration": "Stop after N seconds instead of waiting for Ctrl-C",
}


def parse_port_spec(spec: str) -> PortConfig:
    """Parse ``name[:PROTOCOL]`` into a PortConfig (protocol defaults to HTTP)."""
    name, _, protocol = spec.partition(":")
    if not protocol:
        return PortConfig(name=name)
    for candidate in PortProtocol:
        if protocol.upper() in (candidate.name, candidate.value.upper()):
            return PortConfig(name=name, protocol=candidate)
    raise ValueError(f"Unknown protocol '{protocol}' in port '{spec}'")


class RunOptions(BaseModel):
    """Pydantic model for run command options."""

    service_name: str = Field("", description=_HELP["service_name"])
    ports: List[str] = Field(default_factory=list, description=_HELP["port"])
    version: str = Field("", description=_HELP["version"])
    temp_dir: Optional[Path] = Field(None, description=_HELP["temp_dir"])
    tls_cert: Optional[Path] = Field(None, description=_HELP["tls_cert"])
    tls_key: Optional[Path] = Field(None, description=_HELP["tls_key"])
    envoy_binary: Optional[str] = Field(None, description=_HELP["envoy_binary"])
    duration: Optional[float] = Field(None, description=_HELP["duration"])

    model_config = ConfigDict(extra="forbid")

    @field_validator("ports")
    @classmethod
    def validate_ports(cls, v):
        """Validate every port spec parses."""
        for spec in v:
            parse_port_spec(spec)
        return v

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, v):
        if v is not None and v < 0:
            raise ValueError("duration must not be negative")
        return v

    def to_agent_config(self) -> AgentConfig:
        data = {
            "service_name": self.service_name,
            "ports": [parse_port_spec(spec) for spec in self.ports],
            "version": self.version,
            "tls_cert_path": self.tls_cert,
            "tls_key_path": self.tls_key,
        }
        if self.temp_dir is not None:
            data["temp_dir"] = self.temp_dir
        return AgentConfig(**data)


console = Console()
logger = get_logger(__name__)


def print_mappings(agent: Agent) -> None:
    table = Table(title=f"Agent {agent.config.service_name or '-'}")
    table.add_column("Port", style="cyan")
    table.add_column("Protocol", style="magenta")
    table.add_column("Proxy", style="green")
    table.add_column("Service", style="green")
    for port in agent.get_ports():
        table.add_row(
            port.config.name,
            port.config.protocol.value,
            str(port.proxy_port),
            str(port.service_port),
        )
    console.print(table)
    console.print(f"Envoy admin port: [bold]{agent.get_envoy_admin_port()}[/bold]")


def run(
    ctx: typer.Context,
    service_name: str = typer.Option("", "--service-name", "-s", help=_HELP["service_name"]),
    port: List[str] = typer.Option([], "--port", "-p", help=_HELP["port"]),
    version: str = typer.Option("", "--version", help=_HELP["version"]),
    temp_dir: Optional[Path] = typer.Option(None, "--temp-dir", help=_HELP["temp_dir"]),
    tls_cert: Optional[Path] = typer.Option(None, "--tls-cert", help=_HELP["tls_cert"]),
    tls_key: Optional[Path] = typer.Option(None, "--tls-key", help=_HELP["tls_key"]),
    envoy_binary: Optional[str] = typer.Option(
        None, "--envoy-binary", help=_HELP["envoy_binary"]
    ),
    duration: Optional[float] = typer.Option(None, "--duration", help=_HELP["duration"]),
) -> None:
    """Start an echo backend behind Envoy and keep it up until interrupted."""
    try:
        options = RunOptions(
            service_name=service_name,
            ports=port,
            version=version,
            temp_dir=temp_dir,
            tls_cert=tls_cert,
            tls_key=tls_key,
            envoy_binary=envoy_binary,
            duration=duration,
        )
        agent_config = options.to_agent_config()
    except ValueError as e:
        console.print(f"[red]Invalid options: {e}[/red]")
        raise typer.Exit(2)

    cli_options = (ctx.obj or {}).get("cli_options")
    try:
        settings = load_settings(
            config_file=cli_options.config_file if cli_options else None,
            log_level=cli_options.log_level if cli_options else None,
            envoy_binary=options.envoy_binary,
        )
    except ProxyAgentError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)

    agent = Agent(agent_config, AgentContext.create(settings))
    try:
        agent.start()
    except ProxyAgentError as e:
        logger.error("Agent failed to start: %s", e)
        console.print(f"[red]Failed to start agent: {e}[/red]")
        _stop(agent)
        raise typer.Exit(1)

    print_mappings(agent)
    if options.duration is None:
        console.print("[dim]Press Ctrl-C to stop[/dim]")

    try:
        threading.Event().wait(options.duration)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping agent[/yellow]")

    if not _stop(agent):
        raise typer.Exit(1)
    console.print("[green]Agent stopped[/green]")


def _stop(agent: Agent) -> bool:
    try:
        agent.stop()
    except ProxyAgentError as e:
        logger.error("Agent teardown failed: %s", e)
        console.print(f"[red]Teardown failed: {e}[/red]")
        return False
    return True
