"""Main CLI entry point for the proxy agent harness."""

import sys
from pathlib import Path
from typing import Optional

import typer
from pydantic import BaseModel, ConfigDict, Field
from rich.console import Console
from rich.table import Table

from ..core.errors import ProxyAgentError
from ..core.log import configure_logging, get_logger
from .commands.run import run


class GlobalCliOptions(BaseModel):
    """Global CLI options that can be used across all commands."""

    verbose: int = Field(0, description="Increase verbosity level")
    config_file: Optional[Path] = Field(None, description="Configuration file path")
    log_level: str = Field(
        "INFO", description="Harness logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    model_config = ConfigDict(use_enum_values=True)


app = typer.Typer(
    name="proxyagent",
    help="Run a local echo service behind Envoy",
    no_args_is_help=True,
    rich_markup_mode="markdown",
)
app.command(help="Start an agent and keep it running")(run)
console = Console()
logger = get_logger(__name__)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0, "--verbose", "-v", count=True, help="Increase verbosity level"
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Harness logging level (DEBUG, INFO, WARNING, ERROR) - explicit level",
    ),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Configuration file path"
    ),
) -> None:
    """proxyagent: local Envoy test harness."""
    if verbose > 0 and log_level is not None:
        console.print("[red]Error: Cannot specify both --verbose and --log-level[/red]")
        raise typer.Exit(1)

    if log_level is None:
        resolved_log_level = (
            "DEBUG" if verbose >= 2 else "INFO" if verbose == 1 else "WARNING"
        )
    else:
        resolved_log_level = log_level.upper()

    cli_options = GlobalCliOptions(
        verbose=verbose,
        config_file=config_file,
        log_level=resolved_log_level,
    )

    ctx.ensure_object(dict)
    ctx.obj["cli_options"] = cli_options

    configure_logging(
        level=cli_options.log_level, enable_console=True, enable_json=False
    )


@app.command()
def version() -> None:
    """Show version information."""
    from .. import __version__

    table = Table(title="proxyagent Version Information")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")
    table.add_row("proxyagent", __version__)
    try:
        import aiohttp

        table.add_row("aiohttp", aiohttp.__version__)
    except ImportError:
        table.add_row("aiohttp", "[red]Not installed[/red]")
    try:
        import pydantic

        table.add_row("pydantic", pydantic.VERSION)
    except ImportError:
        table.add_row("pydantic", "[red]Not installed[/red]")
    console.print(table)


@app.command()
def config(ctx: typer.Context) -> None:
    """Show the effective harness settings."""
    from ..core.config import load_settings

    cli_options = (ctx.obj or {}).get("cli_options")
    try:
        settings = load_settings(
            config_file=cli_options.config_file if cli_options else None
        )
    except ProxyAgentError as e:
        console.print(f"[red]Error getting configuration: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title="proxyagent Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Envoy Binary", settings.envoy_binary)
    table.add_row("Envoy Log Level", settings.envoy_log_level.value)
    table.add_row(
        "Envoy Base Id",
        "random" if settings.envoy_base_id is None else str(settings.envoy_base_id),
    )
    table.add_row("Wait For Proxy Ready", str(settings.wait_for_proxy_ready))
    table.add_row("Listen Host", settings.listen_host)
    table.add_row("Inherit Console", str(settings.inherit_console))
    table.add_row("Log Level", settings.log_level)
    for name, value in settings.timeouts.model_dump().items():
        table.add_row(f"Timeout {name.replace('_', ' ').title()}", f"{value}s")
    console.print(table)


def cli_main() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except (RuntimeError, OSError, ValueError, ImportError) as e:
        logger.error("Unexpected error: %s", e)
        console.print(f"[red]Unexpected error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    cli_main()
