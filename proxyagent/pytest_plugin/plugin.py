"""pytest plugin exposing proxy agents as fixtures."""

import logging
from typing import Any, Callable, Iterator, List, Optional

import pytest
from pytest import StashKey
from _pytest.config import Config
from _pytest.nodes import Item

from ..core.config import load_settings
from ..core.context import AgentContext
from ..core.errors import ProxyAgentError, ProxyStartError
from ..core.log import configure_logging, get_logger
from ..core.process import ProcessSupervisor, stop_all_processes
from ..core.types import AgentConfig, HarnessSettings
from ..instances.agent import Agent
from ..instances.command_builder import EnvoyCommandBuilder

logger = get_logger(__name__)

AgentFactory = Callable[..., Agent]


class ProxyAgentPlugin:
    """Session state of the proxy agent plugin."""

    def __init__(self) -> None:
        self.settings: Optional[HarnessSettings] = None
        self.process_supervisor = ProcessSupervisor()
        self.agents: List[Agent] = []

    def pytest_configure(self, config: Config) -> None:
        """Load harness settings and configure logging."""
        self.settings = load_settings(
            envoy_binary=config.getoption("envoy_binary", default=None),
            envoy_log_level=config.getoption("envoy_log_level", default=None),
        )
        if self.settings.log_level != "DEBUG":
            logging.getLogger("asyncio").setLevel(logging.WARNING)
            logging.getLogger("aiohttp").setLevel(logging.WARNING)
        self._register_markers(config)
        configure_logging(
            level=self.settings.log_level, enable_console=True, enable_json=False
        )
        logger.debug("proxyagent pytest plugin configured")

    def _register_markers(self, config: Config) -> None:
        config.addinivalue_line(
            "markers", "requires_envoy: skip unless an Envoy binary is available"
        )

    def pytest_unconfigure(self, _config: Config) -> None:
        """Stop agents and processes a test run left behind."""
        for agent in list(self.agents):
            try:
                agent.stop()
            except ProxyAgentError as e:
                logger.error("Error during plugin cleanup of agent %r: %s", agent, e)
        self.agents.clear()

        leftover = self.process_supervisor.list_processes()
        if leftover:
            logger.warning("Emergency cleanup of %d processes: %s", len(leftover), leftover)
            self.process_supervisor.stop_all(graceful=False)
        stop_all_processes(graceful=False)
        logger.debug("proxyagent pytest plugin unconfigured")

    def envoy_available(self) -> bool:
        builder = EnvoyCommandBuilder(self.settings or HarnessSettings(), logger)
        try:
            builder.resolve_binary()
        except ProxyStartError:
            return False
        return True


plugin_key = StashKey[ProxyAgentPlugin]()


def pytest_addoption(parser: Any) -> None:
    """Add custom command line options."""
    group = parser.getgroup("proxyagent")
    group.addoption(
        "--envoy-binary",
        action="store",
        default=None,
        help="Envoy executable used by proxy agents (name on PATH or path)",
    )
    group.addoption(
        "--envoy-log-level",
        action="store",
        default=None,
        choices=["trace", "debug", "info", "warning", "error", "critical", "off"],
        help="log level passed to Envoy",
    )


def pytest_configure(config: Config) -> None:
    """Plugin entry point - create and store plugin in stash."""
    plugin = ProxyAgentPlugin()
    config.stash[plugin_key] = plugin
    plugin.pytest_configure(config)


def pytest_unconfigure(config: Config) -> None:
    """Plugin cleanup entry point."""
    plugin = config.stash.get(plugin_key, None)
    if plugin is not None:
        plugin.pytest_unconfigure(config)


def pytest_runtest_setup(item: Item) -> None:
    """Skip tests marked requires_envoy when no Envoy binary can be found."""
    if item.get_closest_marker("requires_envoy") is None:
        return
    plugin = item.config.stash[plugin_key]
    if not plugin.envoy_available():
        pytest.skip("Envoy binary not available")


@pytest.fixture(scope="session")
def harness_settings(pytestconfig: Config) -> HarnessSettings:
    """Harness settings loaded at configure time."""
    settings = pytestconfig.stash[plugin_key].settings
    assert settings is not None
    return settings


@pytest.fixture(scope="session")
def agent_context(pytestconfig: Config, harness_settings: HarnessSettings) -> AgentContext:
    """Shared context whose processes the plugin can clean up."""
    plugin = pytestconfig.stash[plugin_key]
    return AgentContext.create(
        harness_settings, process_supervisor=plugin.process_supervisor
    )


@pytest.fixture
def proxy_agent_factory(
    pytestconfig: Config, agent_context: AgentContext, tmp_path: Any
) -> Iterator[AgentFactory]:
    """Create and start agents; every agent is stopped at teardown.

    Usage:
        agent = proxy_agent_factory(ports=[PortConfig(name="http")])
    """
    plugin = pytestconfig.stash[plugin_key]
    created: List[Agent] = []

    def factory(config: Optional[AgentConfig] = None, **kwargs: Any) -> Agent:
        if config is None:
            kwargs.setdefault("temp_dir", tmp_path / "proxyagent")
            config = AgentConfig(**kwargs)
        agent = Agent(config, agent_context)
        created.append(agent)
        plugin.agents.append(agent)
        agent.start()
        return agent

    yield factory

    failures = []
    for agent in reversed(created):
        try:
            agent.stop()
        except ProxyAgentError as e:
            failures.append(f"{agent!r}: {e}")
        else:
            plugin.agents.remove(agent)
    if failures:
        pytest.fail("Agents leaked resources:\n" + "\n".join(failures), pytrace=False)
