"""Tests for the proxyagent pytest plugin."""

from unittest.mock import Mock, patch

import pytest

from proxyagent.core.errors import ProxyStartError, TeardownError
from proxyagent.pytest_plugin.plugin import ProxyAgentPlugin


class TestProxyAgentPlugin:
    """Test ProxyAgentPlugin state handling."""

    def test_initial_state(self):
        plugin = ProxyAgentPlugin()
        assert plugin.settings is None
        assert plugin.agents == []

    def test_configure_registers_marker(self):
        plugin = ProxyAgentPlugin()
        config = Mock()
        config.getoption.return_value = None

        plugin.pytest_configure(config)

        assert plugin.settings is not None
        markers = [c.args[1] for c in config.addinivalue_line.call_args_list]
        assert any(m.startswith("requires_envoy") for m in markers)

    def test_unconfigure_stops_leftover_agents(self):
        plugin = ProxyAgentPlugin()
        good = Mock()
        bad = Mock()
        bad.stop.side_effect = TeardownError([ProxyStartError("x")])
        plugin.agents.extend([good, bad])

        with patch.object(plugin.process_supervisor, "stop_all") as stop_all, patch(
            "proxyagent.pytest_plugin.plugin.stop_all_processes"
        ) as stop_shared:
            plugin.pytest_unconfigure(Mock())

        good.stop.assert_called_once()
        bad.stop.assert_called_once()
        assert plugin.agents == []
        stop_all.assert_not_called()
        stop_shared.assert_called_once_with(graceful=False)

    def test_unconfigure_kills_leftover_processes(self):
        plugin = ProxyAgentPlugin()
        with patch.object(
            plugin.process_supervisor, "list_processes", return_value=["envoy-x-1"]
        ), patch.object(plugin.process_supervisor, "stop_all") as stop_all, patch(
            "proxyagent.pytest_plugin.plugin.stop_all_processes"
        ):
            plugin.pytest_unconfigure(Mock())
        stop_all.assert_called_once_with(graceful=False)

    def test_envoy_available(self):
        plugin = ProxyAgentPlugin()
        with patch(
            "proxyagent.instances.command_builder.shutil.which", return_value=None
        ):
            assert not plugin.envoy_available()
        with patch(
            "proxyagent.instances.command_builder.shutil.which",
            return_value="/usr/bin/envoy",
        ):
            assert plugin.envoy_available()


FAKE_CONTEXT_CONFTEST = """
import pytest
from proxyagent.core.context import AgentContext
from proxyagent.testing.fakes import FakeProxy


@pytest.fixture(scope="session")
def agent_context(harness_settings):
    return AgentContext.for_testing(
        harness_settings, proxy_factory=lambda: FakeProxy(fail_stop={fail_stop})
    )
"""


class TestPluginFixtures:
    """Run the plugin's fixtures inside a nested pytest session."""

    def test_proxy_agent_factory(self, pytester):
        pytester.makeconftest(FAKE_CONTEXT_CONFTEST.format(fail_stop=False))
        pytester.makepyfile(
            """
            from proxyagent.core.enums import AgentState
            from proxyagent.core.types import PortConfig

            def test_agent(proxy_agent_factory, tmp_path):
                agent = proxy_agent_factory(
                    service_name="echo", ports=[PortConfig(name="http")]
                )
                assert agent.state is AgentState.RUNNING
                assert agent.envoy_config.config_file.exists()
                assert tmp_path in agent.envoy_config.config_file.parents
            """
        )
        result = pytester.runpytest()
        result.assert_outcomes(passed=1)

    def test_leaked_agent_fails_teardown(self, pytester):
        pytester.makeconftest(FAKE_CONTEXT_CONFTEST.format(fail_stop=True))
        pytester.makepyfile(
            """
            from proxyagent.core.types import PortConfig

            def test_agent(proxy_agent_factory):
                proxy_agent_factory(ports=[PortConfig(name="http")])
            """
        )
        result = pytester.runpytest()
        result.assert_outcomes(passed=1, errors=1)
        result.stdout.fnmatch_lines(["*Agents leaked resources*"])

    def test_requires_envoy_skips_without_binary(self, pytester):
        pytester.makepyfile(
            """
            import pytest

            @pytest.mark.requires_envoy
            def test_needs_envoy():
                pass
            """
        )
        result = pytester.runpytest("--envoy-binary", "/nonexistent/envoy")
        result.assert_outcomes(skipped=1)

    def test_options_reach_settings(self, pytester):
        pytester.makepyfile(
            """
            def test_settings(harness_settings):
                assert harness_settings.envoy_binary == "/opt/envoy"
                assert harness_settings.envoy_log_level.value == "debug"
            """
        )
        result = pytester.runpytest(
            "--envoy-binary", "/opt/envoy", "--envoy-log-level", "debug"
        )
        result.assert_outcomes(passed=1)
