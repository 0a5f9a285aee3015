"""Integration tests for ProcessSupervisor with real child processes."""

import sys

import pytest

from proxyagent.core.errors import ProcessStartupError, ProcessTimeoutError
from proxyagent.core.process import ProcessSupervisor

SLEEPER = [sys.executable, "-c", "import time; time.sleep(60)"]
STUBBORN = [
    sys.executable,
    "-c",
    "import signal, time; signal.signal(signal.SIGTERM, signal.SIG_IGN); time.sleep(60)",
]


@pytest.fixture
def supervisor():
    supervisor = ProcessSupervisor(poll_interval=0.05)
    yield supervisor
    supervisor.stop_all(graceful=False, timeout=2.0)


class TestRealProcesses:
    """Start and stop actual processes."""

    def test_start_and_stop(self, supervisor):
        info = supervisor.start("sleeper", SLEEPER, inherit_console=True)
        assert info.pid > 0
        assert supervisor.is_running("sleeper")

        supervisor.stop("sleeper", timeout=5.0)

        assert not supervisor.is_running("sleeper")
        assert supervisor.list_processes() == []

    def test_sigterm_ignored_escalates(self, supervisor):
        supervisor.start(
            "stubborn", STUBBORN, inherit_console=True,
            readiness_check=lambda: True, startup_timeout=5.0,
        )

        supervisor.stop("stubborn", timeout=0.5, force_kill_timeout=5.0)

        assert supervisor.list_processes() == []

    def test_early_exit_detected(self, supervisor):
        with pytest.raises(ProcessStartupError, match="died during startup"):
            supervisor.start(
                "quitter", [sys.executable, "-c", "raise SystemExit(3)"],
                readiness_check=lambda: False, startup_timeout=10.0,
            )
        assert supervisor.list_processes() == []

    def test_readiness_timeout(self, supervisor):
        with pytest.raises(ProcessTimeoutError):
            supervisor.start(
                "never-ready", SLEEPER, inherit_console=True,
                readiness_check=lambda: False, startup_timeout=0.3,
            )
        assert supervisor.list_processes() == []

    def test_missing_executable(self, supervisor):
        with pytest.raises(ProcessStartupError):
            supervisor.start("missing", ["/nonexistent/envoy"], inherit_console=True)
