"""Tests for process supervision with a mocked subprocess layer."""

import signal
import subprocess
from unittest.mock import Mock, patch

import psutil
import pytest

from proxyagent.core.errors import (
    ProcessError,
    ProcessStartupError,
    ProcessTimeoutError,
)
from proxyagent.core.process import ProcessSupervisor, get_child_pids, kill_process_tree


def make_process(pid=4242):
    process = Mock()
    process.pid = pid
    process.poll.return_value = None
    process.wait.return_value = 0
    process.stdout = None
    return process


@pytest.fixture
def supervisor():
    return ProcessSupervisor(poll_interval=0.01)


@pytest.fixture
def popen():
    with patch("proxyagent.core.process.subprocess.Popen") as mock_popen:
        mock_popen.return_value = make_process()
        yield mock_popen


@pytest.fixture
def killpg():
    with patch("proxyagent.core.process.os.killpg") as mock_killpg:
        yield mock_killpg


class TestProcessStart:
    """Test ProcessSupervisor.start."""

    def test_start_tracks_process(self, supervisor, popen, temp_dir):
        info = supervisor.start(
            "envoy-1", ["envoy", "--version"], cwd=temp_dir, inherit_console=True
        )

        assert info.pid == 4242
        assert info.command == ["envoy", "--version"]
        assert info.working_dir == temp_dir
        assert supervisor.list_processes() == ["envoy-1"]
        assert supervisor.is_running("envoy-1")
        assert popen.call_args.kwargs["start_new_session"] is True

    def test_captured_output_uses_pipe(self, supervisor, popen):
        supervisor.start("envoy-1", ["envoy"])
        kwargs = popen.call_args.kwargs
        assert kwargs["stdout"] is subprocess.PIPE
        assert kwargs["stderr"] is subprocess.STDOUT

    def test_duplicate_process_id(self, supervisor, popen):
        supervisor.start("envoy-1", ["envoy"], inherit_console=True)
        with pytest.raises(ProcessStartupError, match="already running"):
            supervisor.start("envoy-1", ["envoy"], inherit_console=True)

    def test_spawn_failure(self, supervisor, popen):
        popen.side_effect = FileNotFoundError("no such file: envoy")
        with pytest.raises(ProcessStartupError) as exc_info:
            supervisor.start("envoy-1", ["envoy"], inherit_console=True)
        assert isinstance(exc_info.value.__cause__, FileNotFoundError)
        assert supervisor.list_processes() == []

    def test_readiness_success(self, supervisor, popen):
        checks = iter([False, False, True])
        supervisor.start(
            "envoy-1", ["envoy"], inherit_console=True,
            readiness_check=lambda: next(checks), startup_timeout=5.0,
        )
        assert supervisor.is_running("envoy-1")

    def test_readiness_timeout_kills_process(self, supervisor, popen, killpg):
        with pytest.raises(ProcessTimeoutError):
            supervisor.start(
                "envoy-1", ["envoy"], inherit_console=True,
                readiness_check=lambda: False, startup_timeout=0.05,
            )
        killpg.assert_called_with(4242, signal.SIGKILL)
        assert supervisor.list_processes() == []

    def test_exit_during_startup(self, supervisor, popen, killpg):
        popen.return_value.poll.return_value = 1
        with pytest.raises(ProcessStartupError, match="died during startup"):
            supervisor.start(
                "envoy-1", ["envoy"], inherit_console=True,
                readiness_check=lambda: True, startup_timeout=5.0,
            )
        assert supervisor.list_processes() == []


class TestProcessStop:
    """Test ProcessSupervisor.stop escalation."""

    def test_stop_unknown_process_is_noop(self, supervisor):
        supervisor.stop("missing")

    def test_graceful_stop(self, supervisor, popen, killpg):
        process = popen.return_value
        supervisor.start("envoy-1", ["envoy"], inherit_console=True)
        process.poll.return_value = 0

        supervisor.stop("envoy-1", timeout=1.0)

        killpg.assert_called_once_with(4242, signal.SIGTERM)
        assert supervisor.list_processes() == []

    def test_escalates_to_sigkill(self, supervisor, popen, killpg):
        process = popen.return_value
        process.wait.side_effect = [subprocess.TimeoutExpired("envoy", 1.0), 0]
        supervisor.start("envoy-1", ["envoy"], inherit_console=True)
        process.poll.return_value = -9

        supervisor.stop("envoy-1", timeout=1.0, force_kill_timeout=1.0)

        assert [c.args[1] for c in killpg.call_args_list] == [
            signal.SIGTERM,
            signal.SIGKILL,
        ]
        assert supervisor.list_processes() == []

    def test_survivor_raises_and_stays_tracked(self, supervisor, popen, killpg):
        process = popen.return_value
        process.wait.side_effect = subprocess.TimeoutExpired("envoy", 1.0)
        supervisor.start("envoy-1", ["envoy"], inherit_console=True)

        with patch(
            "proxyagent.core.process.kill_process_tree", return_value=False
        ) as tree_kill:
            with pytest.raises(ProcessError, match="could not be terminated"):
                supervisor.stop("envoy-1", timeout=0.1, force_kill_timeout=0.1)

        tree_kill.assert_called_once_with(4242, signal.SIGKILL, timeout=0.1)
        assert supervisor.list_processes() == ["envoy-1"]

    def test_stop_all_logs_failures(self, supervisor, popen, killpg):
        supervisor.start("envoy-1", ["envoy"], inherit_console=True)
        with patch.object(
            supervisor, "stop", side_effect=ProcessError("stuck")
        ) as stop:
            supervisor.stop_all(graceful=False)
        stop.assert_called_once_with("envoy-1", graceful=False, timeout=10.0)


class TestCrashState:
    """Test crash recording."""

    def test_non_zero_exit_recorded(self, supervisor, popen):
        process = popen.return_value
        supervisor.start("envoy-1", ["envoy"], inherit_console=True)

        supervisor._handle_process_exit("envoy-1", process, -11)

        crash = supervisor.get_crash_state("envoy-1")["envoy-1"]
        assert crash.exit_code == -11
        assert crash.signal == 11
        supervisor.clear_crash_state("envoy-1")
        assert supervisor.get_crash_state() == {}

    def test_clean_exit_not_recorded(self, supervisor, popen):
        process = popen.return_value
        supervisor.start("envoy-1", ["envoy"], inherit_console=True)
        supervisor._handle_process_exit("envoy-1", process, 0)
        assert supervisor.get_crash_state() == {}


class TestProcessTree:
    """Test psutil based helpers."""

    def test_get_child_pids(self):
        child = Mock(pid=11)
        with patch("proxyagent.core.process.psutil.Process") as proc:
            proc.return_value.children.return_value = [child]
            assert get_child_pids(10) == [11]

    def test_get_child_pids_missing_process(self):
        with patch(
            "proxyagent.core.process.psutil.Process",
            side_effect=psutil.NoSuchProcess(10),
        ):
            assert get_child_pids(10) == []

    def test_kill_process_tree(self):
        with patch("proxyagent.core.process.get_child_pids", return_value=[11]), \
                patch("proxyagent.core.process.psutil.Process") as proc, \
                patch("proxyagent.core.process.psutil.wait_procs") as wait_procs:
            wait_procs.return_value = ([], [])
            assert kill_process_tree(10, signal.SIGKILL, timeout=1.0)
        assert proc.return_value.send_signal.call_count == 2

    def test_kill_process_tree_reports_survivors(self):
        with patch("proxyagent.core.process.get_child_pids", return_value=[]), \
                patch("proxyagent.core.process.psutil.Process") as proc, \
                patch("proxyagent.core.process.psutil.wait_procs") as wait_procs:
            wait_procs.return_value = ([], [proc.return_value])
            assert not kill_process_tree(10)
