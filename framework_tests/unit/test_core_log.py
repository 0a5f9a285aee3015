"""Tests for the module-level logging helpers."""

import json
from unittest.mock import Mock

from proxyagent.core.log import (
    add_file_logging,
    clear_log_context,
    get_log_context,
    get_logger,
    log_agent_event,
    log_context,
    log_event,
    log_process_event,
    reset_logging,
    set_log_context,
)


class TestEventHelpers:
    """Test structured event helpers."""

    def test_log_event(self):
        logger = Mock()
        log_event(logger, "agent", "Agent ready", port=1)
        logger.info.assert_called_once_with(
            "Agent ready", extra={"event_type": "agent", "port": 1}
        )

    def test_log_process_event_uses_process_id(self):
        logger = Mock()
        log_process_event(logger, "supervisor.started", pid=42, process_id="envoy-echo-1")
        args, kwargs = logger.info.call_args
        assert args == ("Process %s %s", "envoy-echo-1", "supervisor.started")
        assert kwargs["extra"] == {
            "event_type": "process",
            "process_event": "supervisor.started",
            "pid": 42,
            "process_id": "envoy-echo-1",
        }

    def test_log_agent_event(self):
        logger = Mock()
        log_agent_event(logger, "started", "echo", component="backend", ports=[1, 2])
        args, kwargs = logger.info.call_args
        assert args == ("%s %s %s", "Backend", "echo", "started")
        assert kwargs["extra"]["event_type"] == "backend"
        assert kwargs["extra"]["service_name"] == "echo"
        assert kwargs["extra"]["ports"] == [1, 2]

    def test_log_agent_event_without_service_name(self):
        logger = Mock()
        log_agent_event(logger, "stopped")
        args, kwargs = logger.info.call_args
        assert args == ("%s %s %s", "Agent", "-", "stopped")
        assert "service_name" not in kwargs["extra"]


class TestLogContextHelpers:
    """Test global log context helpers."""

    def teardown_method(self):
        clear_log_context()

    def test_set_and_clear(self):
        set_log_context(agent="echo")
        assert get_log_context() == {"agent": "echo"}
        clear_log_context()
        assert get_log_context() == {}

    def test_temporary_context(self):
        with log_context(step="start"):
            assert get_log_context() == {"step": "start"}
        assert get_log_context() == {}


class TestFileLogging:
    """Test add_file_logging on the global manager."""

    def test_records_reach_file(self, temp_dir):
        log_file = temp_dir / "harness.jsonl"
        add_file_logging(log_file)
        try:
            logger = get_logger("proxyagent.test_file_logging")
            logger.info("written to file", extra={"event_type": "event"})
            for handler in logger.handlers:
                handler.flush()
        finally:
            reset_logging()

        lines = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert any(line["message"] == "written to file" for line in lines)
