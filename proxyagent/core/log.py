"""Structured logging system with JSON output and rich terminal formatting."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

from .log_formatters import StructuredFormatter, _log_context
from .logger_factory import IsolatedLogManager


class Logger(Protocol):
    """Protocol for logger instances to enable dependency injection."""

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log debug message."""

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log info message."""

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log warning message."""

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log error message."""

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log exception with traceback."""


class LogManager:
    """Central logging configuration on top of an IsolatedLogManager."""

    def __init__(self) -> None:
        self._manager = IsolatedLogManager(context=_log_context)
        self._configured = False

    def configure(
        self,
        level: Union[int, str] = logging.INFO,
        log_file: Optional[Path] = None,
        enable_json: bool = True,
        enable_console: bool = True,
        console_level: Optional[Union[int, str]] = None,
    ) -> None:
        """Configure logging system. Only the first call takes effect."""
        if self._configured:
            return
        self._manager.configure(
            level=level,
            log_file=log_file,
            enable_json=enable_json,
            enable_console=enable_console,
            console_level=console_level,
        )
        self._configured = True

    def add_file_logging(
        self, log_file: Path, level: Union[int, str] = logging.DEBUG
    ) -> None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            StructuredFormatter(
                include_context=True, context_getter=self._manager.get_context
            )
        )
        file_handler.setLevel(level)
        self._manager.add_handler(file_handler)

    def get_logger(self, name: str) -> logging.Logger:
        """Get a logger instance."""
        return self._manager.create_logger(name)

    def shutdown(self) -> None:
        """Shutdown logging system."""
        self._manager.shutdown()
        self._configured = False

    def reset_configuration(self) -> None:
        """Reset configuration to allow reconfiguration.

        Loggers handed out earlier stay valid; they lose their handlers until
        the next configure() call.
        """
        self._configured = False
        self._manager.configure(enable_json=False, enable_console=False)


# Global log manager instance
_log_manager = LogManager()


def configure_logging(**kwargs: Any) -> None:
    """Configure the global logging system."""
    _log_manager.configure(**kwargs)


def add_file_logging(log_file: Path, level: Union[int, str] = logging.DEBUG) -> None:
    """Add JSON file logging to an already-configured logging system."""
    _log_manager.add_file_logging(log_file, level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return _log_manager.get_logger(name)


def shutdown_logging() -> None:
    """Shutdown the logging system."""
    _log_manager.shutdown()


def reset_logging() -> None:
    """Reset logging configuration to allow reconfiguration."""
    _log_manager.reset_configuration()


def log_event(logger: Logger, event_type: str, message: str, **kwargs: Any) -> None:
    """Log a structured event with context."""
    logger.info(message, extra={"event_type": event_type, **kwargs})


def log_process_event(
    logger: Logger, event: str, pid: Optional[int] = None, **kwargs: Any
) -> None:
    """Log a process-related event."""
    extra: Dict[str, Any] = {"event_type": "process", "process_event": event}
    if pid is not None:
        extra["pid"] = pid
    extra.update(kwargs)
    logger.info("Process %s %s", kwargs.get("process_id", pid), event, extra=extra)


def log_agent_event(
    logger: Logger,
    event: str,
    service_name: Optional[str] = None,
    component: str = "agent",
    **kwargs: Any,
) -> None:
    """Log an agent lifecycle event.

    ``component`` is one of ``agent``, ``backend`` or ``proxy`` and selects the
    console style.
    """
    extra: Dict[str, Any] = {"event_type": component, "agent_event": event}
    if service_name:
        extra["service_name"] = service_name
    extra.update(kwargs)
    logger.info("%s %s %s", component.capitalize(), service_name or "-", event, extra=extra)


def set_log_context(**kwargs: Any) -> None:
    """Set logging context for current thread."""
    _log_context.set_context(**kwargs)


def get_log_context() -> Dict[str, Any]:
    """Get current logging context."""
    return _log_context.get_context()


def clear_log_context() -> None:
    """Clear current logging context."""
    _log_context.clear_context()


def log_context(**kwargs: Any) -> Any:
    """Context manager for temporary logging context."""
    return _log_context.context(**kwargs)
