"""Logger factory for creating isolated logging environments."""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

from .log_formatters import LogContext, ProxyAgentRichHandler, StructuredFormatter


class LoggerFactory(Protocol):
    """Protocol for logger factories to enable dependency injection."""

    def create_logger(self, name: str) -> logging.Logger:
        """Create a logger instance."""

    def shutdown(self) -> None:
        """Shutdown the logging system."""


class IsolatedLogManager:
    """Non-singleton log manager for isolated logging environments."""

    def __init__(self, namespace: str = "", context: Optional[LogContext] = None) -> None:
        """Initialize isolated log manager.

        Args:
            namespace: Namespace prefix for logger names to ensure isolation
            context: Shared context store (a private one is created if None)
        """
        self._namespace = namespace
        self._configured = False
        self._handlers: List[logging.Handler] = []
        self._loggers: Dict[str, logging.Logger] = {}
        self._context = context or LogContext()
        self._lock = threading.RLock()

    @property
    def is_configured(self) -> bool:
        return self._configured

    def configure(
        self,
        level: Union[int, str] = logging.INFO,
        log_file: Optional[Path] = None,
        enable_json: bool = True,
        enable_console: bool = True,
        console_level: Optional[Union[int, str]] = None,
    ) -> None:
        """Configure this logging instance. Reconfiguring replaces all handlers."""
        with self._lock:
            if self._configured:
                self._clear_handlers()

            if enable_json and log_file:
                log_file = Path(log_file)
                log_file.parent.mkdir(parents=True, exist_ok=True)
                json_handler = logging.FileHandler(log_file)
                json_handler.setFormatter(
                    StructuredFormatter(
                        include_context=True, context_getter=self._context.get_context
                    )
                )
                json_handler.setLevel(level)
                self._handlers.append(json_handler)

            if enable_console:
                console_handler = ProxyAgentRichHandler(
                    show_time=True, show_path=False, markup=True
                )
                console_handler.setLevel(console_level or level)
                self._handlers.append(console_handler)

            for logger in self._loggers.values():
                for handler in self._handlers:
                    logger.addHandler(handler)

            self._configured = True

    def add_handler(self, handler: logging.Handler) -> None:
        """Attach an extra handler to every current and future logger."""
        with self._lock:
            self._handlers.append(handler)
            for logger in self._loggers.values():
                logger.addHandler(handler)

    def create_logger(self, name: str) -> logging.Logger:
        """Create a logger instance with namespace isolation."""
        with self._lock:
            full_name = f"{self._namespace}.{name}" if self._namespace else name

            if full_name in self._loggers:
                return self._loggers[full_name]

            logger = logging.getLogger(full_name)
            # Keep records away from the root logger and pytest's capture handlers
            logger.propagate = False
            logger.setLevel(logging.DEBUG)
            for handler in self._handlers:
                logger.addHandler(handler)

            self._loggers[full_name] = logger
            return logger

    def get_context(self) -> Dict[str, Any]:
        """Get current logging context for this instance."""
        return self._context.get_context()

    def set_context(self, **kwargs: Any) -> None:
        """Set logging context for this instance."""
        self._context.set_context(**kwargs)

    def clear_context(self) -> None:
        """Clear logging context for this instance."""
        self._context.clear_context()

    @contextmanager
    def context(self, **kwargs: Any):
        """Context manager for temporary context variables."""
        with self._context.context(**kwargs):
            yield

    def shutdown(self) -> None:
        """Shutdown this logging instance."""
        with self._lock:
            self._clear_handlers()
            self._loggers.clear()
            self._context.clear_context()

    def _clear_handlers(self) -> None:
        for logger in self._loggers.values():
            for handler in self._handlers:
                logger.removeHandler(handler)
        for handler in self._handlers:
            try:
                handler.close()
            except (OSError, RuntimeError):
                pass  # Ignore handler close errors
        self._handlers = []
        self._configured = False


class StandardLoggerFactory:
    """Standard implementation of LoggerFactory using IsolatedLogManager."""

    def __init__(
        self,
        namespace: Optional[str] = None,
        level: Union[int, str] = logging.INFO,
        log_file: Optional[Path] = None,
        enable_json: bool = True,
        enable_console: bool = True,
        console_level: Optional[Union[int, str]] = None,
    ) -> None:
        self._manager = IsolatedLogManager(namespace or "")
        self._manager.configure(
            level=level,
            log_file=log_file,
            enable_json=enable_json,
            enable_console=enable_console,
            console_level=console_level,
        )

    def create_logger(self, name: str) -> logging.Logger:
        """Create a logger instance."""
        return self._manager.create_logger(name)

    def shutdown(self) -> None:
        """Shutdown the logging system."""
        self._manager.shutdown()

    @contextmanager
    def context(self, **kwargs: Any):
        """Context manager for temporary context variables."""
        with self._manager.context(**kwargs):
            yield
