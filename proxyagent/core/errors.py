"""Error hierarchy and exception system for the proxy agent harness."""

from typing import Any, Dict, Iterable, List, Optional


class ProxyAgentError(Exception):
    """Base exception for all proxy agent errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# Configuration Errors
class ConfigurationError(ProxyAgentError):
    """Error in harness or agent configuration."""


class UnsupportedProtocolError(ConfigurationError):
    """A declared port uses a protocol the harness cannot proxy."""

    def __init__(self, message: str, protocol: Any,
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.protocol = protocol


class AgentStateError(ProxyAgentError):
    """Operation not valid in the agent's current lifecycle state."""


# Network Errors
class NetworkError(ProxyAgentError):
    """Network-related error."""


class PortAllocationError(NetworkError):
    """No free loopback port could be obtained."""


# Process Errors
class ProcessError(ProxyAgentError):
    """Base class for process-related errors."""


class ProcessStartupError(ProcessError):
    """Error during process startup."""


class ProcessTimeoutError(ProcessError):
    """Process operation timed out."""

    def __init__(self, message: str, timeout: float,
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.timeout = timeout


# Backend Errors
class BackendError(ProxyAgentError):
    """Base class for backend service errors."""


class BackendStartError(BackendError):
    """Backend service failed to start."""


class BackendStopError(BackendError):
    """Backend service failed to stop."""


# Proxy Errors
class ProxyError(ProxyAgentError):
    """Base class for proxy process errors."""


class ProxyStartError(ProxyError):
    """Proxy process failed to start."""


class ProxyStopError(ProxyError):
    """Proxy process termination could not be confirmed."""


class ConfigGenerationError(ProxyAgentError):
    """Proxy configuration could not be generated or written."""


# Filesystem and IO Errors
class FilesystemError(ProxyAgentError):
    """Filesystem operation error."""


class PathError(FilesystemError):
    """Path resolution or validation error."""


class AtomicWriteError(FilesystemError):
    """Atomic write operation failed."""


# Teardown Errors
class TeardownError(ProxyAgentError):
    """One or more components failed to shut down.

    Holds every underlying failure in the order it happened, so a caller sees
    the complete picture of what was left behind.
    """

    def __init__(self, errors: Iterable[BaseException],
                 details: Optional[Dict[str, Any]] = None) -> None:
        self.errors: List[BaseException] = list(errors)
        summary = "; ".join(
            f"{type(error).__name__}: {error}" for error in self.errors
        )
        super().__init__(
            f"{len(self.errors)} teardown error(s): {summary}", details
        )

    @property
    def has_errors(self) -> bool:
        """Whether any component failed."""
        return bool(self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    def __iter__(self):
        return iter(self.errors)


def combine_errors(
    errors: Iterable[Optional[BaseException]],
) -> Optional[TeardownError]:
    """Combine independent failures into one TeardownError.

    ``None`` entries are skipped and nested TeardownErrors are flattened.
    Returns ``None`` when nothing failed.
    """
    collected: List[BaseException] = []
    for error in errors:
        if error is None:
            continue
        if isinstance(error, TeardownError):
            collected.extend(error.errors)
        else:
            collected.append(error)
    if not collected:
        return None
    return TeardownError(collected)
