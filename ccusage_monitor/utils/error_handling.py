"""Error types and user-facing error formatting for ccusage-monitor."""

from typing import Optional


class UsageMonitorError(Exception):
    """Base class for ccusage-monitor errors."""


class ConfigurationError(UsageMonitorError):
    """Raised when a configuration or limits file cannot be used."""


class IndexAllocationError(UsageMonitorError):
    """Fatal: the in-memory usage index could not be allocated or grown.

    Every other failure in the pipeline degrades to a partial snapshot;
    this one means no snapshot can be produced at all.
    """

    fatal = True


class RefreshTimeoutError(UsageMonitorError):
    """Raised when a refresh pass did not complete within the caller's timeout."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        message = "Usage refresh did not complete"
        if timeout is not None:
            message += f" within {timeout:.1f}s"
        super().__init__(message)


def create_user_friendly_error(error: BaseException) -> str:
    """Convert an exception into a short message suitable for the terminal.

    Args:
        error: Exception raised while running a command

    Returns:
        Human readable message
    """
    if isinstance(error, IndexAllocationError):
        return f"Fatal: could not allocate usage index ({error})"
    if isinstance(error, ConfigurationError):
        return f"Configuration problem: {error}"
    if isinstance(error, RefreshTimeoutError):
        return str(error)
    if isinstance(error, FileNotFoundError):
        return f"File not found: {error.filename or error}"
    if isinstance(error, PermissionError):
        return f"Permission denied: {error.filename or error}"
    if isinstance(error, UsageMonitorError):
        return str(error)
    return f"{type(error).__name__}: {error}"
