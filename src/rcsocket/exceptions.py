"""Custom exception hierarchy for the reconnecting socket.

Exception Hierarchy:
    RcSocketError (base)
    ├── ConfigurationError - Invalid configuration or URL
    ├── TransportError - Transport-level failures
    │   └── SendError - Payload could not be written
    └── StateError - Operation not valid in the current connection phase
"""

from typing import Any, Optional


class RcSocketError(Exception):
    """Base exception for all reconnecting socket errors.

    Attributes:
        message: Human-readable error message.
        details: Additional error context and details.

    Example:
        >>> raise RcSocketError("Operation failed", {"url": "ws://localhost"})
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message

    def __repr__(self) -> str:
        """Return detailed string representation."""
        return f"{self.__class__.__name__}({self.message!r}, details={self.details!r})"


class ConfigurationError(RcSocketError):
    """Exception raised for invalid configuration.

    Attributes:
        config_key: The configuration key that is invalid.
        config_value: The invalid value.

    Example:
        >>> raise ConfigurationError(
        ...     "connect_timeout must be positive",
        ...     config_key="connect_timeout",
        ...     config_value=0,
        ... )
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        config_key: Optional[str] = None,
        config_value: Any = None,
    ) -> None:
        details = details or {}
        if config_key:
            details["config_key"] = config_key
        if config_value is not None:
            details["config_value"] = config_value
        super().__init__(message, details)
        self.config_key = config_key
        self.config_value = config_value


class TransportError(RcSocketError):
    """Exception describing a failure reported by a transport.

    Transport errors are never raised into the owner's call stack from
    background tasks; they are wrapped and delivered through the
    ``on_error`` handler.

    Attributes:
        url: The URL of the failing transport.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        url: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        details = details or {}
        if url:
            details["url"] = url
        if cause is not None:
            details["cause"] = f"{type(cause).__name__}: {cause}"
        super().__init__(message, details)
        self.url = url
        self.cause = cause


class SendError(TransportError):
    """Exception raised when a payload cannot be written to the transport."""


class StateError(RcSocketError):
    """Exception raised when an operation is invalid for the current phase.

    Attributes:
        phase: Name of the connection phase at the time of the call.
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        phase: Optional[str] = None,
    ) -> None:
        details = details or {}
        if phase:
            details["phase"] = phase
        super().__init__(message, details)
        self.phase = phase
