"""Core data types and enums for the reconnecting socket.

This module defines the ready-state and lifecycle enums, TLS settings and
the event payloads delivered to the owner of a connection.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Optional

from rcsocket.constants import (
    CLOSE_ABNORMAL,
    EVENT_CLOSE,
    EVENT_CONNECTING,
    EVENT_ERROR,
    EVENT_MESSAGE,
    EVENT_OPEN,
    EVENT_TIMEOUT,
    READY_STATE_CLOSED,
    READY_STATE_CLOSING,
    READY_STATE_CONNECTING,
    READY_STATE_OPEN,
)


class ReadyState(IntEnum):
    """Standard WebSocket ready-state codes."""

    CONNECTING = READY_STATE_CONNECTING
    OPEN = READY_STATE_OPEN
    CLOSING = READY_STATE_CLOSING
    CLOSED = READY_STATE_CLOSED


class ConnectionPhase(Enum):
    """Lifecycle phase of a reconnecting connection."""

    INIT = "init"
    """Constructed, first connect attempt not started yet."""

    CONNECTING = "connecting"
    """A transport exists and is performing its opening handshake."""

    OPEN = "open"
    """The transport is open and payloads are written directly."""

    RECONNECT_WAIT = "reconnect_wait"
    """No transport; waiting for the backoff delay to elapse."""

    CLOSED_FINAL = "closed_final"
    """Terminal. No further connect attempt is ever scheduled."""


class CloseKind(str, Enum):
    """Why a transport was closed."""

    FORCED = "forced"
    RETRY = "retry"
    REFRESH = "refresh"
    TIMEOUT = "timeout"
    UNEXPECTED = "unexpected"


class EventName(str, Enum):
    """Owner-visible event kinds, one handler slot each."""

    CONNECTING = EVENT_CONNECTING
    OPEN = EVENT_OPEN
    MESSAGE = EVENT_MESSAGE
    ERROR = EVENT_ERROR
    CLOSE = EVENT_CLOSE
    TIMEOUT = EVENT_TIMEOUT


@dataclass
class TLSConfig:
    """TLS/SSL configuration for secure connections.

    Attributes:
        enabled: Whether TLS is enabled for wss:// URLs.
        verify_cert: Whether to verify server certificate.
        ca_cert: Path to CA certificate file.
        client_cert: Path to client certificate file.
        client_key: Path to client private key file.
    """

    enabled: bool = True
    verify_cert: bool = True
    ca_cert: Optional[str] = None
    client_cert: Optional[str] = None
    client_key: Optional[str] = None


# =============================================================================
# Event Payloads
# =============================================================================


@dataclass(frozen=True)
class ConnectingEvent:
    """Payload for ``on_connecting``.

    Attributes:
        url: Target address.
        transport_id: Identifier of the transport being opened.
        attempt: Attempt counter at the start of this connect cycle.
    """

    url: str
    transport_id: str
    attempt: int


@dataclass(frozen=True)
class OpenEvent:
    """Payload for ``on_open``.

    Attributes:
        url: Target address.
        transport_id: Identifier of the open transport.
        protocol: Negotiated subprotocol, if any.
    """

    url: str
    transport_id: str
    protocol: Optional[str] = None


@dataclass(frozen=True)
class MessageEvent:
    """Payload for ``on_message``."""

    data: Any
    transport_id: str
    received_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ErrorEvent:
    """Payload for ``on_error``.

    The error reported by the transport is passed through unchanged. The
    websockets transport reports failures as ``TransportError`` (or
    ``SendError``) whose ``cause`` holds the exception raised by the
    network layer; ``ErrorEvent.cause`` exposes it directly.

    Attributes:
        error: The error as reported by the transport.
        transport_id: Identifier of the reporting transport.
    """

    error: BaseException
    transport_id: str

    @property
    def cause(self) -> BaseException:
        """Underlying exception, or ``error`` itself if it wraps nothing."""
        return getattr(self.error, "cause", None) or self.error


@dataclass(frozen=True)
class TimeoutEvent:
    """Payload for ``on_timeout``.

    Attributes:
        url: Target address.
        transport_id: Identifier of the transport that did not open in time.
        timeout: The connect-timeout window that elapsed (seconds).
    """

    url: str
    transport_id: str
    timeout: float


@dataclass(frozen=True)
class TransportClosed:
    """Raw close signal reported by a transport."""

    code: int = CLOSE_ABNORMAL
    reason: str = ""
    was_clean: bool = False


@dataclass(frozen=True)
class CloseEvent:
    """Payload for ``on_close``, augmented with the connection's flags.

    The flags reflect the connection at the moment the transport closed.

    Attributes:
        code: Close code reported by the transport.
        reason: Close reason reported by the transport.
        was_clean: Whether the closing handshake completed.
        forced: The owner called ``close()``.
        is_retrying: The close was requested by ``retry()`` or a connect timeout.
        is_refreshing: The close was requested by ``refresh()``.
        transport_id: Identifier of the closed transport, if one existed.
    """

    code: int
    reason: str
    was_clean: bool
    forced: bool
    is_retrying: bool
    is_refreshing: bool
    transport_id: Optional[str] = None
    timed_out: bool = False

    @property
    def kind(self) -> CloseKind:
        """Classify the close for the owner."""
        if self.forced:
            return CloseKind.FORCED
        if self.timed_out:
            return CloseKind.TIMEOUT
        if self.is_retrying:
            return CloseKind.RETRY
        if self.is_refreshing:
            return CloseKind.REFRESH
        return CloseKind.UNEXPECTED

    @classmethod
    def from_transport(
        cls,
        closed: TransportClosed,
        *,
        forced: bool,
        is_retrying: bool,
        is_refreshing: bool,
        transport_id: Optional[str] = None,
        timed_out: bool = False,
    ) -> "CloseEvent":
        """Build an augmented close event from a raw transport close."""
        return cls(
            code=closed.code,
            reason=closed.reason,
            was_clean=closed.was_clean,
            forced=forced,
            is_retrying=is_retrying,
            is_refreshing=is_refreshing,
            transport_id=transport_id,
            timed_out=timed_out,
        )
