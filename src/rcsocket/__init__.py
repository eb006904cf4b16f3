"""Reconnecting WebSocket client.

This package provides a socket wrapper that presents the interface of a
raw WebSocket but recovers from connection loss on its own:

- Automatic reconnection with exponential backoff
- Connect timeouts reported and retried
- Outbound payloads buffered while disconnected, flushed paced on open
- Close events that tell explicit close, retry/refresh and drops apart

Example:
    >>> from rcsocket import RcSocket, RcSocketConfig
    >>> sock = RcSocket("wss://echo.local/ws", config=RcSocketConfig(max_retry_delay=30))
    >>> sock.on_open = lambda event: print("open")
    >>> sock.on_close = lambda event: print(event.kind)
    >>> sock.send("hello")
"""

from rcsocket.backoff import BackoffScheduler, compute_retry_delay
from rcsocket.config import (
    ProcessSettings,
    RcSocketConfig,
    get_debug_all,
    load_config,
    set_debug_all,
)
from rcsocket.connection import RcSocket
from rcsocket.events import EventProxy, RcSocketHandler
from rcsocket.exceptions import (
    ConfigurationError,
    RcSocketError,
    SendError,
    StateError,
    TransportError,
)
from rcsocket.pending import PendingQueue, QueueEntry
from rcsocket.transport import Transport, WebSocketTransport, create_transport
from rcsocket.types import (
    CloseEvent,
    CloseKind,
    ConnectingEvent,
    ConnectionPhase,
    ErrorEvent,
    EventName,
    MessageEvent,
    OpenEvent,
    ReadyState,
    TimeoutEvent,
    TLSConfig,
    TransportClosed,
)

__version__ = "0.1.0"

__all__ = [
    # Connection
    "RcSocket",
    "RcSocketHandler",
    # Components
    "BackoffScheduler",
    "EventProxy",
    "PendingQueue",
    "QueueEntry",
    "Transport",
    "WebSocketTransport",
    "compute_retry_delay",
    "create_transport",
    # Configuration
    "ProcessSettings",
    "RcSocketConfig",
    "TLSConfig",
    "get_debug_all",
    "load_config",
    "set_debug_all",
    # Types
    "CloseEvent",
    "CloseKind",
    "ConnectingEvent",
    "ConnectionPhase",
    "ErrorEvent",
    "EventName",
    "MessageEvent",
    "OpenEvent",
    "ReadyState",
    "TimeoutEvent",
    "TransportClosed",
    # Exceptions
    "ConfigurationError",
    "RcSocketError",
    "SendError",
    "StateError",
    "TransportError",
]
