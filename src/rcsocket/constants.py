"""Protocol constants for the reconnecting socket.

This module defines constants used throughout the package, including
timeouts, backoff parameters, ready-state codes and close codes.
"""

# =============================================================================
# Connection Timeouts (seconds)
# =============================================================================

DEFAULT_CONNECT_TIMEOUT: float = 2.5
"""Default window for a connect attempt to reach open or close."""

DEFAULT_CLOSE_TIMEOUT: float = 10.0
"""Time allowed for the closing handshake before the socket is dropped."""

# =============================================================================
# Reconnection Configuration
# =============================================================================

DEFAULT_MAX_RETRY_DELAY: float = 1.0
"""Upper bound for the reconnect delay (seconds)."""

DEFAULT_RETRY_BASE_DELAY: float = 1.0
"""Unit multiplied by ``2 ** attempt - 1`` to get the reconnect delay."""

INITIAL_ATTEMPT: int = 1
"""Attempt counter value at construction and after every successful open."""

# =============================================================================
# Pending Queue
# =============================================================================

DEFAULT_QUEUE_FLUSH_DELAY: float = 0.1
"""Base spacing between queued payloads flushed after open (seconds)."""

# =============================================================================
# WebSocket Configuration
# =============================================================================

DEFAULT_MAX_MESSAGE_SIZE: int = 16 * 1024 * 1024  # 16 MB
"""Maximum WebSocket message size in bytes."""

# Standard WebSocket ready-state codes
READY_STATE_CONNECTING: int = 0
READY_STATE_OPEN: int = 1
READY_STATE_CLOSING: int = 2
READY_STATE_CLOSED: int = 3

# RFC 6455 close codes
CLOSE_NORMAL: int = 1000
CLOSE_GOING_AWAY: int = 1001
CLOSE_ABNORMAL: int = 1006
CLOSE_INTERNAL_ERROR: int = 1011

# =============================================================================
# Event Names
# =============================================================================

EVENT_CONNECTING: str = "on_connecting"
EVENT_OPEN: str = "on_open"
EVENT_MESSAGE: str = "on_message"
EVENT_ERROR: str = "on_error"
EVENT_CLOSE: str = "on_close"
EVENT_TIMEOUT: str = "on_timeout"

# =============================================================================
# Protocol URLs
# =============================================================================

PROTOCOL_WS: str = "ws"
PROTOCOL_WSS: str = "wss"

SUPPORTED_PROTOCOLS: tuple[str, ...] = (PROTOCOL_WS, PROTOCOL_WSS)
"""Supported connection protocols."""

# =============================================================================
# Logging
# =============================================================================

DEFAULT_LOGGER_NAME: str = "rcsocket"
"""Name of the logger that receives verbose event dispatch records."""
