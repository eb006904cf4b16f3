"""Transport layer for the reconnecting socket.

A transport is one raw full-duplex socket used for exactly one connect
attempt. It reports its lifecycle through four callbacks, mirroring the
browser WebSocket API:

- ``on_open(transport)`` once the opening handshake completes;
- ``on_message(transport, data)`` for every received message;
- ``on_error(transport, error)`` for transport-level failures;
- ``on_close(transport, closed)`` exactly once, whatever the outcome.

No method blocks the caller: ``open()``, ``send()`` and ``close()`` only
schedule work on the running event loop.

Classes:
    Transport: Abstract base class defining the transport interface
    WebSocketTransport: Transport backed by the ``websockets`` library
"""

import abc
import asyncio
import logging
import ssl
import uuid
from typing import Any, Callable, Optional, Sequence
from urllib.parse import urlparse

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from rcsocket.config import RcSocketConfig
from rcsocket.constants import (
    CLOSE_ABNORMAL,
    CLOSE_INTERNAL_ERROR,
    CLOSE_NORMAL,
    DEFAULT_CLOSE_TIMEOUT,
    PROTOCOL_WSS,
    SUPPORTED_PROTOCOLS,
)
from rcsocket.exceptions import ConfigurationError, SendError, TransportError
from rcsocket.types import ReadyState, TLSConfig, TransportClosed

log = logging.getLogger(__name__)

OpenCallback = Callable[["Transport"], None]
MessageCallback = Callable[["Transport", Any], None]
ErrorCallback = Callable[["Transport", BaseException], None]
CloseCallback = Callable[["Transport", TransportClosed], None]

# Factory signature used by RcSocket to build one transport per attempt
TransportFactory = Callable[[str, Sequence[str], RcSocketConfig], "Transport"]


class Transport(abc.ABC):
    """Abstract base class for all transports.

    Attributes:
        url: Target address.
        protocols: Requested subprotocols.
        id: Short identifier, unique per instance.
    """

    def __init__(self, url: str, protocols: Sequence[str] = ()) -> None:
        self.url = url
        self.protocols = tuple(protocols)
        self.id = uuid.uuid4().hex[:8]

        self.on_open: Optional[OpenCallback] = None
        self.on_message: Optional[MessageCallback] = None
        self.on_error: Optional[ErrorCallback] = None
        self.on_close: Optional[CloseCallback] = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.id} {self.url} {self.ready_state.name}>"

    @property
    @abc.abstractmethod
    def ready_state(self) -> ReadyState:
        """Current ready state of the transport."""

    @property
    def protocol(self) -> Optional[str]:
        """Negotiated subprotocol, if any."""
        return None

    @abc.abstractmethod
    def open(self) -> None:
        """Start the opening handshake.

        Raises:
            TransportError: If the transport was already opened.
        """

    @abc.abstractmethod
    def send(self, payload: Any) -> None:
        """Queue ``payload`` for writing.

        Raises:
            SendError: If the transport is not open.
        """

    @abc.abstractmethod
    def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        """Request closure. Safe to call in any state."""

    def detach(self) -> None:
        """Drop every callback so late signals reach nobody."""
        self.on_open = None
        self.on_message = None
        self.on_error = None
        self.on_close = None

    def _emit_open(self) -> None:
        if self.on_open:
            self.on_open(self)

    def _emit_message(self, data: Any) -> None:
        if self.on_message:
            self.on_message(self, data)

    def _emit_error(self, error: BaseException) -> None:
        if self.on_error:
            self.on_error(self, error)

    def _emit_close(self, closed: TransportClosed) -> None:
        if self.on_close:
            self.on_close(self, closed)


def create_ssl_context(tls_config: TLSConfig) -> Optional[ssl.SSLContext]:
    """Create SSL context from TLS configuration.

    Returns:
        Configured SSLContext or None if TLS is disabled.

    Raises:
        ConfigurationError: If SSL configuration is invalid.
    """
    if not tls_config.enabled:
        return None

    try:
        context = ssl.create_default_context()

        if not tls_config.verify_cert:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        else:
            context.verify_mode = ssl.CERT_REQUIRED

        if tls_config.ca_cert:
            context.load_verify_locations(tls_config.ca_cert)

        if tls_config.client_cert and tls_config.client_key:
            context.load_cert_chain(tls_config.client_cert, tls_config.client_key)

        return context

    except ssl.SSLError as e:
        raise ConfigurationError(
            f"Invalid SSL configuration: {e}",
            config_key="tls_config",
        )
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"Certificate file not found: {e}",
            config_key="tls_config",
        )


class WebSocketTransport(Transport):
    """Transport backed by a ``websockets`` client connection.

    Outgoing payloads go through an internal queue drained by a writer
    task, so they hit the wire in the order ``send()`` was called.

    Example:
        >>> transport = WebSocketTransport("ws://localhost:9001")
        >>> transport.on_message = lambda t, data: print(data)
        >>> transport.open()
    """

    def __init__(
        self,
        url: str,
        protocols: Sequence[str] = (),
        ssl_context: Optional[ssl.SSLContext] = None,
        max_message_size: Optional[int] = None,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
    ) -> None:
        super().__init__(url, protocols)
        self.ssl_context = ssl_context
        self.max_message_size = max_message_size
        self.close_timeout = close_timeout

        self._state = ReadyState.CONNECTING
        self._websocket: Optional[Any] = None  # websockets ClientConnection
        self._task: Optional[asyncio.Task] = None
        self._connect_task: Optional[asyncio.Future] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._close_task: Optional[asyncio.Task] = None
        self._outbox: "asyncio.Queue[Any]" = asyncio.Queue()
        self._close_requested: Optional[tuple[int, str]] = None
        self._close_reported = False

    @property
    def ready_state(self) -> ReadyState:
        return self._state

    @property
    def protocol(self) -> Optional[str]:
        if self._websocket is None:
            return None
        return self._websocket.subprotocol

    def open(self) -> None:
        if self._task is not None:
            raise TransportError("Transport already opened", url=self.url)
        log.info(f"Connecting to WebSocket: {self.url}")
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._task.add_done_callback(self._task_done)

    def send(self, payload: Any) -> None:
        if self._state != ReadyState.OPEN:
            raise SendError(
                "Cannot send: transport not open",
                details={"state": self._state.name},
                url=self.url,
            )
        self._outbox.put_nowait(payload)

    def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        if self._state in (ReadyState.CLOSING, ReadyState.CLOSED):
            return

        self._close_requested = (code, reason)

        if self._state == ReadyState.CONNECTING:
            self._state = ReadyState.CLOSING
            if self._task is None:
                self._report_close(TransportClosed(CLOSE_ABNORMAL, reason, False))
            elif self._connect_task is not None:
                # A handshake that already finished is not cancelled; _run
                # sees the close request and closes the new connection.
                self._connect_task.cancel()
            return

        self._state = ReadyState.CLOSING
        if self._websocket is not None:
            self._close_task = asyncio.get_running_loop().create_task(
                self._websocket.close(code, reason)
            )

    async def wait_closed(self) -> None:
        """Wait until the transport has reported its close."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _run(self) -> None:
        closed = TransportClosed(CLOSE_ABNORMAL, "", False)
        try:
            if self._close_requested is not None:
                closed = TransportClosed(CLOSE_ABNORMAL, "connect aborted", False)
                return

            self._connect_task = asyncio.ensure_future(
                websockets.connect(
                    self.url,
                    subprotocols=list(self.protocols) or None,
                    ssl=self.ssl_context,
                    max_size=self.max_message_size,
                    close_timeout=self.close_timeout,
                )
            )
            try:
                self._websocket = await self._connect_task
            except asyncio.CancelledError:
                closed = TransportClosed(CLOSE_ABNORMAL, "connect aborted", False)
                return
            except (WebSocketException, OSError) as e:
                log.warning(f"WebSocket connection to {self.url} failed: {e}")
                self._emit_error(
                    TransportError(f"WebSocket connection failed: {e}", url=self.url, cause=e)
                )
                return

            if self._close_requested is not None:
                # close() raced the end of the handshake.
                code, reason = self._close_requested
                await self._websocket.close(code, reason)
                closed = self._close_info()
                return

            self._state = ReadyState.OPEN
            log.info(f"WebSocket connected to {self.url}")
            self._writer_task = asyncio.get_running_loop().create_task(self._writer())
            self._emit_open()

            await self._receive_loop()
            closed = self._close_info()

        finally:
            self._state = ReadyState.CLOSED
            if self._writer_task is not None:
                self._writer_task.cancel()
                self._writer_task = None
            log.info(f"WebSocket {self.id} closed (code={closed.code})")
            self._report_close(closed)

    async def _receive_loop(self) -> None:
        try:
            async for data in self._websocket:
                self._emit_message(data)
        except ConnectionClosed as e:
            if self._close_requested is None:
                log.warning(f"WebSocket connection closed: {e}")
        except Exception as e:
            log.error(f"Error in receive loop: {e}")
            self._emit_error(TransportError(f"Receive failed: {e}", url=self.url, cause=e))
            await self._websocket.close(CLOSE_INTERNAL_ERROR, "receive failed")

    async def _writer(self) -> None:
        while True:
            payload = await self._outbox.get()
            try:
                await self._websocket.send(payload)
            except ConnectionClosed as e:
                self._emit_error(SendError(f"Send failed: {e}", url=self.url, cause=e))
                return
            except (TypeError, WebSocketException, OSError) as e:
                self._emit_error(SendError(f"Send failed: {e}", url=self.url, cause=e))

    def _report_close(self, closed: TransportClosed) -> None:
        if self._close_reported:
            return
        self._close_reported = True
        self._state = ReadyState.CLOSED
        self._emit_close(closed)

    def _task_done(self, task: asyncio.Task) -> None:
        # A task cancelled before its first step never runs its finally block.
        self._report_close(TransportClosed(CLOSE_ABNORMAL, "connect aborted", False))

    def _close_info(self) -> TransportClosed:
        code = getattr(self._websocket, "close_code", None)
        reason = getattr(self._websocket, "close_reason", None) or ""
        if code is None:
            return TransportClosed(CLOSE_ABNORMAL, reason, False)
        return TransportClosed(code, reason, code != CLOSE_ABNORMAL)


def create_transport(
    url: str,
    protocols: Sequence[str],
    config: RcSocketConfig,
) -> Transport:
    """Factory building a transport for ``url``.

    Raises:
        ConfigurationError: If the URL scheme is not supported.

    Example:
        >>> transport = create_transport("wss://host:9001", (), RcSocketConfig())
    """
    scheme = validate_url(url)

    ssl_context = None
    if scheme == PROTOCOL_WSS:
        ssl_context = create_ssl_context(config.tls_config)

    return WebSocketTransport(
        url,
        protocols,
        ssl_context=ssl_context,
        max_message_size=config.max_message_size,
    )


def validate_url(url: str) -> str:
    """Check ``url`` and return its scheme.

    Raises:
        ConfigurationError: If the URL scheme or host is invalid.
    """
    parsed = urlparse(url)
    if parsed.scheme not in SUPPORTED_PROTOCOLS:
        raise ConfigurationError(
            f"Unsupported URL scheme: {parsed.scheme or '(none)'}. "
            f"Supported schemes: {', '.join(SUPPORTED_PROTOCOLS)}",
            config_key="url",
            config_value=url,
        )
    if not parsed.hostname:
        raise ConfigurationError(
            "URL must include hostname",
            config_key="url",
            config_value=url,
        )
    return parsed.scheme
