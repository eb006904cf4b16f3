"""Reconnecting socket.

``RcSocket`` behaves like a raw WebSocket, except that when it fails to
connect or gets disconnected it reconnects with exponential backoff,
buffering outbound payloads until a transport is open again. Close events
tell the owner why the transport went away.

Lifecycle::

    INIT -> CONNECTING -> OPEN
               |   ^        |
               v   |        v
            RECONNECT_WAIT <-+        any phase --close()--> CLOSED_FINAL

- The first connect attempt is scheduled on the loop, never run inline, so
  handlers can be registered right after construction.
- A connect attempt that neither opens nor closes within
  ``connect_timeout`` emits ``on_timeout`` and is retried.
- ``close()`` is terminal. ``retry()`` and ``refresh()`` close the current
  transport and always lead to a fresh connect attempt.
- After ``notify_teardown()`` a transport close is neither reported nor
  followed by a reconnect.

Example:
    >>> sock = RcSocket("wss://echo.local/ws", config=RcSocketConfig(max_retry_delay=30))
    >>> sock.on_message = lambda event: print(event.data)
    >>> sock.send("hello")   # queued until open
"""

import asyncio
import logging
from typing import Any, Optional, Sequence, Union

from rcsocket.backoff import BackoffScheduler
from rcsocket.config import RcSocketConfig
from rcsocket.constants import CLOSE_NORMAL
from rcsocket.events import EventHandler, EventProxy, RcSocketHandler
from rcsocket.exceptions import RcSocketError, SendError, StateError
from rcsocket.pending import PendingQueue
from rcsocket.transport import Transport, TransportFactory, create_transport, validate_url
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
    TransportClosed,
)

log = logging.getLogger(__name__)


def _handler_slot(name: EventName) -> property:
    def getter(self: "RcSocket") -> Optional[EventHandler]:
        return self._events.get(name)

    def setter(self: "RcSocket", handler: Optional[EventHandler]) -> None:
        self._events.register(name, handler)

    return property(getter, setter, doc=f"Handler slot for ``{name.value}``.")


class RcSocket:
    """WebSocket-compatible connection that recovers from connection loss.

    Must be constructed while an asyncio event loop is running.

    Args:
        url: Target address (``ws://`` or ``wss://``).
        protocols: Subprotocol name or list of names to request.
        config: Connection configuration.
        transport_factory: Builds one transport per connect attempt;
            defaults to ``create_transport``.
        handler: Optional ``RcSocketHandler`` whose overridden methods are
            bound to the handler slots.

    Raises:
        ConfigurationError: If the URL or configuration is invalid.
    """

    on_connecting = _handler_slot(EventName.CONNECTING)
    on_open = _handler_slot(EventName.OPEN)
    on_message = _handler_slot(EventName.MESSAGE)
    on_error = _handler_slot(EventName.ERROR)
    on_close = _handler_slot(EventName.CLOSE)
    on_timeout = _handler_slot(EventName.TIMEOUT)

    def __init__(
        self,
        url: str,
        protocols: Union[str, Sequence[str], None] = None,
        config: Optional[RcSocketConfig] = None,
        *,
        transport_factory: Optional[TransportFactory] = None,
        handler: Optional[RcSocketHandler] = None,
    ) -> None:
        self.config = config or RcSocketConfig()
        self.config.validate()

        if transport_factory is None:
            validate_url(url)
            transport_factory = create_transport

        if protocols is None:
            protocols = ()
        elif isinstance(protocols, str):
            protocols = (protocols,)

        self.url = url
        self.protocols: tuple[str, ...] = tuple(protocols)

        self._loop = asyncio.get_running_loop()
        self._factory = transport_factory
        self._events = EventProxy(url, self.config)
        self._backoff = BackoffScheduler(
            self.config.connect_timeout,
            max_delay=self.config.max_retry_delay,
            base_delay=self.config.retry_base_delay,
            loop=self._loop,
        )
        self._queue = PendingQueue(self.config.queue_flush_delay, loop=self._loop)

        self._phase = ConnectionPhase.INIT
        self._transport: Optional[Transport] = None
        self._closed: "asyncio.Future[None]" = self._loop.create_future()

        self._was_forced = False
        self._is_retrying = False
        self._is_refreshing = False
        self._has_opened = False
        self._timed_out = False
        self._suppressed = False

        if handler is not None:
            self.set_handler(handler)

        # Deferred so the owner can attach handlers before any event fires.
        self._connect_handle: Optional[asyncio.Handle] = self._loop.call_soon(self._connect)

    def __repr__(self) -> str:
        return f"<RcSocket {self.url} {self._phase.name} attempt={self.attempt_count}>"

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def phase(self) -> ConnectionPhase:
        return self._phase

    @property
    def ready_state(self) -> ReadyState:
        """Standard WebSocket ready state of this connection.

        Reconnecting counts as CONNECTING; a terminal close reports the
        closing transport until it is gone.
        """
        if self._phase == ConnectionPhase.OPEN and self._transport is not None:
            return self._transport.ready_state
        if self._phase == ConnectionPhase.CLOSED_FINAL:
            if self._transport is not None:
                return self._transport.ready_state
            return ReadyState.CLOSED
        return ReadyState.CONNECTING

    @property
    def attempt_count(self) -> int:
        return self._backoff.attempt_count

    @property
    def next_retry_delay(self) -> float:
        """Delay the next failed cycle will wait before reconnecting."""
        return self._backoff.next_delay

    @property
    def pending(self) -> tuple[Any, ...]:
        """Payloads waiting for an open transport, oldest first."""
        return self._queue.payloads

    @property
    def transport(self) -> Optional[Transport]:
        return self._transport

    @property
    def was_forced(self) -> bool:
        return self._was_forced

    @property
    def is_retrying(self) -> bool:
        return self._is_retrying

    @property
    def is_refreshing(self) -> bool:
        return self._is_refreshing

    @property
    def has_opened(self) -> bool:
        return self._has_opened

    @property
    def suppressed(self) -> bool:
        return self._suppressed

    def set_handler(self, handler: RcSocketHandler) -> None:
        """Bind the overridden methods of ``handler`` to the handler slots."""
        self._events.bind(handler)

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def send(self, payload: Any) -> None:
        """Send ``payload`` now if the transport is open, otherwise queue it.

        Raises:
            StateError: If the connection is closed for good.
        """
        if self._phase == ConnectionPhase.CLOSED_FINAL:
            raise StateError("Cannot send: connection is closed", phase=self._phase.name)

        if self._can_write():
            self._write(payload)
            return

        self._queue.enqueue(payload)

    def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        """Close for good. No reconnect is ever scheduled afterwards."""
        if self._phase == ConnectionPhase.CLOSED_FINAL:
            return

        log.info(f"Closing {self.url}")
        self._was_forced = True
        self._phase = ConnectionPhase.CLOSED_FINAL
        self._backoff.cancel_all()
        self._queue.cancel_flush()
        if self._connect_handle is not None:
            self._connect_handle.cancel()
            self._connect_handle = None

        if self._transport is not None:
            # The transport's close signal finishes the terminal path.
            self._transport.close(code, reason)
            return

        self._finish(
            CloseEvent(
                code=code,
                reason=reason,
                was_clean=True,
                forced=True,
                is_retrying=self._is_retrying,
                is_refreshing=self._is_refreshing,
            )
        )

    def retry(self) -> None:
        """Drop the current transport and connect again.

        The resulting close event carries ``is_retrying=True``.
        """
        self._restart(refresh=False)

    def refresh(self) -> None:
        """Replace a possibly stale transport with a fresh one.

        The resulting close event carries ``is_refreshing=True``.
        """
        self._restart(refresh=True)

    def notify_teardown(self) -> None:
        """Tell the connection its host environment is going away.

        Any later transport close is neither reported nor recovered.
        """
        log.debug(f"Teardown notified for {self.url}")
        self._suppressed = True

    async def wait_closed(self) -> None:
        """Wait until the connection is closed for good or abandoned."""
        await asyncio.shield(self._closed)

    # -------------------------------------------------------------------------
    # Transport lifecycle
    # -------------------------------------------------------------------------

    def _connect(self) -> None:
        self._connect_handle = None
        if self._phase == ConnectionPhase.CLOSED_FINAL:
            return

        try:
            transport = self._factory(self.url, self.protocols, self.config)
        except RcSocketError as e:
            log.error(f"Cannot create transport for {self.url}: {e}")
            self._events.trigger(EventName.ERROR, ErrorEvent(e, ""))
            self._reconnect()
            return

        transport.on_open = self._handle_open
        transport.on_message = self._handle_message
        transport.on_error = self._handle_error
        transport.on_close = self._handle_close

        self._transport = transport
        self._phase = ConnectionPhase.CONNECTING
        self._backoff.arm_connect_timeout(self._handle_timeout)
        transport.open()

        self._events.trigger(
            EventName.CONNECTING,
            ConnectingEvent(self.url, transport.id, self.attempt_count),
        )

    def _handle_timeout(self) -> None:
        transport = self._transport
        if transport is None or self._phase != ConnectionPhase.CONNECTING:
            return

        log.warning(
            f"Connect to {self.url} timed out after {self.config.connect_timeout}s"
        )
        self._timed_out = True
        self._events.trigger(
            EventName.TIMEOUT,
            TimeoutEvent(self.url, transport.id, self.config.connect_timeout),
        )
        self.retry()

    def _handle_open(self, transport: Transport) -> None:
        if transport is not self._transport:
            return

        self._backoff.cancel_connect_timeout()

        # close() was requested while the handshake completed.
        if self._was_forced:
            transport.close()
            return

        self._has_opened = True
        self._backoff.reset()
        self._phase = ConnectionPhase.OPEN
        log.info(f"Connected to {self.url}")

        self._events.trigger(
            EventName.OPEN, OpenEvent(self.url, transport.id, transport.protocol)
        )
        # The open handler may have called close(), retry() or refresh().
        if self._can_write():
            self._queue.flush(self._write, self._can_write)

    def _handle_message(self, transport: Transport, data: Any) -> None:
        if transport is self._transport:
            self._events.trigger(EventName.MESSAGE, MessageEvent(data, transport.id))

    def _handle_error(self, transport: Transport, error: BaseException) -> None:
        if transport is self._transport:
            self._events.trigger(EventName.ERROR, ErrorEvent(error, transport.id))

    def _handle_close(self, transport: Transport, closed: TransportClosed) -> None:
        if transport is not self._transport:
            return

        self._backoff.cancel_connect_timeout()
        self._queue.cancel_flush()
        transport.detach()
        self._transport = None

        event = CloseEvent.from_transport(
            closed,
            forced=self._was_forced,
            is_retrying=self._is_retrying,
            is_refreshing=self._is_refreshing,
            transport_id=transport.id,
            timed_out=self._timed_out,
        )

        if self._was_forced:
            self._finish(event)
            return

        if self._suppressed:
            log.info(f"Connection to {self.url} abandoned after teardown")
            self._abandon()
            return

        if self._has_opened:
            if event.kind == CloseKind.UNEXPECTED:
                log.warning(f"Connection to {self.url} lost (code={event.code})")
            self._events.trigger(EventName.CLOSE, event)

        self._is_retrying = False
        self._is_refreshing = False
        self._has_opened = False
        self._timed_out = False

        # The close handler may have called close().
        if self._phase == ConnectionPhase.CLOSED_FINAL:
            return

        self._reconnect()

    def _reconnect(self) -> None:
        self._phase = ConnectionPhase.RECONNECT_WAIT
        delay = self._backoff.schedule_reconnect(self._connect)
        log.info(
            f"Reconnecting to {self.url} in {delay:.2f}s (attempt {self.attempt_count})"
        )

    def _restart(self, refresh: bool) -> None:
        if self._phase == ConnectionPhase.CLOSED_FINAL:
            return

        if self._transport is None:
            # Nothing to close: skip the remaining backoff wait.
            if self._phase == ConnectionPhase.RECONNECT_WAIT:
                self._backoff.cancel_reconnect()
                self._connect()
            return

        if refresh:
            self._is_refreshing = True
        else:
            self._is_retrying = True
        self._transport.close()

    def _finish(self, event: CloseEvent) -> None:
        self._phase = ConnectionPhase.CLOSED_FINAL
        self._backoff.cancel_all()
        self._queue.cancel_flush()
        log.info(f"Connection to {self.url} closed")
        self._events.trigger(EventName.CLOSE, event)
        if not self._closed.done():
            self._closed.set_result(None)

    def _abandon(self) -> None:
        self._phase = ConnectionPhase.CLOSED_FINAL
        self._backoff.cancel_all()
        self._queue.cancel_flush()
        if not self._closed.done():
            self._closed.set_result(None)

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def _can_write(self) -> bool:
        return (
            self._phase == ConnectionPhase.OPEN
            and self._transport is not None
            and self._transport.ready_state == ReadyState.OPEN
        )

    def _write(self, payload: Any) -> None:
        try:
            self._transport.send(payload)
        except SendError as e:
            self._events.trigger(
                EventName.ERROR, ErrorEvent(e, self._transport.id if self._transport else "")
            )
