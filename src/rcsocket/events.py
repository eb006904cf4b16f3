"""Single-slot event dispatch for the reconnecting socket.

Each event kind has exactly one handler slot. Registering a handler
replaces whatever was registered before; triggering an event with an
empty slot does nothing. When verbose logging is enabled, either for the
connection or process-wide, every trigger is written to the injected
logger before the handler runs.

Handlers may be plain callables or coroutine functions. Coroutines are
scheduled on the running loop so that dispatch never blocks the state
machine.

Classes:
    RcSocketHandler: Capability interface implemented by handler objects
    EventProxy: Dispatcher owning the handler slots of one connection
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional, Union

from rcsocket.config import RcSocketConfig
from rcsocket.types import EventName

log = logging.getLogger(__name__)

# Type alias for handler slots
EventHandler = Callable[[Any], Any]


class RcSocketHandler:
    """Capability interface for objects that observe a connection.

    Subclass and override the methods you care about, then pass an instance
    to ``RcSocket(handler=...)`` or ``RcSocket.set_handler()``. Only the
    overridden methods are bound to slots.

    Example:
        >>> class Printer(RcSocketHandler):
        ...     def on_message(self, event):
        ...         print(event.data)
    """

    def on_connecting(self, event: Any) -> Any:
        pass

    def on_open(self, event: Any) -> Any:
        pass

    def on_message(self, event: Any) -> Any:
        pass

    def on_error(self, event: Any) -> Any:
        pass

    def on_close(self, event: Any) -> Any:
        pass

    def on_timeout(self, event: Any) -> Any:
        pass


class EventProxy:
    """Dispatcher holding at most one handler per event kind.

    Attributes:
        url: Target address, included in verbose log records.
        config: Connection config supplying the logger and debug flags.
    """

    def __init__(self, url: str, config: RcSocketConfig) -> None:
        self.url = url
        self.config = config
        self._slots: dict[EventName, Optional[EventHandler]] = {
            name: None for name in EventName
        }
        self._tasks: set[asyncio.Task] = set()

    def register(
        self, event: Union[EventName, str], handler: Optional[EventHandler]
    ) -> None:
        """Put a handler in the slot for ``event``, replacing the previous one.

        Args:
            event: Event kind, as ``EventName`` or its string value.
            handler: Callable taking the event payload, or None to clear.

        Raises:
            ValueError: If the event kind is unknown.
            TypeError: If the handler is not callable.
        """
        name = EventName(event)
        if handler is not None and not callable(handler):
            raise TypeError(f"Handler for {name.value} must be callable")
        self._slots[name] = handler

    def get(self, event: Union[EventName, str]) -> Optional[EventHandler]:
        """Return the handler registered for ``event``, if any."""
        return self._slots[EventName(event)]

    def bind(self, handler: RcSocketHandler) -> None:
        """Register the overridden methods of a handler object.

        Methods the object inherits unchanged from ``RcSocketHandler`` leave
        their slots untouched.
        """
        for name in EventName:
            method = getattr(handler, name.value, None)
            if method is None:
                continue
            base = getattr(RcSocketHandler, name.value)
            if getattr(method, "__func__", None) is base:
                continue
            self.register(name, method)

    def clear(self) -> None:
        """Empty every slot."""
        for name in EventName:
            self._slots[name] = None

    def trigger(self, event: Union[EventName, str], payload: Any = None) -> None:
        """Dispatch ``payload`` to the handler registered for ``event``.

        Handler exceptions are logged and never propagate into the caller.
        """
        name = EventName(event)

        if self.config.verbose:
            self.config.logger.info(f"RcSocket {name.value} {self.url} {payload!r}")

        handler = self._slots[name]
        if handler is None:
            return

        try:
            result = handler(payload)
        except Exception:
            log.exception(f"Error in {name.value} handler for {self.url}")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._handler_done)

    def _handler_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log.error(f"Error in async handler for {self.url}: {error!r}")

    async def drain(self) -> None:
        """Wait for scheduled coroutine handlers to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
