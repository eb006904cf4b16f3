"""In-memory transport used to drive the connection state machine.

The tests decide when a handshake completes, when messages arrive and when
the link drops, so every transition can be checked step by step.
"""

import asyncio
from typing import Any, List, Optional, Sequence

from rcsocket.config import RcSocketConfig
from rcsocket.constants import CLOSE_ABNORMAL, CLOSE_NORMAL
from rcsocket.exceptions import SendError
from rcsocket.transport import Transport
from rcsocket.types import ReadyState, TransportClosed


class FakeTransport(Transport):
    """Transport whose lifecycle is driven by the test.

    ``close()`` reports the close on the next loop iteration, like a real
    socket finishing its closing handshake.
    """

    def __init__(self, url: str, protocols: Sequence[str] = ()) -> None:
        super().__init__(url, protocols)
        self._state = ReadyState.CONNECTING
        self.opened = False
        self.sent: List[Any] = []
        self.close_calls: List[tuple] = []

    @property
    def ready_state(self) -> ReadyState:
        return self._state

    def open(self) -> None:
        self.opened = True

    def send(self, payload: Any) -> None:
        if self._state != ReadyState.OPEN:
            raise SendError("Cannot send: transport not open")
        self.sent.append(payload)

    def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        self.close_calls.append((code, reason))
        if self._state in (ReadyState.CLOSING, ReadyState.CLOSED):
            return
        was_open = self._state == ReadyState.OPEN
        self._state = ReadyState.CLOSING
        asyncio.get_running_loop().call_soon(
            self._finish_close,
            TransportClosed(code if was_open else CLOSE_ABNORMAL, reason, was_open),
        )

    # Test controls

    def accept(self) -> None:
        """Complete the opening handshake."""
        self._state = ReadyState.OPEN
        self._emit_open()

    def receive(self, data: Any) -> None:
        self._emit_message(data)

    def fail(self, error: BaseException) -> None:
        self._emit_error(error)

    def drop(self, code: int = CLOSE_ABNORMAL) -> None:
        """Lose the connection without anyone asking for it."""
        self._finish_close(TransportClosed(code, "", False))

    def _finish_close(self, closed: TransportClosed) -> None:
        if self._state == ReadyState.CLOSED:
            return
        self._state = ReadyState.CLOSED
        self._emit_close(closed)


class FakeTransportFactory:
    """Transport factory recording every transport it builds."""

    def __init__(self) -> None:
        self.transports: List[FakeTransport] = []

    def __call__(self, url: str, protocols: Sequence[str], config: RcSocketConfig) -> FakeTransport:
        transport = FakeTransport(url, protocols)
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> Optional[FakeTransport]:
        return self.transports[-1] if self.transports else None

    @property
    def count(self) -> int:
        return len(self.transports)


async def settle(rounds: int = 5) -> None:
    """Let callbacks scheduled with call_soon run."""
    for _ in range(rounds):
        await asyncio.sleep(0)

