"""Backoff scheduling for the reconnecting socket.

The scheduler owns two cancelable timers:

- the connect-timeout timer, armed at the start of every connect attempt;
- the reconnect-delay timer, armed whenever a cycle fails.

The reconnect delay grows exponentially with the attempt counter::

    delay = min(max_retry_delay, (2 ** attempt - 1) * retry_base_delay)

With the default cap of one second, the first delay already equals the
cap. Raise ``max_retry_delay`` to see the delay grow.
"""

import asyncio
import logging
from typing import Callable, Optional

from rcsocket.constants import (
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_RETRY_BASE_DELAY,
    INITIAL_ATTEMPT,
)

log = logging.getLogger(__name__)


def compute_retry_delay(
    attempt: int,
    max_delay: float = DEFAULT_MAX_RETRY_DELAY,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
) -> float:
    """Return the reconnect delay for ``attempt`` (seconds).

    Args:
        attempt: Attempt counter, starting at 1.
        max_delay: Upper bound for the delay.
        base_delay: Unit multiplied by ``2 ** attempt - 1``.

    Raises:
        ValueError: If ``attempt`` is smaller than 1.

    Example:
        >>> compute_retry_delay(3, max_delay=60.0)
        7.0
    """
    if attempt < INITIAL_ATTEMPT:
        raise ValueError(f"attempt must be >= {INITIAL_ATTEMPT}, got {attempt}")
    # Cap the exponent so huge attempt counts don't build huge integers.
    exponent = min(attempt, 64)
    return min(max_delay, (2 ** exponent - 1) * base_delay)


class BackoffScheduler:
    """Connect-timeout and reconnect-delay timers of one connection.

    Attributes:
        connect_timeout: Window for a connect attempt (seconds).
        max_delay: Cap for the reconnect delay (seconds).
        base_delay: Unit of the reconnect delay (seconds).

    Example:
        >>> scheduler = BackoffScheduler(2.5, max_delay=30.0)
        >>> scheduler.arm_connect_timeout(on_timeout)
        >>> scheduler.cancel_connect_timeout()
        >>> delay = scheduler.schedule_reconnect(connect)
    """

    def __init__(
        self,
        connect_timeout: float,
        max_delay: float = DEFAULT_MAX_RETRY_DELAY,
        base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.connect_timeout = connect_timeout
        self.max_delay = max_delay
        self.base_delay = base_delay
        self._loop = loop or asyncio.get_running_loop()

        self._attempt = INITIAL_ATTEMPT
        self._timeout_handle: Optional[asyncio.TimerHandle] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None

    @property
    def attempt_count(self) -> int:
        """Current attempt counter (>= 1)."""
        return self._attempt

    @property
    def next_delay(self) -> float:
        """Delay the next call to ``schedule_reconnect`` will use."""
        return compute_retry_delay(self._attempt, self.max_delay, self.base_delay)

    @property
    def timeout_pending(self) -> bool:
        """Whether the connect-timeout timer is armed."""
        return self._timeout_handle is not None

    @property
    def reconnect_pending(self) -> bool:
        """Whether a reconnect is waiting for its delay to elapse."""
        return self._reconnect_handle is not None

    def reset(self) -> None:
        """Reset the attempt counter after a successful open."""
        self._attempt = INITIAL_ATTEMPT

    def arm_connect_timeout(self, callback: Callable[[], None]) -> None:
        """Start the connect-timeout timer, replacing a pending one."""
        self.cancel_connect_timeout()

        def fire() -> None:
            self._timeout_handle = None
            callback()

        self._timeout_handle = self._loop.call_later(self.connect_timeout, fire)

    def cancel_connect_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    def schedule_reconnect(self, callback: Callable[[], None]) -> float:
        """Schedule ``callback`` after the backoff delay for this attempt.

        The attempt counter is incremented once per call, i.e. once per
        failed cycle.

        Returns:
            The delay that was scheduled (seconds).
        """
        self.cancel_reconnect()

        delay = self.next_delay
        self._attempt += 1

        def fire() -> None:
            self._reconnect_handle = None
            callback()

        self._reconnect_handle = self._loop.call_later(delay, fire)
        log.debug(f"Reconnect scheduled in {delay:.3f}s (next attempt {self._attempt})")
        return delay

    def cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def cancel_all(self) -> None:
        """Cancel both timers."""
        self.cancel_connect_timeout()
        self.cancel_reconnect()
