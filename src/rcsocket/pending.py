"""Pending queue for payloads sent while no transport is open.

Payloads are kept in insertion order. When the connection opens, every
queued entry is scheduled for delivery after ``rank * base_delay``
seconds, rank 1 being the oldest entry, so that a burst of queued
payloads goes out paced rather than all at once.

Entries are removed by identity when they are delivered, never by their
position at schedule time, so payloads sent while a flush is running
cannot shift which entry a pending timer delivers.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

log = logging.getLogger(__name__)

_entry_ids = itertools.count(1)


@dataclass(eq=False)
class QueueEntry:
    """A queued payload.

    Equality is identity: two entries holding the same payload are
    distinct.
    """

    payload: Any
    id: int = field(default_factory=lambda: next(_entry_ids))


class PendingQueue:
    """Ordered buffer of outbound payloads awaiting an open transport.

    Attributes:
        base_delay: Spacing between flushed entries (seconds).

    Example:
        >>> queue = PendingQueue(base_delay=0.1)
        >>> queue.enqueue("a")
        >>> queue.flush(lambda payload: transport.send(payload), can_send)
    """

    def __init__(
        self,
        base_delay: float,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.base_delay = base_delay
        self._loop = loop or asyncio.get_running_loop()
        self._entries: list[QueueEntry] = []
        self._timers: dict[int, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[QueueEntry]:
        return iter(list(self._entries))

    @property
    def payloads(self) -> tuple[Any, ...]:
        """Queued payloads, oldest first."""
        return tuple(entry.payload for entry in self._entries)

    @property
    def flushing(self) -> bool:
        """Whether delivery timers are pending."""
        return bool(self._timers)

    def enqueue(self, payload: Any) -> QueueEntry:
        """Append a payload to the end of the queue."""
        entry = QueueEntry(payload)
        self._entries.append(entry)
        log.debug(f"Queued payload #{entry.id} ({len(self._entries)} pending)")
        return entry

    def rank(self, entry: QueueEntry) -> int:
        """Return the 1-based rank of ``entry`` (1 = oldest).

        Raises:
            ValueError: If the entry is not queued.
        """
        for index, queued in enumerate(self._entries):
            if queued is entry:
                return index + 1
        raise ValueError(f"Entry #{entry.id} is not queued")

    def remove(self, entry: QueueEntry) -> bool:
        """Remove ``entry`` by identity. Returns False if it was already gone."""
        for index, queued in enumerate(self._entries):
            if queued is entry:
                del self._entries[index]
                return True
        return False

    def flush(
        self,
        deliver: Callable[[Any], None],
        can_deliver: Callable[[], bool],
    ) -> int:
        """Schedule paced delivery of every queued entry.

        Entries already scheduled by an earlier flush keep their timer.
        When a timer fires, the entry is removed and handed to ``deliver``
        only if ``can_deliver()`` is true; otherwise it stays queued for the
        next flush.

        Returns:
            Number of entries newly scheduled.
        """
        scheduled = 0
        for rank, entry in enumerate(self._entries, start=1):
            if entry.id in self._timers:
                continue
            delay = self.base_delay * rank
            self._timers[entry.id] = self._loop.call_later(
                delay, self._deliver, entry, deliver, can_deliver
            )
            scheduled += 1

        if scheduled:
            log.debug(f"Flushing {scheduled} queued payload(s)")
        return scheduled

    def _deliver(
        self,
        entry: QueueEntry,
        deliver: Callable[[Any], None],
        can_deliver: Callable[[], bool],
    ) -> None:
        self._timers.pop(entry.id, None)
        if not can_deliver():
            log.debug(f"Payload #{entry.id} kept queued: transport not open")
            return
        if self.remove(entry):
            deliver(entry.payload)

    def cancel_flush(self) -> None:
        """Cancel pending delivery timers; entries stay queued."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

    def clear(self) -> None:
        """Cancel delivery and drop every entry."""
        self.cancel_flush()
        self._entries.clear()
