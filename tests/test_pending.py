"""Unit tests for the pending payload queue."""

import asyncio
from unittest.mock import MagicMock

import pytest

from rcsocket.pending import PendingQueue


class TestPendingQueue:
    """Tests for queueing and paced flushing."""

    def test_enqueue_keeps_order(self):
        """Test payloads are kept oldest first."""
        queue = PendingQueue(0.1, loop=MagicMock())

        for payload in ("a", "b", "c"):
            queue.enqueue(payload)

        assert queue.payloads == ("a", "b", "c")
        assert len(queue) == 3

    def test_equal_payloads_are_distinct_entries(self):
        """Test duplicates are separate entries."""
        queue = PendingQueue(0.1, loop=MagicMock())
        first = queue.enqueue("x")
        second = queue.enqueue("x")

        assert first is not second
        assert first != second
        assert queue.rank(second) == 2

    def test_remove_by_identity(self):
        """Test remove only drops the given entry."""
        queue = PendingQueue(0.1, loop=MagicMock())
        first = queue.enqueue("x")
        second = queue.enqueue("x")

        assert queue.remove(second) is True
        assert queue.remove(second) is False
        assert list(queue) == [first]

    def test_rank_of_missing_entry(self):
        """Test rank raises for entries no longer queued."""
        queue = PendingQueue(0.1, loop=MagicMock())
        entry = queue.enqueue("x")
        queue.remove(entry)

        with pytest.raises(ValueError):
            queue.rank(entry)

    def test_flush_spacing(self):
        """Test the entry of rank r is scheduled after r * base_delay."""
        loop = MagicMock()
        queue = PendingQueue(0.1, loop=loop)
        for payload in ("a", "b", "c"):
            queue.enqueue(payload)

        scheduled = queue.flush(MagicMock(), lambda: True)

        assert scheduled == 3
        delays = [c.args[0] for c in loop.call_later.call_args_list]
        assert delays == pytest.approx([0.1, 0.2, 0.3])
        assert queue.flushing is True

    def test_flush_skips_already_scheduled(self):
        """Test a second flush only schedules new entries."""
        loop = MagicMock()
        queue = PendingQueue(0.1, loop=loop)
        queue.enqueue("a")
        queue.flush(MagicMock(), lambda: True)
        queue.enqueue("b")

        assert queue.flush(MagicMock(), lambda: True) == 1
        assert loop.call_later.call_count == 2

    def test_cancel_flush_keeps_entries(self):
        """Test cancelling delivery leaves payloads queued."""
        loop = MagicMock()
        queue = PendingQueue(0.1, loop=loop)
        queue.enqueue("a")
        queue.flush(MagicMock(), lambda: True)

        queue.cancel_flush()

        loop.call_later.return_value.cancel.assert_called_once()
        assert queue.flushing is False
        assert queue.payloads == ("a",)

    def test_clear(self):
        """Test clear drops every entry."""
        queue = PendingQueue(0.1, loop=MagicMock())
        queue.enqueue("a")

        queue.clear()

        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_flush_delivers_in_order(self):
        """Test every entry is delivered exactly once, oldest first."""
        queue = PendingQueue(0.01)
        delivered = []
        for payload in ("a", "b", "c"):
            queue.enqueue(payload)

        queue.flush(delivered.append, lambda: True)
        await asyncio.sleep(0.08)

        assert delivered == ["a", "b", "c"]
        assert len(queue) == 0
        assert queue.flushing is False

    @pytest.mark.asyncio
    async def test_undeliverable_entry_stays_queued(self):
        """Test a timer firing while delivery is impossible keeps the entry."""
        queue = PendingQueue(0.01)
        deliver = MagicMock()
        queue.enqueue("a")

        queue.flush(deliver, lambda: False)
        await asyncio.sleep(0.03)

        deliver.assert_not_called()
        assert queue.payloads == ("a",)
        assert queue.flushing is False

    @pytest.mark.asyncio
    async def test_entries_added_during_flush_are_not_displaced(self):
        """Test entries queued mid-flush don't change which entry a timer sends."""
        queue = PendingQueue(0.02)
        delivered = []
        queue.enqueue("a")
        queue.enqueue("b")

        queue.flush(delivered.append, lambda: True)
        await asyncio.sleep(0.03)
        queue.enqueue("c")
        await asyncio.sleep(0.03)

        assert delivered == ["a", "b"]
        assert queue.payloads == ("c",)
