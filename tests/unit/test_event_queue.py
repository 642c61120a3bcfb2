"""Tests for EventQueue."""

from __future__ import annotations

import gc
from unittest.mock import patch

import pytest

from batch_ingest.queue import EventQueue


class TestEventQueueConstruction:
    """Test cases for EventQueue construction."""

    def test_defaults(self, stub_consumer) -> None:
        """Default bounds should be 1000 queued and 50 per batch."""
        queue = EventQueue(stub_consumer, flush_on_exit=False)
        assert queue.max_queue_size == 1000
        assert queue.max_batch_size == 50
        assert len(queue) == 0

    def test_max_batch_size_capped(self, stub_consumer) -> None:
        """max_batch_size above the protocol limit should be capped at 50."""
        queue = EventQueue(stub_consumer, max_batch_size=200, flush_on_exit=False)
        assert queue.max_batch_size == 50

    @pytest.mark.parametrize("kwargs", [{"max_queue_size": 0}, {"max_batch_size": 0}])
    def test_invalid_bounds_rejected(self, stub_consumer, kwargs: dict) -> None:
        """Bounds below 1 should raise ValueError."""
        with pytest.raises(ValueError):
            EventQueue(stub_consumer, flush_on_exit=False, **kwargs)


class TestEventQueueEnqueue:
    """Test cases for enqueue() and its auto-flush."""

    def test_enqueue_appends(self, stub_consumer, sample_records) -> None:
        """Records should be queued in order without flushing."""
        queue = EventQueue(stub_consumer, flush_on_exit=False)
        queue.enqueue_all(sample_records)

        assert queue.pending == sample_records
        assert stub_consumer.calls == 0

    def test_pending_is_a_copy(self, stub_consumer) -> None:
        """Mutating pending should not affect the queue."""
        queue = EventQueue(stub_consumer, flush_on_exit=False)
        queue.enqueue({"event": "x"})
        queue.pending.clear()
        assert len(queue) == 1

    def test_auto_flush_once_past_bound(self, stub_consumer, records_factory) -> None:
        """Exceeding max_queue_size should trigger exactly one flush."""
        queue = EventQueue(stub_consumer, max_queue_size=5, flush_on_exit=False)

        queue.enqueue_all(records_factory(5))
        assert stub_consumer.calls == 0

        queue.enqueue({"event": "overflow"})
        assert stub_consumer.calls == 1
        assert len(stub_consumer.batches[0]) == 6
        assert len(queue) == 0

    def test_failed_auto_flush_keeps_records(self, stub_factory, records_factory) -> None:
        """A failed auto-flush should leave every record queued."""
        consumer = stub_factory(results=[False])
        queue = EventQueue(consumer, max_queue_size=3, flush_on_exit=False)

        queue.enqueue_all(records_factory(4))

        assert consumer.calls == 1
        assert queue.pending == records_factory(4)


class TestEventQueueFlush:
    """Test cases for flush()."""

    def test_flush_drains_in_order(self, stub_consumer, records_factory) -> None:
        """Flush should deliver everything in enqueue order."""
        queue = EventQueue(stub_consumer, flush_on_exit=False)
        queue.enqueue_all(records_factory(120))

        assert queue.flush() is True
        assert [len(batch) for batch in stub_consumer.batches] == [50, 50, 20]
        assert stub_consumer.delivered == records_factory(120)

    def test_flush_respects_desired_batch_size(self, stub_consumer, records_factory) -> None:
        """desired_batch_size should bound each batch."""
        queue = EventQueue(stub_consumer, flush_on_exit=False)
        queue.enqueue_all(records_factory(25))

        queue.flush(desired_batch_size=10)
        assert [len(batch) for batch in stub_consumer.batches] == [10, 10, 5]

    def test_retry_after_failure_keeps_order(self, stub_factory, records_factory) -> None:
        """A failed flush followed by a good one should deliver in order."""
        consumer = stub_factory(results=[False])
        queue = EventQueue(consumer, flush_on_exit=False)
        queue.enqueue_all(records_factory(3))

        assert queue.flush() is False
        assert len(queue) == 3

        assert queue.flush() is True
        assert consumer.calls == 2
        assert consumer.attempts[0] == consumer.attempts[1]
        assert consumer.delivered == records_factory(3)

    def test_raising_consumer_keeps_records(self, stub_consumer, records_factory) -> None:
        """A consumer raising from persist should leave every record queued."""
        queue = EventQueue(stub_consumer, flush_on_exit=False)
        queue.enqueue_all(records_factory(3))

        with patch.object(stub_consumer, "persist", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                queue.flush()

        assert queue.pending == records_factory(3)
        assert queue.flush() is True
        assert stub_consumer.delivered == records_factory(3)

    def test_invalid_desired_batch_size(self, stub_consumer) -> None:
        """desired_batch_size below 1 should raise ValueError."""
        queue = EventQueue(stub_consumer, flush_on_exit=False)
        with pytest.raises(ValueError):
            queue.flush(desired_batch_size=0)

    def test_empty_flush_makes_no_calls(self, stub_consumer) -> None:
        """Flushing an empty queue should succeed without calls."""
        queue = EventQueue(stub_consumer, flush_on_exit=False)
        assert queue.flush() is True
        assert stub_consumer.calls == 0


class TestEventQueueLifecycle:
    """Test cases for reset(), close() and teardown draining."""

    def test_reset_discards(self, stub_consumer, sample_records) -> None:
        """reset() should drop records without delivering them."""
        queue = EventQueue(stub_consumer, flush_on_exit=False)
        queue.enqueue_all(sample_records)
        queue.reset()

        assert len(queue) == 0
        assert queue.flush() is True
        assert stub_consumer.calls == 0

    def test_close_drains(self, stub_consumer, sample_records) -> None:
        """close() should deliver queued records."""
        queue = EventQueue(stub_consumer)
        queue.enqueue_all(sample_records)

        assert queue.close() is True
        assert queue.is_closed
        assert stub_consumer.delivered == sample_records

    def test_close_is_idempotent(self, stub_consumer, sample_records) -> None:
        """A second close() should not deliver again."""
        queue = EventQueue(stub_consumer)
        queue.enqueue_all(sample_records)
        queue.close()
        queue.close()
        assert stub_consumer.calls == 1

    def test_close_retries_then_succeeds(self, stub_factory, sample_records) -> None:
        """close() should retry failed batches within the shutdown attempts."""
        consumer = stub_factory(results=[False, False, True])
        queue = EventQueue(consumer, flush_on_exit=False)
        queue.enqueue_all(sample_records)

        assert queue.close() is True
        assert consumer.calls == 3

    def test_close_drops_after_max_attempts(self, stub_factory, sample_records) -> None:
        """Records failing every attempt should be dropped."""
        consumer = stub_factory(results=[False] * 20)
        queue = EventQueue(consumer, shutdown_attempts=3)
        queue.enqueue_all(sample_records)

        assert queue.close() is False
        assert consumer.calls == 3
        assert len(queue) == 0

    def test_context_manager_closes(self, stub_consumer, sample_records) -> None:
        """Leaving the with block should drain the queue."""
        with EventQueue(stub_consumer) as queue:
            queue.enqueue_all(sample_records)

        assert stub_consumer.delivered == sample_records

    def test_garbage_collection_drains(self, stub_consumer, sample_records) -> None:
        """A collected queue should flush its remaining records."""
        queue = EventQueue(stub_consumer)
        queue.enqueue_all(sample_records)

        del queue
        gc.collect()

        assert stub_consumer.delivered == sample_records

    def test_no_drain_when_disabled(self, stub_consumer, sample_records) -> None:
        """flush_on_exit=False should skip the teardown drain."""
        queue = EventQueue(stub_consumer, flush_on_exit=False)
        queue.enqueue_all(sample_records)

        del queue
        gc.collect()

        assert stub_consumer.calls == 0
