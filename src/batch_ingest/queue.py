"""In-memory event queue with overflow-triggered flushing.

The queue buffers records, slices them into batches sized for the active
consumer and re-queues a failed batch at the front so order is kept across
retries.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any, Self

from batch_ingest.batching import flush_pending
from batch_ingest.consumers.base import Consumer
from batch_ingest.consumers.models import PROTOCOL_MAX_BATCH_SIZE
from batch_ingest.encoding import Record
from batch_ingest.lifecycle import DEFAULT_SHUTDOWN_ATTEMPTS, attach_shutdown_flush, drain

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUEUE_SIZE = 1000
DEFAULT_BATCH_SIZE = 50


class EventQueue:
    """Ordered in-memory buffer of records in front of a consumer.

    ``enqueue`` appends to the tail and, once the queue grows past
    ``max_queue_size``, flushes before returning. ``flush`` takes batches
    from the head; a batch the consumer rejects goes back to the front and
    the flush stops, leaving the retry to the next ``flush`` call.

    When the queue is closed, garbage collected or the interpreter exits,
    remaining records get up to ``shutdown_attempts`` flushes before they
    are dropped.

    The queue is not thread-safe. Callers sharing one queue across threads
    must serialize access themselves.

    Args:
        consumer: Consumer receiving each batch.
        max_queue_size: Length beyond which ``enqueue`` forces a flush.
        max_batch_size: Records per request, capped at the protocol maximum of 50.
        flush_on_exit: Drain remaining records at teardown (default: True).
        shutdown_attempts: Flush attempts made at teardown (default: 10).

    Example:
        ```python
        queue = EventQueue(HttpConsumer(ConsumerConfig(endpoint="/track")))
        queue.enqueue({"event": "signup", "properties": {"distinct_id": "42"}})
        if not queue.flush():
            ...  # records are still queued, in order
        ```
    """

    def __init__(
        self,
        consumer: Consumer,
        max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE,
        max_batch_size: int = PROTOCOL_MAX_BATCH_SIZE,
        flush_on_exit: bool = True,
        shutdown_attempts: int = DEFAULT_SHUTDOWN_ATTEMPTS,
    ) -> None:
        if max_queue_size < 1:
            raise ValueError("max_queue_size must be at least 1")
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")

        self._consumer = consumer
        self._max_queue_size = max_queue_size
        self._max_batch_size = min(max_batch_size, PROTOCOL_MAX_BATCH_SIZE)
        self._queue: list[Record] = []
        self._shutdown_attempts = shutdown_attempts
        self._closed = False
        self._finalizer = None
        if flush_on_exit:
            self._finalizer = attach_shutdown_flush(
                self,
                self._queue,
                consumer,
                self._max_batch_size,
                shutdown_attempts,
            )

    @property
    def consumer(self) -> Consumer:
        """Consumer receiving flushed batches."""
        return self._consumer

    @property
    def max_queue_size(self) -> int:
        """Length beyond which enqueue forces a flush."""
        return self._max_queue_size

    @property
    def max_batch_size(self) -> int:
        """Records per request, after the protocol cap."""
        return self._max_batch_size

    @property
    def pending(self) -> list[Record]:
        """Copy of the queued records, oldest first."""
        return list(self._queue)

    @property
    def is_closed(self) -> bool:
        """Whether close() has run."""
        return self._closed

    def __len__(self) -> int:
        return len(self._queue)

    def enqueue(self, record: Record) -> None:
        """Append a record, flushing first if the queue grew past its bound."""
        self._queue.append(record)

        if len(self._queue) > self._max_queue_size:
            log_entry = {
                "event": "queue_auto_flush",
                "queue_length": len(self._queue),
                "max_queue_size": self._max_queue_size,
            }
            logger.debug(json.dumps(log_entry))
            self.flush()

    def enqueue_all(self, records: Iterable[Record]) -> None:
        """Enqueue records in order; each may trigger an intermediate flush."""
        for record in records:
            self.enqueue(record)

    def flush(self, desired_batch_size: int = DEFAULT_BATCH_SIZE) -> bool:
        """Deliver queued records in batches.

        Args:
            desired_batch_size: Records per request requested by the caller.

        Returns:
            True if the queue was fully drained. False if a batch failed; that
            batch is back at the front of the queue.
        """
        if desired_batch_size < 1:
            raise ValueError("desired_batch_size must be at least 1")
        return flush_pending(self._queue, self._consumer, desired_batch_size, self._max_batch_size)

    def reset(self) -> None:
        """Discard every queued record without delivering it."""
        dropped = len(self._queue)
        self._queue.clear()
        if dropped:
            logger.debug(json.dumps({"event": "queue_reset", "dropped": dropped}))

    def close(self) -> bool:
        """Drain the queue with bounded retries and stop the teardown hook.

        Returns:
            True if every record was delivered. Records still failing after
            the retry limit are dropped.
        """
        if self._closed:
            return not self._queue
        self._closed = True

        if self._finalizer is not None:
            return bool(self._finalizer())
        return drain(self._queue, self._consumer, self._max_batch_size, self._shutdown_attempts)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
