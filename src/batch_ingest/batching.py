"""Batch slicing and the flush loop shared by the queue and the shutdown hook."""

from __future__ import annotations

import json
import logging
import math
from typing import TYPE_CHECKING

from batch_ingest.encoding import Record

if TYPE_CHECKING:
    from batch_ingest.consumers.base import Consumer

logger = logging.getLogger(__name__)


def compute_batch_size(
    queue_length: int,
    desired_batch_size: int,
    max_batch_size: int,
    num_threads: int,
) -> int:
    """Size of the next batch handed to a consumer.

    A consumer running ``num_threads`` requests in parallel receives enough
    records for every worker, never more than ``max_batch_size`` per worker.

    Args:
        queue_length: Records currently queued.
        desired_batch_size: Caller-requested records per request.
        max_batch_size: Collector cap on records per request.
        num_threads: Parallel requests of the consumer.

    Returns:
        Number of records to take from the queue head.
    """
    return min(
        queue_length,
        desired_batch_size * num_threads,
        max_batch_size * num_threads,
    )


def split_batch(batch: list[Record], parts: int) -> list[list[Record]]:
    """Split a batch into at most ``parts`` contiguous, near-equal pieces.

    Each piece holds ``ceil(len(batch) / parts)`` records except the last,
    which takes the remainder. Fewer pieces are returned when the batch is
    too small to fill all of them.

    Example:
        >>> [len(piece) for piece in split_batch(list(range(130)), 4)]
        [33, 33, 33, 31]
    """
    if parts < 1:
        raise ValueError("parts must be at least 1")
    if not batch:
        return []

    piece_size = math.ceil(len(batch) / parts)
    return [batch[start : start + piece_size] for start in range(0, len(batch), piece_size)]


def flush_pending(
    pending: list[Record],
    consumer: Consumer,
    desired_batch_size: int,
    max_batch_size: int,
) -> bool:
    """Drain ``pending`` into ``consumer`` batch by batch, in place.

    Batches are taken from the head of the list. When a batch fails it is put
    back at the front in its original order and the loop stops, so the next
    call retries the same records first. A batch whose ``persist`` raises is
    put back the same way before the exception propagates.

    Args:
        pending: Queue contents, mutated in place.
        consumer: Consumer receiving each batch.
        desired_batch_size: Caller-requested records per request.
        max_batch_size: Collector cap on records per request.

    Returns:
        True if the list was fully drained, False on the first failed batch.
    """
    num_threads = consumer.get_num_threads()
    succeeded = True

    while pending and succeeded:
        batch_size = compute_batch_size(
            len(pending), desired_batch_size, max_batch_size, num_threads
        )
        batch = pending[:batch_size]
        del pending[:batch_size]

        try:
            succeeded = consumer.persist(batch)
        except BaseException:
            pending[:0] = batch
            raise
        if not succeeded:
            pending[:0] = batch
            log_entry = {
                "event": "batch_requeued",
                "consumer": consumer.name,
                "batch_size": len(batch),
                "queue_length": len(pending),
            }
            logger.info(json.dumps(log_entry))

    return succeeded
