"""Best-effort draining of queued records at teardown."""

from __future__ import annotations

import json
import logging
import weakref
from typing import TYPE_CHECKING

from batch_ingest.batching import flush_pending
from batch_ingest.encoding import Record

if TYPE_CHECKING:
    from batch_ingest.consumers.base import Consumer

logger = logging.getLogger(__name__)

DEFAULT_SHUTDOWN_ATTEMPTS = 10


def drain(
    pending: list[Record],
    consumer: Consumer,
    max_batch_size: int,
    max_attempts: int = DEFAULT_SHUTDOWN_ATTEMPTS,
    desired_batch_size: int = 50,
) -> bool:
    """Flush ``pending`` up to ``max_attempts`` times, stopping on success.

    Records still queued after the last attempt are dropped. This is the
    accepted data loss of a best-effort shutdown, logged but not raised.

    Args:
        pending: Queue contents, mutated in place.
        consumer: Consumer receiving each batch.
        max_batch_size: Collector cap on records per request.
        max_attempts: Number of flush attempts (default: 10).
        desired_batch_size: Records per request requested by the caller.

    Returns:
        True if everything was delivered.
    """
    attempts = 0
    success = not pending
    while not success and attempts < max_attempts:
        success = flush_pending(pending, consumer, desired_batch_size, max_batch_size)
        attempts += 1

    if not success:
        log_entry = {
            "event": "shutdown_records_dropped",
            "consumer": consumer.name,
            "dropped": len(pending),
            "attempts": attempts,
        }
        logger.warning(json.dumps(log_entry))
        pending.clear()

    return success


def attach_shutdown_flush(
    owner: object,
    pending: list[Record],
    consumer: Consumer,
    max_batch_size: int,
    max_attempts: int = DEFAULT_SHUTDOWN_ATTEMPTS,
) -> weakref.finalize:
    """Drain ``pending`` when ``owner`` is collected or the interpreter exits.

    The finalizer holds the list and consumer, never ``owner`` itself, so the
    owner can still be garbage collected. Calling the returned finalizer runs
    the drain immediately and at most once.
    """
    return weakref.finalize(owner, drain, pending, consumer, max_batch_size, max_attempts)
