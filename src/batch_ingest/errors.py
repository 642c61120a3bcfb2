"""Error taxonomy and delivery error reporting."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

ErrorCallback = Callable[[int, str], Any]


class BatchIngestError(Exception):
    """Base class for errors raised by batch_ingest."""

    pass


class ConfigurationError(BatchIngestError, ValueError):
    """Raised at construction time when a consumer cannot work as configured.

    Covers invalid values (non-positive timeouts, zero threads) as well as
    missing runtime capabilities such as a ``curl`` binary for fork mode.
    """

    pass


class AliasError(BatchIngestError):
    """Raised when a synchronous alias delivery is not acknowledged."""

    pass


class ErrorReporter:
    """Forward delivery failures to a caller callback and the log.

    Every consumer failure path goes through :meth:`report` before the
    consumer returns ``False``. The callback runs inline on the delivery
    path; an exception it raises is logged and does not escape.

    Args:
        callback: Optional ``callback(code, message)``.
        logger: Logger receiving the structured error entries.
        source: Name of the reporting component, included in log entries.

    Example:
        ```python
        errors = []
        reporter = ErrorReporter(callback=lambda code, msg: errors.append((code, msg)))
        reporter.report(500, "Internal Server Error")
        ```
    """

    def __init__(
        self,
        callback: ErrorCallback | None = None,
        logger: logging.Logger | None = None,
        source: str = "consumer",
    ) -> None:
        self._callback = callback
        self._logger = logger or logging.getLogger(__name__)
        self._source = source
        self._error_count = 0

    @property
    def error_count(self) -> int:
        """Number of failures reported so far."""
        return self._error_count

    def report(self, code: int, message: str) -> None:
        """Report a single delivery failure.

        Args:
            code: Status code, errno or 0 when no numeric code applies.
            message: Human-readable failure description.
        """
        self._error_count += 1

        if self._callback is not None:
            try:
                self._callback(code, message)
            except Exception:
                self._logger.exception("error_callback raised while reporting code=%s", code)

        log_entry = {
            "event": "delivery_error",
            "source": self._source,
            "code": code,
            "message": message,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        self._logger.warning(json.dumps(log_entry))
