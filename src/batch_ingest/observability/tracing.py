"""Debug tracing of delivery attempts."""

import json
import logging
import time
from typing import Any

logger = logging.getLogger(__name__)


class DeliveryTracer:
    """Emit structured JSON debug entries for delivery attempts.

    Tracing is inert unless ``enabled`` is true. It only observes: no method
    here raises or changes what a consumer does next.

    Args:
        source: Name of the traced component (e.g. ``"socket"``).
        enabled: Whether entries are emitted. Usually the ``debug`` flag.
        structured_logging: Emit JSON entries instead of plain text. Default True.

    Example:
        ```python
        tracer = DeliveryTracer("http", enabled=True)
        tracer.attempt("https://api.example.com/track", size=12, bytes_out=840)
        ```
    """

    def __init__(
        self,
        source: str,
        enabled: bool = False,
        structured_logging: bool = True,
    ) -> None:
        self._source = source
        self._enabled = enabled
        self._structured_logging = structured_logging

    @property
    def enabled(self) -> bool:
        """Whether tracing is active."""
        return self._enabled

    def trace(self, event: str, **fields: Any) -> None:
        """Emit one trace entry.

        Args:
            event: Short event name, e.g. ``"socket_write"``.
            **fields: Extra JSON-serializable fields for the entry.
        """
        if not self._enabled:
            return

        if self._structured_logging:
            log_data = {
                "event": event,
                "source": self._source,
                "timestamp": time.time(),
                **fields,
            }
            logger.debug(json.dumps(log_data, default=str))
        else:
            details = ", ".join(f"{key}={value}" for key, value in fields.items())
            logger.debug(f"[{self._source}] {event}: {details}")

    def attempt(self, destination: str, size: int, bytes_out: int | None = None) -> None:
        """Trace the start of a delivery attempt."""
        self.trace("delivery_attempt", destination=destination, size=size, bytes_out=bytes_out)

    def retry(self, destination: str, reason: str) -> None:
        """Trace a transport-level retry."""
        self.trace("delivery_retry", destination=destination, reason=reason)
