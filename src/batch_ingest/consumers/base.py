"""Base Protocol and shared behavior for consumers.

This module defines the Consumer protocol every delivery strategy follows and
BaseConsumer, which carries the behavior all built-in strategies share.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import ClassVar, Protocol, runtime_checkable

from batch_ingest.consumers.models import ConsumerConfig, DeliveryMode
from batch_ingest.encoding import Record
from batch_ingest.errors import ConfigurationError, ErrorReporter
from batch_ingest.observability.tracing import DeliveryTracer


@runtime_checkable
class Consumer(Protocol):
    """Protocol defining the interface for consumers.

    A consumer delivers one batch per ``persist`` call. The queue consults
    ``get_num_threads`` to size batches so a parallel consumer receives
    enough records to keep each of its workers busy.

    Example:
        >>> from batch_ingest.consumers.base import Consumer
        >>> from batch_ingest.consumers import ConsumerConfig, FileConsumer
        >>> isinstance(FileConsumer(ConsumerConfig()), Consumer)
        True
    """

    @property
    def name(self) -> str:
        """Name of the consumer implementation."""
        ...

    def get_num_threads(self) -> int:
        """Number of requests this consumer issues in parallel."""
        ...

    def persist(self, batch: list[Record]) -> bool:
        """Deliver a batch.

        Args:
            batch: Ordered records to deliver.

        Returns:
            True if the batch was accepted, False otherwise. Partial
            acceptance is reported as failure.
        """
        ...


class BaseConsumer(ABC):
    """Shared behavior for the built-in consumers.

    Subclasses implement ``_persist`` for non-empty batches. Empty batches
    are accepted without any I/O. Failures are reported through
    :meth:`handle_error`, which forwards to the configured error callback.

    Attributes:
        name: Identifier of the consumer, also its registry key.
        supported_modes: Delivery modes the subclass can honor.
        default_mode: Mode used when the config leaves ``mode`` unset.
    """

    name: ClassVar[str] = "base"
    supported_modes: ClassVar[frozenset[DeliveryMode]] = frozenset({DeliveryMode.SYNC})
    default_mode: ClassVar[DeliveryMode] = DeliveryMode.SYNC

    def __init__(self, config: ConsumerConfig) -> None:
        """Initialize the consumer.

        Args:
            config: Consumer configuration.

        Raises:
            ConfigurationError: If the configured mode is not supported.
        """
        self._config = config
        self._mode = config.mode or self.default_mode
        if self._mode not in self.supported_modes:
            supported = ", ".join(sorted(mode.value for mode in self.supported_modes))
            raise ConfigurationError(
                f"The {self.name} consumer does not support mode '{self._mode.value}' "
                f"(supported: {supported})"
            )

        self._logger = logging.getLogger(f"batch_ingest.consumers.{self.name}")
        self._reporter = ErrorReporter(
            callback=config.error_callback,
            logger=self._logger,
            source=self.name,
        )
        self._tracer = DeliveryTracer(self.name, enabled=config.debug)
        self._tracer.trace("consumer_created", mode=self._mode.value)

    @property
    def config(self) -> ConsumerConfig:
        """Configuration this consumer was built from."""
        return self._config

    @property
    def mode(self) -> DeliveryMode:
        """Effective delivery mode."""
        return self._mode

    @property
    def error_count(self) -> int:
        """Number of failures reported by this consumer."""
        return self._reporter.error_count

    def get_num_threads(self) -> int:
        """Number of requests/batches processed in parallel."""
        return 1

    def handle_error(self, code: int, message: str) -> None:
        """Report a delivery failure to the error callback and the log."""
        self._reporter.report(code, message)

    def persist(self, batch: list[Record]) -> bool:
        """Deliver a batch; an empty batch succeeds without I/O."""
        if not batch:
            return True
        return self._persist(batch)

    @abstractmethod
    def _persist(self, batch: list[Record]) -> bool:
        """Deliver a non-empty batch."""
        ...
