"""Tests for the Consumer protocol and BaseConsumer."""

from __future__ import annotations

import doctest

import pytest

from batch_ingest.consumers.base import BaseConsumer, Consumer
from batch_ingest.consumers.models import ConsumerConfig, DeliveryMode
from batch_ingest.encoding import Record
from batch_ingest.errors import ConfigurationError


class RecordingConsumer(BaseConsumer):
    """Minimal BaseConsumer subclass recording delivered batches."""

    name = "recording"

    def __init__(self, config: ConsumerConfig, ok: bool = True) -> None:
        super().__init__(config)
        self.ok = ok
        self.batches: list[list[Record]] = []

    def _persist(self, batch: list[Record]) -> bool:
        self.batches.append(batch)
        if not self.ok:
            self.handle_error(500, "rejected")
        return self.ok


class TestConsumerProtocol:
    """Test cases for Consumer protocol conformance."""

    def test_base_consumer_subclass_implements_protocol(self) -> None:
        """A BaseConsumer subclass should satisfy the Consumer protocol."""
        assert isinstance(RecordingConsumer(ConsumerConfig()), Consumer)

    def test_stub_consumer_implements_protocol(self, stub_consumer) -> None:
        """Any object with name, get_num_threads and persist should conform."""
        assert isinstance(stub_consumer, Consumer)

    def test_docstring_example_runs(self) -> None:
        """The Consumer docstring example should run with only its own imports."""
        tests = doctest.DocTestFinder().find(Consumer, "Consumer", globs={})
        runner = doctest.DocTestRunner()
        results = [runner.run(test) for test in tests]

        assert sum(result.attempted for result in results) == 3
        assert sum(result.failed for result in results) == 0


class TestBaseConsumer:
    """Test cases for shared consumer behavior."""

    def test_empty_batch_succeeds_without_io(self) -> None:
        """An empty batch should return True without reaching _persist."""
        consumer = RecordingConsumer(ConsumerConfig())
        assert consumer.persist([]) is True
        assert consumer.batches == []

    def test_default_mode_is_sync(self) -> None:
        """Without an explicit mode the default should be used."""
        assert RecordingConsumer(ConsumerConfig()).mode == DeliveryMode.SYNC

    def test_unsupported_mode_rejected(self) -> None:
        """A mode outside supported_modes should raise ConfigurationError."""
        with pytest.raises(ConfigurationError, match="does not support mode 'fork'"):
            RecordingConsumer(ConsumerConfig(mode=DeliveryMode.FORK))

    def test_single_thread_by_default(self) -> None:
        """Consumers should report one thread unless they override it."""
        assert RecordingConsumer(ConsumerConfig(num_threads=8)).get_num_threads() == 1

    def test_failure_reaches_error_callback(self) -> None:
        """handle_error should forward to the configured callback."""
        errors: list[tuple[int, str]] = []
        config = ConsumerConfig(error_callback=lambda code, msg: errors.append((code, msg)))
        consumer = RecordingConsumer(config, ok=False)

        assert consumer.persist([{"event": "x"}]) is False
        assert errors == [(500, "rejected")]
        assert consumer.error_count == 1
