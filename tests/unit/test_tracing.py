"""Tests for DeliveryTracer."""

from __future__ import annotations

import json
import logging

import pytest

from batch_ingest.observability import DeliveryTracer

LOGGER = "batch_ingest.observability.tracing"


class TestDeliveryTracer:
    """Test cases for DeliveryTracer."""

    def test_disabled_emits_nothing(self, caplog: pytest.LogCaptureFixture) -> None:
        """A disabled tracer should not log."""
        tracer = DeliveryTracer("http")

        with caplog.at_level(logging.DEBUG, logger=LOGGER):
            tracer.attempt("https://api.example.com/track", size=3)

        assert caplog.records == []
        assert tracer.enabled is False

    def test_enabled_emits_structured_entry(self, caplog: pytest.LogCaptureFixture) -> None:
        """An enabled tracer should log JSON at debug level."""
        tracer = DeliveryTracer("socket", enabled=True)

        with caplog.at_level(logging.DEBUG, logger=LOGGER):
            tracer.attempt("ssl://api.example.com:443", size=3, bytes_out=120)

        record = caplog.records[-1]
        assert record.levelno == logging.DEBUG
        entry = json.loads(record.getMessage())
        assert entry["event"] == "delivery_attempt"
        assert entry["source"] == "socket"
        assert entry["size"] == 3
        assert entry["bytes_out"] == 120

    def test_retry_entry(self, caplog: pytest.LogCaptureFixture) -> None:
        """retry() should log the reason."""
        tracer = DeliveryTracer("socket", enabled=True)

        with caplog.at_level(logging.DEBUG, logger=LOGGER):
            tracer.retry("tcp://localhost:80", reason="write_failed")

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["event"] == "delivery_retry"
        assert entry["reason"] == "write_failed"

    def test_plain_text_mode(self, caplog: pytest.LogCaptureFixture) -> None:
        """structured_logging=False should emit plain text."""
        tracer = DeliveryTracer("file", enabled=True, structured_logging=False)

        with caplog.at_level(logging.DEBUG, logger=LOGGER):
            tracer.trace("custom", path="/tmp/x")

        assert caplog.records[-1].getMessage() == "[file] custom: path=/tmp/x"
