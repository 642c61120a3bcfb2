"""Observability module for delivery tracing."""

from batch_ingest.observability.tracing import DeliveryTracer

__all__ = [
    "DeliveryTracer",
]
