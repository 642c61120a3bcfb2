"""Consumers delivering batches to a collector or a local sink."""

from batch_ingest.consumers.base import BaseConsumer, Consumer
from batch_ingest.consumers.concurrent_consumer import ConcurrentHttpConsumer
from batch_ingest.consumers.file_consumer import FileConsumer
from batch_ingest.consumers.http_consumer import HttpConsumer
from batch_ingest.consumers.models import (
    ACK_MARKER,
    PROTOCOL_MAX_BATCH_SIZE,
    ConsumerConfig,
    ConsumerKind,
    DeliveryMode,
    SubmitResult,
)
from batch_ingest.consumers.socket_consumer import SocketConsumer

__all__ = [
    "ACK_MARKER",
    "PROTOCOL_MAX_BATCH_SIZE",
    "BaseConsumer",
    "ConcurrentHttpConsumer",
    "Consumer",
    "ConsumerConfig",
    "ConsumerKind",
    "DeliveryMode",
    "FileConsumer",
    "HttpConsumer",
    "SocketConsumer",
    "SubmitResult",
]
