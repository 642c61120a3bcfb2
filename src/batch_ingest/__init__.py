"""batch_ingest: batching event-ingestion client.

Records are buffered in memory, sliced into size-bounded batches and delivered
to a collector through interchangeable consumers (blocking HTTP, concurrent
HTTP, persistent socket, local file).
"""

from batch_ingest.config import ClientConfig
from batch_ingest.consumers import (
    BaseConsumer,
    ConcurrentHttpConsumer,
    Consumer,
    ConsumerConfig,
    ConsumerKind,
    DeliveryMode,
    FileConsumer,
    HttpConsumer,
    SocketConsumer,
)
from batch_ingest.encoding import decode, encode
from batch_ingest.errors import AliasError, BatchIngestError, ConfigurationError, ErrorReporter
from batch_ingest.producers import Client, EventsProducer, PeopleProducer
from batch_ingest.queue import EventQueue
from batch_ingest.registry import ConsumerRegistry, default_registry

__version__ = "0.1.0"

__all__ = [
    "AliasError",
    "BaseConsumer",
    "BatchIngestError",
    "Client",
    "ClientConfig",
    "ConcurrentHttpConsumer",
    "ConfigurationError",
    "Consumer",
    "ConsumerConfig",
    "ConsumerKind",
    "ConsumerRegistry",
    "DeliveryMode",
    "ErrorReporter",
    "EventQueue",
    "EventsProducer",
    "FileConsumer",
    "HttpConsumer",
    "PeopleProducer",
    "SocketConsumer",
    "decode",
    "default_registry",
    "encode",
]
