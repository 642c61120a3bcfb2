"""Domain models for batch_ingest consumers.

This module defines the configuration and result types shared by every
consumer implementation.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from batch_ingest.errors import ConfigurationError, ErrorCallback

# Largest batch the collector accepts in one request.
PROTOCOL_MAX_BATCH_SIZE = 50

# Response body the collector returns when a form-encoded batch is accepted.
ACK_MARKER = "1"


class DeliveryMode(str, Enum):
    """How a consumer waits for the collector.

    Attributes:
        SYNC: Block until the collector answers and check the answer.
        ASYNC: Fire-and-forget write on a persistent socket; a complete write
            counts as success.
        FORK: Hand the request to a detached ``curl`` process; a successful
            spawn counts as success.
    """

    SYNC = "sync"
    ASYNC = "async"
    FORK = "fork"


class ConsumerKind(str, Enum):
    """Built-in consumer variants, keyed by their configuration name."""

    HTTP = "http"
    CONCURRENT_HTTP = "concurrent_http"
    SOCKET = "socket"
    FILE = "file"


@dataclass(frozen=True, slots=True)
class ConsumerConfig:
    """Immutable configuration for one consumer instance.

    Attributes:
        host: Collector host name, e.g. ``api.mixpanel.com``.
        endpoint: Host-relative path batches are posted to, e.g. ``/track``.
        use_ssl: Use https (HTTP consumers) or ssl (socket consumer).
        port: Explicit port; defaults to 443 with ssl and 80 without.
        connect_timeout: Seconds to wait for a connection (default: 5.0).
        timeout: Seconds allowed for a whole request (default: 30.0).
        num_threads: Parallel requests per persist call (default: 1).
        mode: Delivery mode; None lets the consumer pick its own default.
        debug: Enable delivery tracing.
        error_callback: Optional ``callback(code, message)`` run on failures.
        import_mode: Post event batches to the bulk import endpoint.
        authorization_token: Basic auth token for import mode.
        project_id: Project id appended to the import endpoint.
        ignore_http_errors: In import mode, report non-2xx responses without
            failing the batch.
        people_endpoint: Endpoint that keeps the form protocol in import mode.
        file_path: Destination of the file consumer.
    """

    host: str = "api.mixpanel.com"
    endpoint: str = "/track"
    use_ssl: bool = True
    port: int | None = None
    connect_timeout: float = 5.0
    timeout: float = 30.0
    num_threads: int = 1
    mode: DeliveryMode | None = None
    debug: bool = False
    error_callback: ErrorCallback | None = None
    import_mode: bool = False
    authorization_token: str = ""
    project_id: str = ""
    ignore_http_errors: bool = False
    people_endpoint: str = "/engage"
    file_path: str = "messages.txt"

    def __post_init__(self) -> None:
        if self.num_threads < 1:
            raise ConfigurationError("num_threads must be at least 1")
        if self.connect_timeout <= 0:
            raise ConfigurationError("connect_timeout must be positive")
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be positive")

    @property
    def http_protocol(self) -> str:
        """URL scheme for HTTP consumers."""
        return "https" if self.use_ssl else "http"

    @property
    def socket_protocol(self) -> str:
        """Transport name for the socket consumer."""
        return "ssl" if self.use_ssl else "tcp"

    @property
    def effective_port(self) -> int:
        """Port to connect to."""
        if self.port is not None:
            return self.port
        return 443 if self.use_ssl else 80

    @property
    def base_url(self) -> str:
        """Scheme, host and explicit port, without a path."""
        netloc = self.host if self.port is None else f"{self.host}:{self.port}"
        return f"{self.http_protocol}://{netloc}"

    @property
    def url(self) -> str:
        """Full URL batches are posted to."""
        return f"{self.base_url}{self.endpoint}"

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> ConsumerConfig:
        """Build a config from a loose option mapping.

        Accepts the flat option keys used by older clients (``fork``,
        ``async``, ``import``, ``file``), clamps ``num_threads`` to at least 1
        and ignores unknown keys.

        Args:
            options: Option mapping, e.g. merged client settings.

        Returns:
            A validated ConsumerConfig.
        """
        mode: DeliveryMode | None = None
        if options.get("mode") is not None:
            mode = DeliveryMode(options["mode"])
        elif options.get("fork"):
            mode = DeliveryMode.FORK
        elif "async" in options:
            mode = DeliveryMode.ASYNC if options["async"] else DeliveryMode.SYNC

        defaults = cls()
        return cls(
            host=options.get("host", defaults.host),
            endpoint=options.get("endpoint", defaults.endpoint),
            use_ssl=bool(options.get("use_ssl", defaults.use_ssl)),
            port=options.get("port"),
            connect_timeout=float(options.get("connect_timeout", defaults.connect_timeout)),
            timeout=float(options.get("timeout", defaults.timeout)),
            num_threads=max(1, int(options.get("num_threads", defaults.num_threads))),
            mode=mode,
            debug=bool(options.get("debug", defaults.debug)),
            error_callback=options.get("error_callback"),
            import_mode=bool(options.get("import_mode", options.get("import", False))),
            authorization_token=options.get("authorization_token", ""),
            project_id=str(options.get("project_id", "")),
            ignore_http_errors=bool(options.get("ignore_http_errors", False)),
            people_endpoint=options.get("people_endpoint", defaults.people_endpoint),
            file_path=str(options.get("file_path", options.get("file", defaults.file_path))),
        )


@dataclass(frozen=True, slots=True)
class SubmitResult:
    """Outcome of a single HTTP request issued by a consumer.

    Attributes:
        url: The URL that was posted to.
        size: Number of records carried by the request.
        status_code: HTTP status code (0 if no response was received).
        body: Trimmed response body ("" if no response was received).
        latency_ms: Time taken for the request in milliseconds.
        error: Error message if the request failed, None otherwise.
    """

    url: str
    size: int
    status_code: int
    body: str
    latency_ms: float
    error: str | None

    @property
    def ok(self) -> bool:
        """Whether the request counts as delivered."""
        return self.error is None
