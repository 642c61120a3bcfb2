"""Persistent socket consumer.

Writes hand-built HTTP/1.1 requests over one long-lived TCP (or TLS)
connection per consumer instance. A connection that fails mid-write is torn
down and the whole request is re-sent once on a fresh connection.
"""

from __future__ import annotations

import importlib.util
import socket
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from batch_ingest.consumers.base import BaseConsumer
from batch_ingest.consumers.models import ConsumerConfig, DeliveryMode
from batch_ingest.encoding import Record, form_body
from batch_ingest.errors import ConfigurationError

# Anything with send/recv/close, normally a socket.socket or ssl.SSLSocket.
SocketFactory = Callable[[], Any]

MAX_BYTES_PER_WRITE = 8192
RESPONSE_READ_SIZE = 2048


@dataclass(frozen=True, slots=True)
class SocketResponse:
    """Minimal parse of a collector response read from the socket."""

    status: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""

    @property
    def status_code(self) -> int:
        """Numeric status, 0 when the status line was unreadable."""
        return int(self.status) if self.status.isdigit() else 0

    @property
    def connection_close(self) -> bool:
        """Whether the server announced it is closing the connection."""
        return self.headers.get("connection", "").lower() == "close"


def parse_response(raw: str) -> SocketResponse:
    """Parse a status line, a header block and a trailing body line.

    Args:
        raw: Response text as read from the socket (possibly truncated).

    Returns:
        SocketResponse with lower-cased header names.
    """
    lines = raw.split("\n")
    status_parts = lines[0].strip().split(" ")
    status = status_parts[1] if len(status_parts) > 1 else ""

    headers: dict[str, str] = {}
    for line in lines[1:]:
        line = line.rstrip("\r")
        if not line:
            break
        name, sep, value = line.partition(":")
        if sep:
            headers[name.strip().lower()] = value.strip()

    body = lines[-1].strip() if len(lines) > 1 else ""
    return SocketResponse(status=status, headers=headers, body=body)


class SocketConsumer(BaseConsumer):
    """Consumer writing to a cached persistent socket.

    In ``ASYNC`` mode (the default) a fully written request counts as
    delivered and no response is read. In ``SYNC`` mode the response is read
    and parsed: anything but 200 fails the batch, and ``Connection: close``
    drops the cached socket so the next call reconnects.

    One instance owns one connection; it must not be shared between threads.

    Args:
        config: Consumer configuration.
        socket_factory: Optional callable returning a connected socket.

    Example:
        ```python
        consumer = SocketConsumer(ConsumerConfig(host="api.mixpanel.com", use_ssl=True))
        consumer.persist([{"event": "signup", "properties": {"distinct_id": "42"}}])
        consumer.close()
        ```
    """

    name = "socket"
    supported_modes = frozenset({DeliveryMode.SYNC, DeliveryMode.ASYNC})
    default_mode = DeliveryMode.ASYNC

    def __init__(
        self,
        config: ConsumerConfig,
        socket_factory: SocketFactory | None = None,
    ) -> None:
        """Initialize the SocketConsumer.

        Raises:
            ConfigurationError: If the runtime cannot open raw sockets, or
                TLS is requested without ssl support.
        """
        super().__init__(config)

        if socket_factory is None:
            if not hasattr(socket, "create_connection"):
                raise ConfigurationError(
                    "Raw socket support is required to use the socket consumer."
                )
            if config.use_ssl and importlib.util.find_spec("ssl") is None:
                raise ConfigurationError(
                    "The ssl module is required to use the socket consumer with use_ssl=True."
                )

        self._socket_factory = socket_factory or self._open_connection
        self._socket: Any = None
        self._connection_attempts = 0

    @property
    def destination(self) -> str:
        """Connection target, e.g. ``ssl://api.mixpanel.com:443``."""
        return f"{self._config.socket_protocol}://{self._config.host}:{self._config.effective_port}"

    @property
    def connection_attempts(self) -> int:
        """Number of times a new connection was requested."""
        return self._connection_attempts

    @property
    def is_connected(self) -> bool:
        """Whether a cached connection is currently held."""
        return self._socket is not None

    def close(self) -> None:
        """Close the cached connection, if any."""
        self._destroy_socket()

    def build_request(self, batch: list[Record]) -> bytes:
        """Build the raw HTTP request carrying a batch."""
        data = form_body(batch)
        host = self._config.host
        if self._config.port is not None:
            host = f"{host}:{self._config.port}"

        request = (
            f"POST {self._config.endpoint} HTTP/1.1\r\n"
            f"Host: {host}\r\n"
            "Content-Type: application/x-www-form-urlencoded\r\n"
            "Accept: application/json\r\n"
            f"Content-Length: {len(data)}\r\n"
            "\r\n"
            f"{data}"
        )
        return request.encode("utf-8")

    def _persist(self, batch: list[Record]) -> bool:
        sock = self._get_socket()
        if sock is None:
            return False

        payload = self.build_request(batch)
        self._tracer.attempt(self.destination, size=len(batch), bytes_out=len(payload))
        return self._write(sock, payload)

    def _open_connection(self) -> Any:
        """Open a new connection to the collector."""
        sock = socket.create_connection(
            (self._config.host, self._config.effective_port),
            timeout=self._config.connect_timeout,
        )
        if self._config.use_ssl:
            import ssl

            context = ssl.create_default_context()
            try:
                sock = context.wrap_socket(sock, server_hostname=self._config.host)
            except OSError:
                sock.close()
                raise
        sock.settimeout(self._config.timeout)
        return sock

    def _get_socket(self) -> Any:
        """Return the cached socket or open a new one."""
        if self._socket is not None:
            self._tracer.trace("socket_reuse", destination=self.destination)
            return self._socket
        return self._create_socket()

    def _create_socket(self, retry: bool = True) -> Any:
        """Open, cache and return a new socket; retry the open once on error."""
        self._connection_attempts += 1
        self._tracer.trace("socket_open", destination=self.destination, retry=not retry)

        try:
            sock = self._socket_factory()
        except OSError as e:
            self.handle_error(e.errno or -1, f"Could not connect to {self.destination}: {e}")
            if retry:
                return self._create_socket(retry=False)
            return None

        self._socket = sock
        return sock

    def _destroy_socket(self) -> None:
        sock = self._socket
        self._socket = None
        if sock is None:
            return
        try:
            sock.close()
        except OSError as e:
            self._tracer.trace("socket_close_failed", destination=self.destination, error=str(e))

    def _write(self, sock: Any, payload: bytes, retry: bool = True) -> bool:
        """Write ``payload`` in bounded chunks.

        On a failed write the socket is destroyed and the full payload is
        re-sent once over a new connection. A second failure is terminal.
        """
        view = memoryview(payload)
        total = len(payload)
        sent = 0
        socket_closed = False

        while not socket_closed and sent < total:
            try:
                written = sock.send(view[sent : sent + MAX_BYTES_PER_WRITE])
            except OSError as e:
                self.handle_error(e.errno or -1, f"Socket write failed: {e}")
                socket_closed = True
                break

            self._tracer.trace("socket_write", destination=self.destination, bytes=written)
            if written:
                sent += written
            else:
                self.handle_error(-1, "Socket closed by peer during write")
                socket_closed = True

        if socket_closed:
            self._destroy_socket()
            if retry:
                self._tracer.retry(self.destination, reason="write_failed")
                new_sock = self._get_socket()
                if new_sock is not None:
                    return self._write(new_sock, payload, retry=False)
            return False

        if self.mode == DeliveryMode.SYNC:
            return self._read_response(sock)
        return True

    def _read_response(self, sock: Any) -> bool:
        try:
            raw = sock.recv(RESPONSE_READ_SIZE)
        except OSError as e:
            self.handle_error(e.errno or -1, f"Socket read failed: {e}")
            self._destroy_socket()
            return False

        if not raw:
            self.handle_error(-1, "Connection closed before a response was received")
            self._destroy_socket()
            return False

        response = parse_response(raw.decode("utf-8", errors="replace"))
        if response.connection_close:
            self._destroy_socket()
            self._tracer.trace("socket_server_close", destination=self.destination)

        if response.status != "200":
            self.handle_error(response.status_code, response.body)
            return False
        return True
