#!/usr/bin/env python3
"""Mock collector server for integration tests and benchmarks.

This module provides a local HTTP collector speaking the ingestion protocol
consumers deliver to. It supports:
- Form endpoints (``/track``, ``/engage``) answering "1" for accepted batches
- The bulk import endpoint (``/import``) with Basic auth checks
- Configurable fixed latency with optional seeded jitter
- Failure injection (first N requests fail, or a random error rate)

Usage:
    # Inside an event loop
    async with MockCollector(MockCollectorConfig()) as collector:
        ...

    # From blocking code (consumers are synchronous)
    with BackgroundCollector() as collector:
        consumer = HttpConsumer(collector.consumer_config("/track"))
"""

from __future__ import annotations

import asyncio
import random
import threading
from dataclasses import dataclass, field
from typing import Any

from aiohttp import web

from batch_ingest.consumers.models import ACK_MARKER, ConsumerConfig
from batch_ingest.encoding import FORM_FIELD, Record, decode


@dataclass(frozen=True, slots=True)
class MockCollectorConfig:
    """Configuration for the mock collector.

    Attributes:
        host: Host address to bind to (default: 127.0.0.1)
        port: Port to listen on; 0 picks a free port (default: 0)
        base_latency_ms: Fixed latency in milliseconds added to every response
        jitter_seed: Optional seed for reproducible random jitter
        error_rate: Probability of answering a request with a 500 (0-1)
        fail_first: Number of initial requests answered with a 500
        authorization_token: Expected Basic token on ``/import`` (None = any)
    """

    host: str = "127.0.0.1"
    port: int = 0
    base_latency_ms: float = 0.0
    jitter_seed: int | None = None
    error_rate: float = 0.0
    fail_first: int = 0
    authorization_token: str | None = None


@dataclass(frozen=True, slots=True)
class ReceivedBatch:
    """A batch accepted by the collector."""

    path: str
    query: dict[str, str]
    records: list[Record]


@dataclass
class MockCollector:
    """Async collector server built on aiohttp.

    Example:
        ```python
        async def main():
            async with MockCollector(MockCollectorConfig(base_latency_ms=5.0)) as collector:
                print(f"Collector at {collector.base_url}")

        asyncio.run(main())
        ```
    """

    config: MockCollectorConfig = field(default_factory=MockCollectorConfig)
    _request_count: int = field(default=0, init=False)
    _received: list[ReceivedBatch] = field(default_factory=list, init=False)
    _random: random.Random = field(default_factory=random.Random, init=False)
    _runner: web.AppRunner | None = field(default=None, init=False)
    _site: web.TCPSite | None = field(default=None, init=False)
    _bound_port: int | None = field(default=None, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def __post_init__(self) -> None:
        """Initialize random number generator for jitter and error injection."""
        if self.config.jitter_seed is not None:
            self._random = random.Random(self.config.jitter_seed)

    @property
    def port(self) -> int:
        """Port the server is bound to."""
        return self._bound_port or self.config.port

    @property
    def base_url(self) -> str:
        """Get the base URL of the server."""
        return f"http://{self.config.host}:{self.port}"

    @property
    def request_count(self) -> int:
        """Number of batch requests handled so far."""
        return self._request_count

    @property
    def received(self) -> list[ReceivedBatch]:
        """Copy of the accepted batches, in arrival order."""
        with self._lock:
            return list(self._received)

    def records(self, path: str | None = None) -> list[Record]:
        """Accepted records, optionally restricted to one endpoint path."""
        return [
            record
            for batch in self.received
            if path is None or batch.path == path
            for record in batch.records
        ]

    def _calculate_delay(self) -> float:
        base_delay = self.config.base_latency_ms / 1000.0
        if self.config.jitter_seed is not None:
            return base_delay + self._random.uniform(0, 0.2) * base_delay
        return base_delay

    def _should_fail(self) -> bool:
        self._request_count += 1
        if self._request_count <= self.config.fail_first:
            return True
        return self._random.random() < self.config.error_rate

    def _store(self, request: web.Request, records: list[Record]) -> None:
        with self._lock:
            self._received.append(
                ReceivedBatch(path=request.path, query=dict(request.query), records=records)
            )

    async def handle_form(self, request: web.Request) -> web.Response:
        """Handle form-encoded batches (``data=<base64 JSON>``).

        Returns:
            "1" when the batch was decoded and stored, "0" otherwise.
        """
        await asyncio.sleep(self._calculate_delay())
        if self._should_fail():
            return web.Response(text="0", status=500)

        form = await request.post()
        payload = form.get(FORM_FIELD)
        if not isinstance(payload, str):
            return web.Response(text="0")

        try:
            records = decode(payload)
        except ValueError:
            return web.Response(text="0")

        self._store(request, records)
        return web.Response(text=ACK_MARKER)

    async def handle_import(self, request: web.Request) -> web.Response:
        """Handle bulk import batches sent as a raw JSON array."""
        await asyncio.sleep(self._calculate_delay())
        if self._should_fail():
            return web.json_response({"error": "simulated error"}, status=500)

        expected = self.config.authorization_token
        if expected is not None and request.headers.get("Authorization") != f"Basic {expected}":
            return web.json_response({"error": "unauthorized"}, status=401)

        records = await request.json()
        if not isinstance(records, list):
            return web.json_response({"error": "expected a JSON array"}, status=400)

        self._store(request, records)
        return web.json_response({"code": 200, "num_records_imported": len(records)})

    def _create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/track", self.handle_form)
        app.router.add_post("/engage", self.handle_form)
        app.router.add_post("/import", self.handle_import)
        return app

    async def start(self) -> None:
        """Start the collector.

        Raises:
            RuntimeError: If the server is already running.
        """
        if self._runner is not None:
            raise RuntimeError("Server is already running")

        self._runner = web.AppRunner(self._create_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await self._site.start()

        self._bound_port = self.config.port
        if self._runner.addresses:
            address = self._runner.addresses[0]
            if isinstance(address, tuple) and len(address) >= 2:
                self._bound_port = address[1]

        self._request_count = 0

    async def stop(self) -> None:
        """Stop the collector.

        Raises:
            RuntimeError: If the server is not running.
        """
        if self._runner is None:
            raise RuntimeError("Server is not running")

        await self._runner.cleanup()
        self._runner = None
        self._site = None
        self._bound_port = None

    async def __aenter__(self) -> MockCollector:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()


class BackgroundCollector:
    """Run a MockCollector on its own event loop thread.

    Consumers block the calling thread, so the collector they talk to has to
    serve requests from another one.
    """

    def __init__(self, config: MockCollectorConfig | None = None) -> None:
        self.collector = MockCollector(config or MockCollectorConfig())
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)

    @property
    def host(self) -> str:
        return self.collector.config.host

    @property
    def port(self) -> int:
        return self.collector.port

    @property
    def base_url(self) -> str:
        return self.collector.base_url

    def consumer_config(self, endpoint: str = "/track", **overrides: Any) -> ConsumerConfig:
        """ConsumerConfig pointing at this collector over plain HTTP."""
        values: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "endpoint": endpoint,
            "use_ssl": False,
            "connect_timeout": 2.0,
            "timeout": 5.0,
        }
        values.update(overrides)
        return ConsumerConfig(**values)

    def start(self) -> None:
        self._thread.start()
        asyncio.run_coroutine_threadsafe(self.collector.start(), self._loop).result(timeout=10)

    def stop(self) -> None:
        asyncio.run_coroutine_threadsafe(self.collector.stop(), self._loop).result(timeout=10)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=10)
        self._loop.close()

    def __enter__(self) -> BackgroundCollector:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()
