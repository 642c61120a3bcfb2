"""Concurrent HTTP consumer using httpx.AsyncClient.

This module splits each batch into sub-batches and posts them in parallel:
- httpx.AsyncClient shared by every request of one persist call
- asyncio.TaskGroup for structured concurrency (Python 3.11+)
- a single join point collecting every SubmitResult before returning

Features:
- Form mode: one ``data=<base64 JSON>`` request per sub-batch, acknowledged by "1"
- Import mode: raw JSON array with Basic auth against the bulk import endpoint
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Coroutine
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

import httpx

from batch_ingest.batching import split_batch
from batch_ingest.consumers.base import BaseConsumer
from batch_ingest.consumers.models import ACK_MARKER, ConsumerConfig, SubmitResult
from batch_ingest.encoding import FORM_FIELD, Record, encode

T = TypeVar("T")


def _run_blocking(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion from synchronous code.

    Uses the calling thread when no event loop is running there, otherwise a
    one-shot worker thread with its own loop.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    with ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, coro).result()


class ConcurrentHttpConsumer(BaseConsumer):
    """HTTP consumer issuing up to ``num_threads`` requests per batch.

    The batch is split into ``num_threads`` contiguous sub-batches of
    ``ceil(len(batch) / num_threads)`` records. All sub-requests run
    concurrently and are joined before ``persist`` returns; the batch fails
    if any sub-request fails.

    Args:
        config: Consumer configuration.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport`` in tests.

    Example:
        ```python
        consumer = ConcurrentHttpConsumer(
            ConsumerConfig(host="api.mixpanel.com", endpoint="/track", num_threads=4)
        )
        consumer.persist(records)  # up to 4 parallel POSTs
        ```
    """

    name = "concurrent_http"

    def __init__(
        self,
        config: ConsumerConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(config)
        self._transport = transport
        self._last_results: list[SubmitResult] = []

    def get_num_threads(self) -> int:
        """Number of sub-requests issued in parallel per batch."""
        return self._config.num_threads

    @property
    def last_results(self) -> list[SubmitResult]:
        """Per-request outcomes of the most recent persist call."""
        return list(self._last_results)

    @property
    def import_url(self) -> str:
        """Bulk import endpoint URL."""
        return f"{self._config.base_url}/import?project_id={self._config.project_id}"

    def _uses_import(self) -> bool:
        return self._config.import_mode and self._config.endpoint != self._config.people_endpoint

    def _persist(self, batch: list[Record]) -> bool:
        if self._uses_import():
            results = _run_blocking(self._execute_import(self.import_url, batch))
        else:
            results = _run_blocking(self._execute(self._config.url, batch))

        self._last_results = results
        return all(result.ok for result in results)

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self._config.timeout, connect=self._config.connect_timeout)
        limits = httpx.Limits(
            max_connections=self._config.num_threads,
            max_keepalive_connections=self._config.num_threads,
        )
        return httpx.AsyncClient(timeout=timeout, limits=limits, transport=self._transport)

    async def _execute(self, url: str, batch: list[Record]) -> list[SubmitResult]:
        """Post sub-batches concurrently in form mode.

        Args:
            url: Destination URL.
            batch: Records to split and send.

        Returns:
            One SubmitResult per sub-batch, in sub-batch order.
        """
        pieces = split_batch(batch, self._config.num_threads)
        self._tracer.trace(
            "concurrent_dispatch",
            destination=url,
            size=len(batch),
            sub_batches=[len(piece) for piece in pieces],
        )

        async with self._create_client() as client:
            async with asyncio.TaskGroup() as tg:
                tasks = [tg.create_task(self._post_form(client, url, piece)) for piece in pieces]

        return [task.result() for task in tasks]

    async def _execute_import(self, url: str, batch: list[Record]) -> list[SubmitResult]:
        """Post the whole batch as a JSON array to the bulk import endpoint."""
        headers = {"Authorization": f"Basic {self._config.authorization_token}"}
        self._tracer.attempt(url, size=len(batch))

        async with self._create_client() as client:
            result = await self._send(
                client,
                url,
                len(batch),
                json=batch,
                headers=headers,
                require_ack=False,
            )
        return [result]

    async def _post_form(
        self, client: httpx.AsyncClient, url: str, piece: list[Record]
    ) -> SubmitResult:
        data = encode(piece)
        self._tracer.attempt(url, size=len(piece), bytes_out=len(data))
        return await self._send(client, url, len(piece), data={FORM_FIELD: data}, require_ack=True)

    async def _send(
        self,
        client: httpx.AsyncClient,
        url: str,
        size: int,
        *,
        require_ack: bool,
        **request_kwargs: Any,
    ) -> SubmitResult:
        """Send one request and classify its outcome.

        Never raises for transport or protocol failures: they are reported
        through the error hook and returned as a failed SubmitResult.
        """
        start_time = time.perf_counter()
        error: str | None = None
        status_code = 0
        body = ""

        try:
            response = await client.post(url, **request_kwargs)
            status_code = response.status_code
            body = response.text.strip()
            if not response.is_success:
                message = f"HTTP Error: {status_code} {response.reason_phrase} - Body: {body}"
                self.handle_error(status_code, message)
                if require_ack or not self._config.ignore_http_errors:
                    error = message
            elif require_ack and body != ACK_MARKER:
                error = "Unexpected acknowledgement"
                self.handle_error(0, body)
        except httpx.TimeoutException as e:
            error = "Timeout"
            self.handle_error(-1, f"Timeout posting to {url}: {e}")
        except httpx.HTTPError as e:
            error = f"Request Error: {e}"
            self.handle_error(-1, error)

        latency_ms = (time.perf_counter() - start_time) * 1000
        return SubmitResult(
            url=url,
            size=size,
            status_code=status_code,
            body=body,
            latency_ms=latency_ms,
            error=error,
        )
