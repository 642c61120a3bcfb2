"""Blocking HTTP consumer using the `requests` library.

Posts each batch as a single form-encoded request and waits for the
collector's acknowledgement. In fork mode the request is handed to a detached
``curl`` process instead.
"""

from __future__ import annotations

import shutil
import subprocess
import time

import requests

from batch_ingest.consumers.base import BaseConsumer
from batch_ingest.consumers.models import ACK_MARKER, ConsumerConfig, DeliveryMode, SubmitResult
from batch_ingest.encoding import FORM_FIELD, Record, encode
from batch_ingest.errors import ConfigurationError


class HttpConsumer(BaseConsumer):
    """Blocking HTTP consumer.

    Sends one POST per batch through a reusable ``requests.Session``. A batch
    is accepted when the response is 2xx and its trimmed body equals the
    acknowledgement marker ``"1"``.

    Attributes:
        name: Always "http".
        timeout: Overall request timeout in seconds.
        connect_timeout: Connection timeout in seconds.

    Example:
        >>> consumer = HttpConsumer(ConsumerConfig(host="api.mixpanel.com", endpoint="/track"))
        >>> consumer.persist([{"event": "signup", "properties": {"distinct_id": "42"}}])
        True
    """

    name = "http"
    supported_modes = frozenset({DeliveryMode.SYNC, DeliveryMode.FORK})

    def __init__(self, config: ConsumerConfig, session: requests.Session | None = None) -> None:
        """Initialize the HttpConsumer.

        Args:
            config: Consumer configuration.
            session: Optional session to reuse; one is created lazily otherwise.

        Raises:
            ConfigurationError: If fork mode is requested and ``curl`` is not on PATH.
        """
        super().__init__(config)
        self._session = session
        self._curl: str | None = None

        if self.mode == DeliveryMode.FORK:
            self._curl = shutil.which("curl")
            if self._curl is None:
                raise ConfigurationError(
                    'The "curl" executable must be on PATH to use the http consumer in fork '
                    "mode. Use mode=sync or another consumer."
                )

    @property
    def timeout(self) -> float:
        """Overall request timeout in seconds."""
        return self._config.timeout

    @property
    def connect_timeout(self) -> float:
        """Connection timeout in seconds."""
        return self._config.connect_timeout

    def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session is not None:
            self._session.close()
            self._session = None

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _persist(self, batch: list[Record]) -> bool:
        url = self._config.url
        if self._curl is not None:
            return self._execute_forked(self._curl, url, batch)
        result = self._execute(url, batch)
        return result.ok

    def _execute(self, url: str, batch: list[Record]) -> SubmitResult:
        """Post a batch and wait for the acknowledgement.

        Args:
            url: Destination URL.
            batch: Records to send.

        Returns:
            A SubmitResult describing the request outcome.
        """
        data = encode(batch)
        self._tracer.attempt(url, size=len(batch), bytes_out=len(data))

        start_time = time.perf_counter()
        error: str | None = None
        status_code = 0
        body = ""

        try:
            response = self._get_session().post(
                url,
                data={FORM_FIELD: data},
                timeout=(self.connect_timeout, self.timeout),
            )
            status_code = response.status_code
            body = response.text.strip()
            if not 200 <= status_code < 300:
                error = f"HTTP Error: {status_code} {response.reason}"
                self.handle_error(status_code, f"{error} - Body: {body}")
            elif body != ACK_MARKER:
                error = "Unexpected acknowledgement"
                self.handle_error(0, body)
        except requests.Timeout as e:
            error = "Timeout"
            self.handle_error(-1, f"Timeout posting to {url}: {e}")
        except requests.ConnectionError as e:
            error = "Connection Error"
            self.handle_error(-1, f"Connection error posting to {url}: {e}")
        except requests.RequestException as e:
            error = f"Request Error: {e}"
            self.handle_error(-1, error)

        latency_ms = (time.perf_counter() - start_time) * 1000
        self._tracer.trace(
            "delivery_result",
            destination=url,
            status_code=status_code,
            latency_ms=round(latency_ms, 3),
            error=error,
        )

        return SubmitResult(
            url=url,
            size=len(batch),
            status_code=status_code,
            body=body,
            latency_ms=latency_ms,
            error=error,
        )

    def _execute_forked(self, curl: str, url: str, batch: list[Record]) -> bool:
        """Hand the request to a detached ``curl`` process.

        ``curl`` is the executable path resolved for fork mode. The process is
        not waited on; success means it was spawned.
        """
        data = encode(batch)
        self._tracer.attempt(url, size=len(batch), bytes_out=len(data))

        command = [
            curl,
            "-X",
            "POST",
            "--connect-timeout",
            str(self.connect_timeout),
            "--max-time",
            str(self.timeout),
            "-H",
            "Content-Type: application/x-www-form-urlencoded",
            "--data-urlencode",
            f"{FORM_FIELD}={data}",
            url,
        ]

        try:
            subprocess.Popen(
                command,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            self.handle_error(e.errno or -1, f"Failed to spawn curl: {e}")
            return False

        return True
