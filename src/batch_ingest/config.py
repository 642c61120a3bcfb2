"""Client configuration with environment variable support."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from batch_ingest.consumers.models import ConsumerConfig, DeliveryMode
from batch_ingest.errors import ConfigurationError, ErrorCallback

ENV_PREFIX = "BATCH_INGEST_"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _parse_number(name: str, value: str, kind: type[int] | type[float]) -> int | float:
    try:
        return kind(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be {kind.__name__}, got {value!r}") from None


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Settings for a client and the consumers it builds.

    Attributes:
        max_batch_size: Records per request, capped at 50 by the queue.
        max_queue_size: Queue length beyond which enqueue forces a flush.
        debug: Enable delivery tracing.
        consumer: Registry name of the consumer to use (default: "http").
        host: Collector host name.
        events_endpoint: Host-relative endpoint for events.
        people_endpoint: Host-relative endpoint for profile updates.
        use_ssl: Use https / ssl.
        error_callback: Optional ``callback(code, message)`` run on failures.
        connect_timeout: Connection timeout in seconds.
        timeout: Overall request timeout in seconds.
        num_threads: Parallel requests for the concurrent consumer.
        mode: Delivery mode; None lets each consumer pick its default.
        import_mode: Send events to the bulk import endpoint.
        authorization_token: Basic auth token for import mode.
        project_id: Project id for import mode.
        ignore_http_errors: In import mode, do not fail on non-2xx responses.
        file_path: Sink of the file consumer.
        port: Explicit collector port.
    """

    max_batch_size: int = 50
    max_queue_size: int = 1000
    debug: bool = False
    consumer: str = "http"
    host: str = "api.mixpanel.com"
    events_endpoint: str = "/track"
    people_endpoint: str = "/engage"
    use_ssl: bool = True
    error_callback: ErrorCallback | None = None
    connect_timeout: float = 5.0
    timeout: float = 30.0
    num_threads: int = 1
    mode: DeliveryMode | None = None
    import_mode: bool = False
    authorization_token: str = ""
    project_id: str = ""
    ignore_http_errors: bool = False
    file_path: str = "messages.txt"
    port: int | None = None

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX, **overrides: Any) -> ClientConfig:
        """Load settings from ``<prefix><FIELD>`` environment variables.

        Unset variables keep their defaults. Keyword overrides win over the
        environment (use them for values such as ``error_callback``).

        Raises:
            ConfigurationError: If a variable cannot be parsed.
        """
        values: dict[str, Any] = {}
        for field in dataclasses.fields(cls):
            if field.name == "error_callback":
                continue
            env_name = f"{prefix}{field.name.upper()}"
            raw = os.getenv(env_name)
            if raw is None:
                continue

            if field.name == "mode":
                values["mode"] = cls._parse_mode(env_name, raw)
            elif field.name == "port":
                values["port"] = int(_parse_number(env_name, raw, int)) if raw else None
            elif isinstance(field.default, bool):
                values[field.name] = _parse_bool(env_name, raw)
            elif isinstance(field.default, int):
                values[field.name] = int(_parse_number(env_name, raw, int))
            elif isinstance(field.default, float):
                values[field.name] = float(_parse_number(env_name, raw, float))
            else:
                values[field.name] = raw

        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> ClientConfig:
        """Merge an option mapping over the defaults.

        Accepts the flat keys of older clients: ``fork`` and ``async`` map to
        ``mode``, ``import`` to ``import_mode`` and ``file`` to ``file_path``.
        Unknown keys are ignored.
        """
        known = {field.name for field in dataclasses.fields(cls)}
        values = {key: value for key, value in options.items() if key in known}

        if "mode" not in values:
            if options.get("fork"):
                values["mode"] = DeliveryMode.FORK
            elif "async" in options:
                values["mode"] = DeliveryMode.ASYNC if options["async"] else DeliveryMode.SYNC
        elif values["mode"] is not None:
            values["mode"] = DeliveryMode(values["mode"])
        if "import" in options and "import_mode" not in values:
            values["import_mode"] = bool(options["import"])
        if "file" in options and "file_path" not in values:
            values["file_path"] = str(options["file"])

        return cls(**values)

    @staticmethod
    def _parse_mode(name: str, raw: str) -> DeliveryMode | None:
        if not raw:
            return None
        try:
            return DeliveryMode(raw.strip().lower())
        except ValueError:
            choices = ", ".join(mode.value for mode in DeliveryMode)
            raise ConfigurationError(f"{name} must be one of {choices}, got {raw!r}") from None

    def consumer_config(self, endpoint: str, **overrides: Any) -> ConsumerConfig:
        """Build the ConsumerConfig for a given endpoint."""
        values: dict[str, Any] = {
            "host": self.host,
            "endpoint": endpoint,
            "use_ssl": self.use_ssl,
            "port": self.port,
            "connect_timeout": self.connect_timeout,
            "timeout": self.timeout,
            "num_threads": self.num_threads,
            "mode": self.mode,
            "debug": self.debug,
            "error_callback": self.error_callback,
            "import_mode": self.import_mode,
            "authorization_token": self.authorization_token,
            "project_id": self.project_id,
            "ignore_http_errors": self.ignore_http_errors,
            "people_endpoint": self.people_endpoint,
            "file_path": self.file_path,
        }
        values.update(overrides)
        return ConsumerConfig(**values)
