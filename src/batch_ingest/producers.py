"""Producers shaping events and profile updates before they are queued."""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any, Self

from batch_ingest.config import ClientConfig
from batch_ingest.consumers.base import Consumer
from batch_ingest.consumers.models import DeliveryMode
from batch_ingest.encoding import Record
from batch_ingest.errors import AliasError
from batch_ingest.queue import EventQueue
from batch_ingest.registry import ConsumerRegistry, default_registry

logger = logging.getLogger(__name__)

_UUID_PATTERN = re.compile(r"^[a-z0-9]*-[a-z0-9]*-[a-z0-9]*-[a-z0-9]*-[a-z0-9]*$", re.IGNORECASE)


class BaseProducer(ABC):
    """Owns a queue and the consumer built for this producer's endpoint.

    Args:
        token: Project token stamped on every message.
        config: Client configuration (default: ClientConfig()).
        registry: Consumer registry (default: the built-in consumers).
        consumer: Ready-made consumer; skips the registry lookup when given.
        flush_on_exit: Drain the queue at teardown (default: True).
    """

    def __init__(
        self,
        token: str,
        config: ClientConfig | None = None,
        registry: ConsumerRegistry | None = None,
        consumer: Consumer | None = None,
        flush_on_exit: bool = True,
    ) -> None:
        self._token = token
        self._config = config or ClientConfig()
        self._registry = registry or default_registry()
        self._consumer = consumer or self._create_consumer()
        self._queue = EventQueue(
            self._consumer,
            max_queue_size=self._config.max_queue_size,
            max_batch_size=self._config.max_batch_size,
            flush_on_exit=flush_on_exit,
        )

    @property
    @abstractmethod
    def endpoint(self) -> str:
        """Endpoint consumers of this producer post to."""
        ...

    @property
    def token(self) -> str:
        """Project token."""
        return self._token

    @property
    def queue(self) -> EventQueue:
        """Underlying event queue."""
        return self._queue

    @property
    def pending(self) -> list[Record]:
        """Copy of the queued messages."""
        return self._queue.pending

    def _create_consumer(self, **overrides: Any) -> Consumer:
        consumer_config = self._config.consumer_config(self.endpoint, **overrides)
        return self._registry.create(self._config.consumer, consumer_config)

    def enqueue(self, message: Record) -> None:
        """Queue a prepared message."""
        self._queue.enqueue(message)

    def enqueue_all(self, messages: Iterable[Record]) -> None:
        """Queue prepared messages in order."""
        self._queue.enqueue_all(messages)

    def flush(self, desired_batch_size: int = 50) -> bool:
        """Deliver queued messages; see EventQueue.flush."""
        return self._queue.flush(desired_batch_size)

    def reset(self) -> None:
        """Drop queued messages without delivering them."""
        self._queue.reset()

    def close(self) -> bool:
        """Drain the queue with bounded retries."""
        return self._queue.close()


class EventsProducer(BaseProducer):
    """Track events, with super properties attached to each of them.

    Example:
        ```python
        events = EventsProducer("project-token")
        events.register("plan", "pro")
        events.track("signup", {"distinct_id": "42"})
        events.flush()
        ```
    """

    def __init__(self, token: str, config: ClientConfig | None = None, **kwargs: Any) -> None:
        self._super_properties: dict[str, Any] = {"mp_lib": "python"}
        super().__init__(token, config, **kwargs)

    @property
    def endpoint(self) -> str:
        return self._config.events_endpoint

    @property
    def super_properties(self) -> dict[str, Any]:
        """Copy of the properties attached to every event."""
        return dict(self._super_properties)

    def track(self, event: str, properties: Mapping[str, Any] | None = None) -> None:
        """Queue an event.

        ``token`` and ``time`` default to the producer token and the current
        Unix time when not given.
        """
        props = dict(properties or {})
        props.setdefault("token", self._token)
        props.setdefault("time", int(time.time()))

        self.enqueue({"event": event, "properties": {**self._super_properties, **props}})

    def register(self, name: str, value: Any) -> None:
        """Set a super property, overwriting any previous value."""
        self._super_properties[name] = value

    def register_all(self, props: Mapping[str, Any]) -> None:
        for name, value in props.items():
            self.register(name, value)

    def register_once(self, name: str, value: Any) -> None:
        """Set a super property unless it is already set."""
        if name not in self._super_properties:
            self.register(name, value)

    def register_all_once(self, props: Mapping[str, Any]) -> None:
        for name, value in props.items():
            self.register_once(name, value)

    def unregister(self, name: str) -> None:
        self._super_properties.pop(name, None)

    def unregister_all(self, names: Iterable[str]) -> None:
        for name in names:
            self.unregister(name)

    def get_property(self, name: str) -> Any:
        """Return a super property.

        Raises:
            KeyError: If the property is not registered.
        """
        return self._super_properties[name]

    def identify(self, user_id: str | int, anon_id: str | None = None) -> None:
        """Attach future events to ``user_id``.

        With a UUID-shaped ``anon_id`` an ``$identify`` event is queued to
        merge the anonymous id into ``user_id``; other anon ids are logged
        and ignored.
        """
        self.register("distinct_id", user_id)
        if not anon_id:
            return

        if not _UUID_PATTERN.match(anon_id):
            log_entry = {
                "event": "identify_skipped",
                "reason": "anon_id is not a UUID",
                "identified_id": str(user_id),
                "anon_id": anon_id,
            }
            logger.warning(json.dumps(log_entry))
            return

        self.track("$identify", {"$identified_id": user_id, "$anon_id": anon_id})

    def create_alias(self, distinct_id: str | int, alias: str | int) -> Record:
        """Map ``alias`` to ``distinct_id`` with a synchronous request.

        Aliasing is order sensitive, so the message bypasses the queue and
        goes out immediately through a fresh consumer in SYNC mode, which is
        closed once the request completes.

        Returns:
            The message that was sent.

        Raises:
            AliasError: If the collector did not accept the message.
        """
        message: Record = {
            "event": "$create_alias",
            "properties": {
                "distinct_id": distinct_id,
                "alias": alias,
                "token": self._token,
            },
        }

        consumer = self._create_consumer(mode=DeliveryMode.SYNC)
        try:
            accepted = consumer.persist([message])
        finally:
            close = getattr(consumer, "close", None)
            if close is not None:
                close()

        if not accepted:
            raise AliasError(
                f"Creating alias (distinct id: {distinct_id}, alias: {alias}) failed"
            )
        return message


class PeopleProducer(BaseProducer):
    """Queue profile updates.

    Every operation accepts ``ip`` (geolocation), ``ignore_time`` (do not
    touch "Last Seen") and ``ignore_alias`` (skip alias lookup).

    Example:
        ```python
        people = PeopleProducer("project-token")
        people.set("42", {"$email": "user@example.com"})
        people.increment("42", "logins", 1)
        people.flush()
        ```
    """

    @property
    def endpoint(self) -> str:
        return self._config.people_endpoint

    def _payload(
        self,
        distinct_id: str | int,
        operation: str,
        value: Any,
        ip: str | None = None,
        ignore_time: bool = False,
        ignore_alias: bool = False,
    ) -> Record:
        payload: Record = {
            "$token": self._token,
            "$distinct_id": distinct_id,
            operation: value,
        }
        if ip is not None:
            payload["$ip"] = ip
        if ignore_time:
            payload["$ignore_time"] = True
        if ignore_alias:
            payload["$ignore_alias"] = True
        return payload

    def set(self, distinct_id: str | int, props: Mapping[str, Any], **options: Any) -> None:
        """Set properties on a profile, overwriting existing values."""
        self.enqueue(self._payload(distinct_id, "$set", dict(props), **options))

    def set_once(self, distinct_id: str | int, props: Mapping[str, Any], **options: Any) -> None:
        """Set properties on a profile only where they are not set yet."""
        self.enqueue(self._payload(distinct_id, "$set_once", dict(props), **options))

    def remove(self, distinct_id: str | int, props: Iterable[str], **options: Any) -> None:
        """Unset properties on a profile."""
        self.enqueue(self._payload(distinct_id, "$unset", list(props), **options))

    def increment(
        self, distinct_id: str | int, prop: str, value: int | float, **options: Any
    ) -> None:
        """Add ``value`` to a numeric profile property."""
        self.enqueue(self._payload(distinct_id, "$add", {prop: value}, **options))

    def append(self, distinct_id: str | int, prop: str, value: Any, **options: Any) -> None:
        """Append to a list property; a list value is merged as a union."""
        operation = "$union" if isinstance(value, list) else "$append"
        self.enqueue(self._payload(distinct_id, operation, {prop: value}, **options))

    def track_charge(
        self,
        distinct_id: str | int,
        amount: str | float,
        timestamp: float | None = None,
        **options: Any,
    ) -> None:
        """Record a transaction on a profile."""
        when = datetime.fromtimestamp(timestamp if timestamp is not None else time.time(), UTC)
        transaction = {"$time": when.isoformat(), "$amount": amount}
        self.enqueue(
            self._payload(distinct_id, "$append", {"$transactions": transaction}, **options)
        )

    def clear_charges(self, distinct_id: str | int, **options: Any) -> None:
        """Remove every transaction from a profile."""
        self.enqueue(self._payload(distinct_id, "$set", {"$transactions": []}, **options))

    def delete_user(self, distinct_id: str | int, **options: Any) -> None:
        """Delete a profile."""
        self.enqueue(self._payload(distinct_id, "$delete", "", **options))


class Client:
    """Events and people producers sharing one configuration.

    Example:
        ```python
        with Client("project-token", ClientConfig.from_env()) as client:
            client.events.track("signup", {"distinct_id": "42"})
            client.people.set("42", {"plan": "pro"})
        ```
    """

    def __init__(
        self,
        token: str,
        config: ClientConfig | None = None,
        registry: ConsumerRegistry | None = None,
    ) -> None:
        config = config or ClientConfig()
        registry = registry or default_registry()
        self.events = EventsProducer(token, config, registry=registry)
        self.people = PeopleProducer(token, config, registry=registry)

    def flush(self, desired_batch_size: int = 50) -> bool:
        """Flush events then people; True only if both drained."""
        events_ok = self.events.flush(desired_batch_size)
        people_ok = self.people.flush(desired_batch_size)
        return events_ok and people_ok

    def close(self) -> bool:
        events_ok = self.events.close()
        people_ok = self.people.close()
        return events_ok and people_ok

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
