"""Consumer registry mapping configuration names to factories."""

from __future__ import annotations

from collections.abc import Callable, Iterator

from batch_ingest.consumers import (
    ConcurrentHttpConsumer,
    Consumer,
    ConsumerConfig,
    ConsumerKind,
    FileConsumer,
    HttpConsumer,
    SocketConsumer,
)
from batch_ingest.errors import ConfigurationError

ConsumerFactory = Callable[[ConsumerConfig], Consumer]


class ConsumerRegistry:
    """Explicit set of consumer factories, keyed by name.

    Built-in variants are registered under their ``ConsumerKind`` value.
    Callers add their own consumers with :meth:`register`; nothing is looked
    up from global state.

    Example:
        ```python
        registry = default_registry()
        registry.register("memory", lambda config: MemoryConsumer())
        consumer = registry.create("memory", ConsumerConfig())
        ```
    """

    def __init__(self, factories: dict[str, ConsumerFactory] | None = None) -> None:
        self._factories: dict[str, ConsumerFactory] = dict(factories or {})

    def register(self, name: str | ConsumerKind, factory: ConsumerFactory) -> None:
        """Register or replace a factory."""
        self._factories[_key(name)] = factory

    def create(self, name: str | ConsumerKind, config: ConsumerConfig) -> Consumer:
        """Build a consumer for ``name``.

        Raises:
            ConfigurationError: If no factory is registered under ``name``.
        """
        key = _key(name)
        try:
            factory = self._factories[key]
        except KeyError:
            available = ", ".join(sorted(self._factories))
            raise ConfigurationError(
                f"Unknown consumer '{key}' (available: {available})"
            ) from None
        return factory(config)

    def __contains__(self, name: object) -> bool:
        if isinstance(name, (str, ConsumerKind)):
            return _key(name) in self._factories
        return False

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._factories))


def _key(name: str | ConsumerKind) -> str:
    return name.value if isinstance(name, ConsumerKind) else name


def default_registry() -> ConsumerRegistry:
    """Return a fresh registry holding the built-in consumers."""
    return ConsumerRegistry(
        {
            ConsumerKind.HTTP.value: HttpConsumer,
            ConsumerKind.CONCURRENT_HTTP.value: ConcurrentHttpConsumer,
            ConsumerKind.SOCKET.value: SocketConsumer,
            ConsumerKind.FILE.value: FileConsumer,
        }
    )
