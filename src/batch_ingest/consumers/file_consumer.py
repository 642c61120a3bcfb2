"""File consumer appending batches to a local JSON-lines sink."""

from __future__ import annotations

from pathlib import Path

from batch_ingest.consumers.base import BaseConsumer
from batch_ingest.consumers.models import ConsumerConfig
from batch_ingest.encoding import Record, json_body
from batch_ingest.errors import ConfigurationError

try:
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX platforms
    fcntl = None  # type: ignore[assignment]


class FileConsumer(BaseConsumer):
    """Append each batch as one JSON array line to a file.

    Writes hold an exclusive ``flock`` so several processes can share one
    sink. The file is only ever appended to.

    Example:
        ```python
        consumer = FileConsumer(ConsumerConfig(file_path="/var/log/events.jsonl"))
        consumer.persist([{"event": "signup"}])
        ```
    """

    name = "file"

    def __init__(self, config: ConsumerConfig) -> None:
        """Initialize the FileConsumer.

        Raises:
            ConfigurationError: If exclusive file locking is unavailable.
        """
        super().__init__(config)
        if fcntl is None:
            raise ConfigurationError("File locking (fcntl) is required to use the file consumer.")
        self._path = Path(config.file_path)

    @property
    def path(self) -> Path:
        """Path of the sink file."""
        return self._path

    def _persist(self, batch: list[Record]) -> bool:
        line = json_body(batch) + "\n"
        self._tracer.attempt(str(self._path), size=len(batch), bytes_out=len(line))

        try:
            with self._path.open("a", encoding="utf-8") as sink:
                fcntl.flock(sink.fileno(), fcntl.LOCK_EX)
                try:
                    sink.write(line)
                    sink.flush()
                finally:
                    fcntl.flock(sink.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            self.handle_error(e.errno or -1, f"Failed to append to {self._path}: {e}")
            return False

        return True
