"""Pytest configuration and fixtures for batch-ingest tests."""

from __future__ import annotations

from collections.abc import Iterable

import pytest

from batch_ingest.encoding import Record


class StubConsumer:
    """In-memory consumer following the Consumer protocol.

    ``results`` scripts the outcome of successive persist calls; once it runs
    out every call succeeds.
    """

    name = "stub"

    def __init__(self, results: Iterable[bool] = (), num_threads: int = 1) -> None:
        self._results = list(results)
        self._num_threads = num_threads
        self.attempts: list[list[Record]] = []
        self.batches: list[list[Record]] = []

    @property
    def calls(self) -> int:
        return len(self.attempts)

    @property
    def delivered(self) -> list[Record]:
        return [record for batch in self.batches for record in batch]

    def get_num_threads(self) -> int:
        return self._num_threads

    def persist(self, batch: list[Record]) -> bool:
        self.attempts.append(list(batch))
        ok = self._results.pop(0) if self._results else True
        if ok:
            self.batches.append(list(batch))
        return ok


@pytest.fixture()
def stub_consumer() -> StubConsumer:
    """Provide a consumer that accepts every batch."""
    return StubConsumer()


@pytest.fixture()
def sample_records() -> list[Record]:
    """Provide a small ordered list of event records."""
    return [
        {"event": f"event-{i}", "properties": {"distinct_id": "42", "seq": i}} for i in range(5)
    ]


def make_records(count: int) -> list[Record]:
    """Build ``count`` records numbered from 0."""
    return [{"event": "tick", "properties": {"seq": i}} for i in range(count)]


@pytest.fixture()
def stub_factory() -> type[StubConsumer]:
    """Provide the StubConsumer class for tests scripting their own results."""
    return StubConsumer


@pytest.fixture()
def records_factory():
    """Provide make_records()."""
    return make_records
