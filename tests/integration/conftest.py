"""Fixtures running the mock collector for integration tests."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from benchmarks.mock_collector import BackgroundCollector, MockCollectorConfig


@pytest.fixture()
def collector() -> Iterator[BackgroundCollector]:
    """Run a mock collector on a background thread."""
    with BackgroundCollector() as running:
        yield running


@pytest.fixture()
def flaky_collector() -> Iterator[BackgroundCollector]:
    """Run a mock collector rejecting its first request."""
    with BackgroundCollector(MockCollectorConfig(fail_first=1)) as running:
        yield running


@pytest.fixture()
def import_collector() -> Iterator[BackgroundCollector]:
    """Run a mock collector expecting Basic auth on /import."""
    with BackgroundCollector(MockCollectorConfig(authorization_token="c2VjcmV0")) as running:
        yield running
