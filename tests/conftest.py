"""Shared test fixtures for the jobstream test suite."""

import os

import pytest

# Keep the demo worker fast for API tests; must be set before jobstream.main is imported.
os.environ.setdefault("JOBSTREAM_STEP_DELAY_SECONDS", "0.01")

from jobstream.jobs.publisher import ProgressPublisher  # noqa: E402
from jobstream.jobs.registry import JobRegistry  # noqa: E402
from jobstream.streaming.dispatcher import StreamDispatcher  # noqa: E402


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock) -> JobRegistry:
    return JobRegistry(channel_capacity=4, retention_seconds=300.0, clock=clock)


@pytest.fixture
def publisher(registry) -> ProgressPublisher:
    return ProgressPublisher(registry)


@pytest.fixture
def dispatcher(registry) -> StreamDispatcher:
    return StreamDispatcher(registry)
