"""Shared pytest fixtures."""

from collections.abc import Callable

import pytest

from querysync import QueryClient


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 1_000_000) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    """Create a fresh FakeClock for each test."""
    return FakeClock()


@pytest.fixture
def client(clock: FakeClock) -> QueryClient:
    """Create a QueryClient driven by the fake clock."""
    return QueryClient(clock=clock)


@pytest.fixture
def counter() -> Callable[..., Callable[[], object]]:
    """Build async producers that count their invocations.

    Usage:
        fetch = counter()
        await fetch()
        assert fetch.calls == 1
    """

    def make(result: object = None, error: BaseException | None = None):
        async def fetch() -> object:
            fetch.calls += 1
            if error is not None:
                raise error
            return result if result is not None else fetch.calls

        fetch.calls = 0
        return fetch

    return make
