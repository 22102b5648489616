"""
Shared fixtures: a manual clock and a sleep that advances it instantly.
"""
import asyncio

import pytest

from resource_cache import ResourceClient


class FakeClock:
    """Monotonic clock moved by hand."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock(start=1000.0)


@pytest.fixture
def sleeps():
    """Delays passed to the fake sleep, in call order."""
    return []


@pytest.fixture
def fake_sleep(clock, sleeps):
    async def sleep(delay: float) -> None:
        sleeps.append(delay)
        clock.advance(delay)
        await asyncio.sleep(0)

    return sleep


@pytest.fixture
def make_client(clock, fake_sleep):
    """Build a ResourceClient on the fake clock."""

    def factory(**kwargs):
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("sleep", fake_sleep)
        return ResourceClient(**kwargs)

    return factory
