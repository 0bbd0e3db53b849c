import pytest

from trailtrack.core.events import EventChannel


class FakeClock:
    """Manually advanced epoch-ms clock."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channel():
    return EventChannel()
