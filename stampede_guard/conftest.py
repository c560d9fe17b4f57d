import mongomock
import pytest

from stampede_guard.core.storage_bus import StorageBus


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms
        return self.now


@pytest.fixture
def collection():
    return mongomock.MongoClient().stampede_guard.kv_store


@pytest.fixture
def bus(collection):
    return StorageBus(collection)


@pytest.fixture
def clock():
    return FakeClock()
