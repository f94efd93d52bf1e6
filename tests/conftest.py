"""
Shared fixtures for the voice agent tests.
"""
import os

import pytest

os.environ.setdefault("OPENAI_API_KEY", "test_api_key")


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    from voice_agent.storage import InMemoryKVStore
    return InMemoryKVStore(time_func=clock)
