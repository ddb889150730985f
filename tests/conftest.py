from __future__ import annotations

import pytest

from stratus.retry import RetryPolicy
from stratus.types import InstanceConfig


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, delay=0)


@pytest.fixture
def web_config() -> InstanceConfig:
    return InstanceConfig(
        region="nyc1",
        size="s-1vcpu-1gb",
        image="ubuntu-22-04-x64",
        ssh_key="k1",
        number_of_instances=1,
    )


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
