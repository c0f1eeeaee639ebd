"""Pytest configuration and shared fixtures"""
from datetime import datetime, timedelta, timezone
from typing import List, Sequence

import pytest

from nvidia_cloudwatch.devices import DeviceProvider, DeviceSnapshot
from nvidia_cloudwatch.devices.base import MIB
from nvidia_cloudwatch.errors import ProviderError


def make_device(uuid="GPU-0000", model="Tesla T4", total=16000, used=1000, free=3000, util=42):
    """Memory arguments are in MiB"""
    return DeviceSnapshot(uuid=uuid, model=model, total_memory=total * MIB,
                          used_memory=used * MIB, free_memory=free * MIB, gpu_utilization=util)


class FakeProvider(DeviceProvider):
    """Replays a scripted sequence of snapshots; repeats the last one when exhausted"""

    def __init__(self, snapshots: Sequence[List[DeviceSnapshot]] = None, fail: bool = False):
        super().__init__("fake")
        self.snapshots = list(snapshots or [[make_device()]])
        self.fail = fail
        self.calls = 0

    def query_devices(self) -> List[DeviceSnapshot]:
        self.calls += 1
        if self.fail:
            raise ProviderError("Error getting device count: driver not loaded")
        index = min(self.calls - 1, len(self.snapshots) - 1)
        return self.snapshots[index]


class FakeClock:
    """Wall clock that only moves when sleep() is awaited"""

    def __init__(self, start: datetime):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


@pytest.fixture
def device():
    return make_device()


@pytest.fixture
def provider():
    with FakeProvider() as p:
        yield p


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 1, 12, 0, 0, 250000, tzinfo=timezone.utc))


@pytest.fixture
def timestamp():
    return datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
