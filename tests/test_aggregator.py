"""Tests for the snapshot aggregator."""

import threading
import time

import pytest

from hostpulse.aggregator import SnapshotAggregator, SnapshotError
from hostpulse.config import Settings
from hostpulse.models import (
    CpuInfo,
    GpuInfo,
    MemoryInfo,
    OsInfo,
    ProcessInfo,
    Snapshot,
    UptimeInfo,
)
from hostpulse.provider import Category, TelemetryProvider

VALUES = {
    Category.CPU: CpuInfo(current_load=10.0, per_core_loads=(10.0, 10.0)),
    Category.MEMORY: MemoryInfo(used_bytes=1, total_bytes=2),
    Category.DISKS: (),
    Category.GPU: GpuInfo(),
    Category.NETWORK: (),
    Category.OS: OsInfo(distro="Debian GNU/Linux 12", platform="linux"),
    Category.UPTIME: UptimeInfo(seconds=60.0),
    Category.PROCESSES: ProcessInfo(total=0),
}


class FakeProvider(TelemetryProvider):
    """Provider returning canned values, with selectable failures and delays."""

    def __init__(self, failing=(), slow=(), delay=0.0):
        super().__init__(Settings())
        self.failing = set(failing)
        self.slow = set(slow)
        self.delay = delay
        self.calls: list[Category] = []
        self._lock = threading.Lock()

    def fetch(self, category):
        with self._lock:
            self.calls.append(category)
        if category in self.slow:
            time.sleep(self.delay)
        if category in self.failing:
            raise PermissionError(f"{category.value} unreadable")
        return VALUES[category]


@pytest.mark.asyncio
async def test_build_snapshot_all_categories():
    provider = FakeProvider()
    aggregator = SnapshotAggregator(provider)

    snapshot = await aggregator.build_snapshot()

    assert isinstance(snapshot, Snapshot)
    assert snapshot.cpu == VALUES[Category.CPU]
    assert snapshot.memory == VALUES[Category.MEMORY]
    assert snapshot.os == VALUES[Category.OS]
    assert snapshot.uptime == VALUES[Category.UPTIME]
    assert sorted(provider.calls, key=lambda c: c.value) == sorted(Category, key=lambda c: c.value)


@pytest.mark.asyncio
async def test_partial_failure_leaves_category_absent(caplog):
    aggregator = SnapshotAggregator(FakeProvider(failing={Category.GPU}))

    snapshot = await aggregator.build_snapshot()

    assert snapshot.gpu is None
    assert snapshot.cpu == VALUES[Category.CPU]
    assert snapshot.memory == VALUES[Category.MEMORY]
    assert "gpu" in caplog.text


@pytest.mark.asyncio
async def test_total_failure_raises():
    aggregator = SnapshotAggregator(FakeProvider(failing=set(Category)))

    with pytest.raises(SnapshotError) as excinfo:
        await aggregator.build_snapshot()

    assert set(excinfo.value.failures) == set(Category)
    assert isinstance(excinfo.value.__cause__, PermissionError)
    assert "unreadable" in str(excinfo.value)


@pytest.mark.asyncio
async def test_slow_category_times_out():
    provider = FakeProvider(slow={Category.NETWORK}, delay=1.0)
    aggregator = SnapshotAggregator(provider, Settings(fetch_timeout=0.2))

    start = time.monotonic()
    snapshot = await aggregator.build_snapshot()
    elapsed = time.monotonic() - start

    assert snapshot.network is None
    assert snapshot.cpu is not None
    assert elapsed < 1.0


@pytest.mark.asyncio
async def test_fetches_run_concurrently():
    provider = FakeProvider(slow=set(Category), delay=0.3)
    aggregator = SnapshotAggregator(provider)

    start = time.monotonic()
    await aggregator.build_snapshot()
    elapsed = time.monotonic() - start

    # Eight sequential fetches would take 2.4s
    assert elapsed < 1.5


@pytest.mark.asyncio
async def test_each_call_builds_fresh_snapshot():
    provider = FakeProvider()
    aggregator = SnapshotAggregator(provider)

    first = await aggregator.build_snapshot()
    second = await aggregator.build_snapshot()

    assert first == second
    assert first is not second
    assert len(provider.calls) == 2 * len(Category)


@pytest.mark.asyncio
async def test_live_snapshot():
    """Test against the real host."""
    aggregator = SnapshotAggregator(settings=Settings(sample_interval=0.1))

    snapshot = await aggregator.build_snapshot()

    assert snapshot.memory is not None
    assert snapshot.memory.total_bytes > 0
    assert snapshot.uptime is not None
