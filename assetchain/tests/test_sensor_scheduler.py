from __future__ import annotations

import asyncio
import random
import time
from pathlib import Path
from typing import Any, List

import pytest

from assetchain.config import SimulationDefaults
from assetchain.errors import InvalidParameter, NotFound, TransportFailure
from assetchain.ledger.bcs import normalize_address
from assetchain.ledger.transaction import ObjectArg, ResultArg
from assetchain.simulation.job_store import SensorJobStore
from assetchain.simulation.readings import build_job
from assetchain.simulation.scheduler import SensorScheduler
from assetchain.telemetry.fanout import Subscriber, TelemetryFanout

CALM = SimulationDefaults(anomaly_probability=0.0)


def _scheduler(gateway: Any, package_id: str, **kwargs: Any) -> SensorScheduler:
    kwargs.setdefault("defaults", CALM)
    kwargs.setdefault("rng", random.Random(42))
    return SensorScheduler(gateway, TelemetryFanout(), package_id, **kwargs)


def _watch(scheduler: SensorScheduler, asset_id: str) -> Subscriber:
    sub = Subscriber("test-viewer")
    scheduler._fanout.subscribe(asset_id, sub)
    return sub


def test_single_tick_writes_reading_then_broadcasts(fake_gateway: Any, package_id: str) -> None:
    scheduler = _scheduler(fake_gateway, package_id, clock=lambda: 1_700_000_000_000)
    viewer = _watch(scheduler, "0xA1")
    job = scheduler.add_job("0xA1", "temperature", 1000)

    reading = asyncio.run(scheduler.run_tick(job))

    assert reading is not None
    assert 6750 <= reading.value <= 8250
    assert reading.unit == "celsius"
    assert reading.sensor_id == "temperature-sensor-0xA1"
    assert reading.is_anomaly is False
    assert reading.timestamp == 1_700_000_000_000

    (tx,) = fake_gateway.submitted
    first, second = tx.calls
    assert first.target == f"{package_id}::sensor_data::new_reading"
    assert [a.value for a in first.arguments] == [
        "temperature-sensor-0xA1",
        1_700_000_000_000,
        "temperature",
        reading.value,
        "celsius",
        False,
    ]
    assert second.target == f"{package_id}::part::add_sensor_reading"
    assert second.arguments == (ObjectArg(normalize_address("0xA1")), ResultArg(0))

    events = viewer.drain()
    assert [e.event for e in events] == ["reading"]
    assert events[0].payload["value"] == reading.value
    assert events[0].payload["assetId"] == "0xA1"


def test_anomalous_tick_publishes_reading_and_anomaly(fake_gateway: Any, package_id: str) -> None:
    scheduler = _scheduler(fake_gateway, package_id)
    viewer = _watch(scheduler, "0xA1")
    job = scheduler.add_job("0xA1", "temperature", 1000, anomaly_probability=1.0)

    reading = asyncio.run(scheduler.run_tick(job))

    assert reading is not None and reading.is_anomaly is True
    assert 10125 <= reading.value <= 12375
    assert [e.event for e in viewer.drain()] == ["reading", "anomaly"]
    assert scheduler.stats("0xA1", "temperature").anomalies == 1


def test_failed_write_broadcasts_nothing_and_keeps_job(fake_gateway: Any, package_id: str) -> None:
    scheduler = _scheduler(fake_gateway, package_id)
    viewer = _watch(scheduler, "0xA1")
    job = scheduler.add_job("0xA1", "pressure", 1000)
    fake_gateway.fail_next(TransportFailure("node down"))

    async def two_ticks() -> List[Any]:
        return [await scheduler.run_tick(job), await scheduler.run_tick(job)]

    failed, ok = asyncio.run(two_ticks())

    assert failed is None
    assert ok is not None
    assert [e.event for e in viewer.drain()] == ["reading"]
    assert scheduler.get_job("0xA1", "pressure") is job

    stats = scheduler.stats("0xA1", "pressure")
    assert stats.failures == 1
    assert stats.ticks == 1
    assert stats.consecutive_failures == 0
    assert "node down" in (stats.last_error or "")


def test_missing_asset_removes_job(fake_gateway: Any, package_id: str) -> None:
    scheduler = _scheduler(fake_gateway, package_id)
    viewer = _watch(scheduler, "0xA1")
    job = scheduler.add_job("0xA1", "vibration", 1000)
    fake_gateway.fail_next(NotFound("Object 0xA1 not found"))

    assert asyncio.run(scheduler.run_tick(job)) is None
    assert scheduler.get_job("0xA1", "vibration") is None
    assert viewer.drain() == []


def test_add_job_validates_parameters(fake_gateway: Any, package_id: str) -> None:
    scheduler = _scheduler(fake_gateway, package_id)
    with pytest.raises(InvalidParameter):
        scheduler.add_job("0xA1", "temperature", 0)
    with pytest.raises(InvalidParameter):
        scheduler.add_job("0xA1", "temperature", 0.5)
    with pytest.raises(InvalidParameter):
        scheduler.add_job("not-an-object-id", "temperature", 1000)
    assert scheduler.list_jobs() == []


def test_readd_replaces_in_place(fake_gateway: Any, package_id: str) -> None:
    scheduler = _scheduler(fake_gateway, package_id)
    scheduler.add_job("0xA1", "temperature", 1000)
    replacement = scheduler.add_job("0xA1", "TEMPERATURE", 2000, base_value=5000)

    (job,) = scheduler.list_jobs()
    assert job is replacement
    assert job.interval_ms == 2000
    assert job.base_value == 5000


def test_remove_job_is_idempotent(fake_gateway: Any, package_id: str) -> None:
    scheduler = _scheduler(fake_gateway, package_id)
    scheduler.add_job("0xA1", "temperature", 1000)

    assert scheduler.remove_job("0xA1", "temperature") is True
    assert scheduler.remove_job("0xA1", "temperature") is False
    assert scheduler.remove_job("0xZZ", "pressure") is False
    assert scheduler.list_jobs() == []
    assert scheduler._generations == {}


# ---------------------------------------------------------------------------
# Timing behaviour (real event loop, short intervals)
# ---------------------------------------------------------------------------


def test_job_ticks_periodically_after_first_interval(fake_gateway: Any, package_id: str) -> None:
    scheduler = _scheduler(fake_gateway, package_id)

    async def scenario() -> List[int]:
        await scheduler.start()
        scheduler.add_job("0xA1", "temperature", 100)
        await asyncio.sleep(0.05)
        before_first_interval = len(fake_gateway.submitted)
        await asyncio.sleep(0.5)
        total = len(fake_gateway.submitted)
        await scheduler.stop()
        return [before_first_interval, total]

    before, total = asyncio.run(scenario())
    assert before == 0
    assert 3 <= total <= 6


def test_replacement_does_not_double_the_tick_rate(fake_gateway: Any, package_id: str) -> None:
    scheduler = _scheduler(fake_gateway, package_id)

    async def scenario() -> int:
        await scheduler.start()
        scheduler.add_job("0xA1", "temperature", 100)
        scheduler.add_job("0xA1", "temperature", 100)
        await asyncio.sleep(0.45)
        await scheduler.stop()
        return len(fake_gateway.submitted)

    assert asyncio.run(scenario()) <= 5


def test_no_tick_starts_after_remove(fake_gateway: Any, package_id: str) -> None:
    scheduler = _scheduler(fake_gateway, package_id)

    async def scenario() -> List[int]:
        await scheduler.start()
        scheduler.add_job("0xA1", "temperature", 50)
        await asyncio.sleep(0.2)
        assert scheduler.remove_job("0xA1", "temperature") is True
        await asyncio.sleep(0.05)  # let an in-flight tick settle
        after_remove = len(fake_gateway.submitted)
        await asyncio.sleep(0.3)
        later = len(fake_gateway.submitted)
        await scheduler.stop()
        return [after_remove, later]

    after_remove, later = asyncio.run(scenario())
    assert after_remove >= 1
    assert later == after_remove


def test_failed_tick_does_not_stop_next_tick(fake_gateway: Any, package_id: str) -> None:
    scheduler = _scheduler(fake_gateway, package_id)
    viewer = _watch(scheduler, "0xA1")
    fake_gateway.fail_next(TransportFailure("blip"))

    async def scenario() -> None:
        await scheduler.start()
        scheduler.add_job("0xA1", "temperature", 60)
        await asyncio.sleep(0.25)
        await scheduler.stop()

    asyncio.run(scenario())
    stats = scheduler.stats("0xA1", "temperature")
    assert stats.failures == 1
    assert stats.ticks >= 1
    assert len(viewer.drain()) == stats.ticks


def test_slow_tick_does_not_delay_other_jobs(fake_gateway: Any, package_id: str) -> None:
    slow_asset = normalize_address("0xB2")
    original_submit = fake_gateway.submit

    def submit(tx: Any) -> Any:
        if any(isinstance(a, ObjectArg) and a.object_id == slow_asset for c in tx.calls for a in c.arguments):
            time.sleep(0.4)
        return original_submit(tx)

    fake_gateway.submit = submit
    scheduler = _scheduler(fake_gateway, package_id)
    fast_viewer = _watch(scheduler, "0xA1")

    async def scenario() -> None:
        await scheduler.start()
        scheduler.add_job("0xB2", "pressure", 200)
        scheduler.add_job("0xA1", "temperature", 50)
        await asyncio.sleep(0.35)
        await scheduler.stop()

    asyncio.run(scenario())
    assert len(fast_viewer.drain()) >= 3


def test_start_recovers_persisted_jobs(fake_gateway: Any, package_id: str, tmp_path: Path) -> None:
    store = SensorJobStore(tmp_path / "jobs.sqlite3")
    store.save(build_job("0xA1", "temperature", 60_000))
    store.save(build_job("0xB2", "pressure", 60_000))

    scheduler = _scheduler(fake_gateway, package_id, store=store)

    async def scenario() -> int:
        recovered = await scheduler.start()
        await scheduler.stop()
        return recovered

    assert asyncio.run(scenario()) == 2
    assert [j.key for j in scheduler.list_jobs()] == [("0xA1", "temperature"), ("0xB2", "pressure")]


def test_add_and_remove_are_persisted(fake_gateway: Any, package_id: str, tmp_path: Path) -> None:
    store = SensorJobStore(tmp_path / "jobs.sqlite3")
    scheduler = _scheduler(fake_gateway, package_id, store=store)

    scheduler.add_job("0xA1", "temperature", 1000)
    scheduler.add_job("0xA1", "pressure", 1000)
    scheduler.remove_job("0xA1", "pressure")

    assert [j.key for j in store.load_all()] == [("0xA1", "temperature")]


def test_removed_keys_leave_no_generation_behind(fake_gateway: Any, package_id: str) -> None:
    scheduler = _scheduler(fake_gateway, package_id)

    for i in range(50):
        scheduler.add_job(f"0x{i + 1:x}", "temperature", 1000)
        scheduler.remove_job(f"0x{i + 1:x}", "temperature")
        scheduler.remove_job(f"0x{i + 1:x}", "temperature")

    assert scheduler._generations == {}
    assert scheduler.all_stats() == {}


def test_slow_ledger_keeps_one_tick_in_flight_per_job(fake_gateway: Any, package_id: str) -> None:
    slow_asset = normalize_address("0xB2")
    original_submit = fake_gateway.submit

    def submit(tx: Any) -> Any:
        if any(isinstance(a, ObjectArg) and a.object_id == slow_asset for c in tx.calls for a in c.arguments):
            time.sleep(0.5)
        return original_submit(tx)

    fake_gateway.submit = submit
    scheduler = _scheduler(fake_gateway, package_id)
    fast_viewer = _watch(scheduler, "0xA1")

    async def scenario() -> int:
        await scheduler.start()
        scheduler.add_job("0xB2", "pressure", 5)
        scheduler.add_job("0xA1", "temperature", 100)
        peak = 0
        for _ in range(100):
            await asyncio.sleep(0.01)
            peak = max(peak, scheduler.in_flight)
        await scheduler.stop()
        return peak

    peak = asyncio.run(scenario())
    assert peak <= 2
    assert len(fast_viewer.drain()) >= 5
    assert scheduler.stats("0xB2", "pressure").skipped > 0
    assert scheduler.stats("0xB2", "pressure").ticks <= 2


def test_crashed_runner_is_logged_and_counted(
    fake_gateway: Any, package_id: str, caplog: pytest.LogCaptureFixture
) -> None:
    scheduler = _scheduler(fake_gateway, package_id)

    async def broken(key: Any, generation: int) -> None:
        raise RuntimeError("clock went backwards")

    scheduler._schedule = broken  # type: ignore[method-assign]

    async def scenario() -> None:
        await scheduler.start()
        scheduler.add_job("0xA1", "temperature", 50)
        await asyncio.sleep(0.05)
        await scheduler.stop()

    with caplog.at_level("ERROR", logger="assetchain.simulation.scheduler"):
        asyncio.run(scenario())

    stats = scheduler.stats("0xA1", "temperature")
    assert stats.failures == 1
    assert "clock went backwards" in (stats.last_error or "")
    assert any("runner" in r.getMessage() and "crashed" in r.getMessage() for r in caplog.records)
