"""
assetchain/simulation/scheduler.py

Recurring sensor-simulation scheduler.

Responsibilities
----------------
- Keep at most one job per (asset_id, sensor_kind); add_job replaces in place.
- Run each job on a fixed-rate schedule driven by the event-loop clock.
  The first tick fires one interval after the job is added; slots missed
  while the loop was starved are skipped, not replayed.
- Each due tick runs as its own task and submits through the ledger gateway
  on the default executor. A job has at most one tick in flight; a slot that
  comes due while the previous write is still pending is skipped and counted,
  so a slow ledger cannot pile up ticks or hold more than one executor worker
  per job.
- Broadcast a reading (and an anomaly, when flagged) only after the ledger
  confirmed the write.
- Persist jobs to the job store and recover them on start().

Removal
-------
remove_job drops the key's generation under the lock and cancels the runner.
Generations come from one counter and are never reused. A runner re-checks
its generation before spawning each tick, so no tick starts after remove_job
returns; a tick already in flight may still finish and broadcast once.
"""

from __future__ import annotations

import asyncio
import functools
import itertools
import logging
import random
import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Set

from assetchain.commands.base import Clock, now_ms
from assetchain.commands.sensor import broadcast_reading, build_reading_transaction
from assetchain.config import SimulationDefaults
from assetchain.errors import AssetChainError, NotFound
from assetchain.ledger.bcs import normalize_address
from assetchain.ledger.gateway import LedgerGateway
from assetchain.simulation.job_store import SensorJobStore
from assetchain.simulation.readings import build_job, generate_reading
from assetchain.telemetry.fanout import TelemetryFanout
from assetchain.types import JobKey, Reading, SensorJob

LOGGER = logging.getLogger("assetchain.simulation.scheduler")


def _job_key(asset_id: str, sensor_kind: str) -> JobKey:
    return ((asset_id or "").strip(), (sensor_kind or "").strip().lower())


@dataclass
class JobStats:
    ticks: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    anomalies: int = 0
    skipped: int = 0
    last_error: Optional[str] = None
    last_transaction_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ticks": self.ticks,
            "failures": self.failures,
            "consecutiveFailures": self.consecutive_failures,
            "anomalies": self.anomalies,
            "skippedSlots": self.skipped,
            "lastError": self.last_error,
            "lastTransactionId": self.last_transaction_id,
        }


class SensorScheduler:
    def __init__(
        self,
        gateway: LedgerGateway,
        fanout: TelemetryFanout,
        package_id: str,
        store: Optional[SensorJobStore] = None,
        *,
        defaults: Optional[SimulationDefaults] = None,
        rng: Optional[random.Random] = None,
        clock: Clock = now_ms,
    ) -> None:
        self._gateway = gateway
        self._fanout = fanout
        self._package_id = package_id
        self._store = store
        self._defaults = defaults or SimulationDefaults()
        self._rng = rng or random.Random()
        self._clock = clock

        self._lock = threading.Lock()
        self._jobs: Dict[JobKey, SensorJob] = {}
        self._generations: Dict[JobKey, int] = {}
        self._stats: Dict[JobKey, JobStats] = {}
        self._runners: Dict[JobKey, "asyncio.Task[None]"] = {}
        self._ticks: Set["asyncio.Task[Optional[Reading]]"] = set()
        self._inflight: Dict[JobKey, "asyncio.Task[Optional[Reading]]"] = {}
        self._generation_seq = itertools.count(1)
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> int:
        """Bind to the running loop, recover persisted jobs and start every runner."""
        self._loop = asyncio.get_running_loop()
        recovered = 0
        if self._store is not None:
            for job in self._store.load_all():
                with self._lock:
                    if job.key in self._jobs:
                        continue
                    self._register(job)
                recovered += 1
        with self._lock:
            pending = [(key, self._generations[key]) for key in self._jobs if key not in self._runners]
        for key, generation in pending:
            self._spawn_runner(key, generation)
        LOGGER.info("Sensor scheduler started: %d jobs (%d recovered)", len(pending), recovered)
        return recovered

    async def stop(self) -> None:
        """Cancel runners and in-flight ticks. Persisted jobs are kept for the next start."""
        with self._lock:
            runners = list(self._runners.values())
            self._runners.clear()
        tasks = runners + list(self._ticks)
        self._inflight.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._loop = None
        LOGGER.info("Sensor scheduler stopped")

    # ------------------------------------------------------------------ #
    # Job API
    # ------------------------------------------------------------------ #

    def add_job(
        self,
        asset_id: str,
        sensor_kind: str,
        interval_ms: Optional[int] = None,
        *,
        base_value: Optional[float] = None,
        variance: Optional[float] = None,
        anomaly_probability: Optional[float] = None,
    ) -> SensorJob:
        """
        Create or replace the job for (asset_id, sensor_kind).

        Raises InvalidParameter for bad parameters (see build_job) or an asset
        id that is not a ledger object id. The new
        job's first tick fires one interval from now.
        """
        if interval_ms is None:
            interval_ms = int(self._defaults.interval_seconds * 1000)
        job = build_job(
            asset_id,
            sensor_kind,
            interval_ms,
            base_value=base_value,
            variance=variance,
            anomaly_probability=anomaly_probability,
            variance_ratio=self._defaults.variance_ratio,
            default_anomaly_probability=self._defaults.anomaly_probability,
        )
        normalize_address(job.asset_id)
        with self._lock:
            replaced = job.key in self._jobs
            old_runner = self._runners.pop(job.key, None)
            generation = self._register(job)

        if old_runner is not None:
            self._cancel(old_runner)
        if self._store is not None:
            self._store.save(job)
        if self._loop is not None:
            self._spawn_runner(job.key, generation)

        LOGGER.info(
            "%s sensor job %s/%s every %dms",
            "Replaced" if replaced else "Added",
            job.asset_id,
            job.sensor_kind,
            job.interval_ms,
        )
        return job

    def remove_job(self, asset_id: str, sensor_kind: str) -> bool:
        """Stop the job. Idempotent; returns False when no such job was registered."""
        key = _job_key(asset_id, sensor_kind)
        with self._lock:
            job = self._jobs.pop(key, None)
            self._generations.pop(key, None)
            runner = self._runners.pop(key, None)
            self._stats.pop(key, None)

        if runner is not None:
            self._cancel(runner)
        if job is None:
            return False
        if self._store is not None:
            self._store.delete(*key)
        LOGGER.info("Removed sensor job %s/%s", *key)
        return True

    def get_job(self, asset_id: str, sensor_kind: str) -> Optional[SensorJob]:
        with self._lock:
            return self._jobs.get(_job_key(asset_id, sensor_kind))

    def list_jobs(self, asset_id: Optional[str] = None) -> List[SensorJob]:
        with self._lock:
            jobs = list(self._jobs.values())
        if asset_id is not None:
            jobs = [j for j in jobs if j.asset_id == asset_id]
        return sorted(jobs, key=lambda j: (j.asset_id, j.sensor_kind))

    def stats(self, asset_id: str, sensor_kind: str) -> JobStats:
        with self._lock:
            current = self._stats.get(_job_key(asset_id, sensor_kind))
            return replace(current) if current is not None else JobStats()

    def all_stats(self) -> Dict[JobKey, JobStats]:
        with self._lock:
            return {key: replace(s) for key, s in self._stats.items()}

    @property
    def in_flight(self) -> int:
        return len(self._ticks)

    # ------------------------------------------------------------------ #
    # Tick
    # ------------------------------------------------------------------ #

    async def run_tick(self, job: SensorJob) -> Optional[Reading]:
        """
        One tick: generate, write to the ledger, then broadcast.

        Returns the confirmed reading, or None when the write failed. Errors
        are logged and counted per job; they never cancel the job, except
        NotFound, which means the asset is gone and the job is removed.
        """
        reading = generate_reading(
            job,
            self._rng,
            self._clock(),
            amplification=self._defaults.anomaly_amplification,
        )
        loop = asyncio.get_running_loop()
        try:
            tx = build_reading_transaction(self._package_id, reading)
            result = await loop.run_in_executor(None, self._gateway.submit, tx)
        except NotFound as exc:
            self._record_failure(job.key, exc)
            LOGGER.warning("Asset %s no longer exists; removing sensor job %s", job.asset_id, job.sensor_kind)
            self._remove_if_current(job)
            return None
        except AssetChainError as exc:
            self._record_failure(job.key, exc)
            LOGGER.error("Sensor tick %s/%s failed: %s", job.asset_id, job.sensor_kind, exc)
            return None
        except Exception as exc:  # noqa: BLE001
            self._record_failure(job.key, exc)
            LOGGER.exception("Sensor tick %s/%s crashed", job.asset_id, job.sensor_kind)
            return None

        with self._lock:
            stats = self._stats.setdefault(job.key, JobStats())
            stats.ticks += 1
            stats.consecutive_failures = 0
            stats.last_transaction_id = result.transaction_id
            if reading.is_anomaly:
                stats.anomalies += 1

        broadcast_reading(self._fanout, reading)
        if reading.is_anomaly:
            LOGGER.warning(
                "Anomaly on %s: %s=%d %s (tx=%s)",
                reading.asset_id,
                reading.kind,
                reading.value,
                reading.unit,
                result.transaction_id,
            )
        else:
            LOGGER.debug("Reading %s=%d for %s (tx=%s)", reading.kind, reading.value, reading.asset_id, result.transaction_id)
        return reading

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _register(self, job: SensorJob) -> int:
        # caller holds self._lock
        generation = next(self._generation_seq)
        self._generations[job.key] = generation
        self._jobs[job.key] = job
        self._stats.setdefault(job.key, JobStats())
        return generation

    def _current(self, key: JobKey, generation: int) -> Optional[SensorJob]:
        with self._lock:
            if self._generations.get(key) != generation:
                return None
            return self._jobs.get(key)

    def _remove_if_current(self, job: SensorJob) -> None:
        with self._lock:
            current = self._jobs.get(job.key)
        if current is job:
            self.remove_job(job.asset_id, job.sensor_kind)

    def _record_failure(self, key: JobKey, exc: BaseException) -> None:
        with self._lock:
            stats = self._stats.setdefault(key, JobStats())
            stats.failures += 1
            stats.consecutive_failures += 1
            stats.last_error = f"{type(exc).__name__}: {exc}"

    def _on_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _cancel(self, task: "asyncio.Task[Any]") -> None:
        loop = self._loop
        if loop is not None and not self._on_loop():
            loop.call_soon_threadsafe(task.cancel)
        else:
            task.cancel()

    def _spawn_runner(self, key: JobKey, generation: int) -> None:
        loop = self._loop
        if loop is None:
            return
        if not self._on_loop():
            loop.call_soon_threadsafe(self._spawn_runner, key, generation)
            return
        with self._lock:
            if self._generations.get(key) != generation:
                return
            self._runners[key] = loop.create_task(self._run(key, generation), name=f"sensor-job:{key[0]}:{key[1]}")

    async def _run(self, key: JobKey, generation: int) -> None:
        try:
            await self._schedule(key, generation)
        except Exception as exc:  # noqa: BLE001
            self._record_failure(key, exc)
            LOGGER.exception("Sensor runner %s/%s crashed", key[0], key[1])

    async def _schedule(self, key: JobKey, generation: int) -> None:
        loop = asyncio.get_running_loop()
        job = self._current(key, generation)
        if job is None:
            return
        interval = job.interval_ms / 1000.0
        deadline = loop.time() + interval
        while True:
            await asyncio.sleep(max(0.0, deadline - loop.time()))
            job = self._current(key, generation)
            if job is None:
                return
            previous = self._inflight.get(key)
            if previous is not None and not previous.done():
                with self._lock:
                    self._stats.setdefault(key, JobStats()).skipped += 1
                LOGGER.debug("Sensor job %s/%s still writing; slot skipped", key[0], key[1])
            else:
                tick = loop.create_task(self.run_tick(job))
                self._ticks.add(tick)
                self._inflight[key] = tick
                tick.add_done_callback(functools.partial(self._tick_done, key))

            deadline += interval
            now = loop.time()
            if deadline <= now:
                missed = int((now - deadline) // interval) + 1
                deadline += missed * interval
                LOGGER.debug("Sensor job %s/%s skipped %d slot(s)", key[0], key[1], missed)

    def _tick_done(self, key: JobKey, tick: "asyncio.Task[Optional[Reading]]") -> None:
        self._ticks.discard(tick)
        if self._inflight.get(key) is tick:
            del self._inflight[key]
