from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from assetchain.errors import InvalidParameter
from assetchain.ledger.bcs import normalize_address
from assetchain.simulation.readings import build_job
from assetchain.types import SensorJob

LOGGER = logging.getLogger("assetchain.simulation.job_store")


class SensorJobStore:
    """
    SQLite-backed persistence for recurring sensor jobs.

    Guarantees:
    - One row per (asset_id, sensor_kind) (PRIMARY KEY); saving replaces
    - Safe across concurrent processes (SQLite locking)
    - Fail-soft: public methods log and report failure instead of raising,
      so a broken store degrades durability but never stops the scheduler
    - WAL mode for robustness under concurrent readers

    Intended use:
        store = SensorJobStore(Path("runtime/sensor_jobs.sqlite3"))
        store.save(job)
        ...
        for job in store.load_all():  # after a restart
            scheduler.add_job(...)
    """

    def __init__(self, db_path: Path, *, table: str = "sensor_jobs", timeout_s: float = 3.0) -> None:
        self.db_path = Path(db_path)
        self.table = str(table).strip() or "sensor_jobs"
        self.timeout_s = float(timeout_s)
        self._ensure_db()

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        con = sqlite3.connect(
            str(self.db_path),
            timeout=self.timeout_s,
            isolation_level=None,  # autocommit
        )
        con.execute("PRAGMA journal_mode=WAL;")
        con.execute("PRAGMA synchronous=NORMAL;")
        return con

    def _ensure_db(self) -> None:
        try:
            con = self._connect()
            try:
                con.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {self.table} (
                        asset_id TEXT NOT NULL,
                        sensor_kind TEXT NOT NULL,
                        interval_ms INTEGER NOT NULL,
                        base_value REAL NOT NULL,
                        variance REAL NOT NULL,
                        anomaly_probability REAL NOT NULL,
                        enabled INTEGER NOT NULL,
                        created_utc TEXT NOT NULL,
                        updated_utc TEXT NOT NULL,
                        PRIMARY KEY (asset_id, sensor_kind)
                    );
                    """
                )
            finally:
                con.close()
        except (sqlite3.Error, OSError):
            LOGGER.exception("Job store at %s is unusable; jobs will not survive a restart", self.db_path)

    @staticmethod
    def _utc_now_iso() -> str:
        return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())

    def save(self, job: SensorJob) -> bool:
        try:
            con = self._connect()
            try:
                con.execute(
                    f"""
                    INSERT OR REPLACE INTO {self.table}
                        (asset_id, sensor_kind, interval_ms, base_value, variance,
                         anomaly_probability, enabled, created_utc, updated_utc)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        job.asset_id,
                        job.sensor_kind,
                        int(job.interval_ms),
                        float(job.base_value),
                        float(job.variance),
                        float(job.anomaly_probability),
                        1 if job.enabled else 0,
                        job.created_at.isoformat(),
                        self._utc_now_iso(),
                    ),
                )
                return True
            finally:
                con.close()
        except (sqlite3.Error, OSError):
            LOGGER.exception("Failed to persist job %s/%s", job.asset_id, job.sensor_kind)
            return False

    def delete(self, asset_id: str, sensor_kind: str) -> bool:
        try:
            con = self._connect()
            try:
                con.execute(
                    f"DELETE FROM {self.table} WHERE asset_id=? AND sensor_kind=?;",
                    (asset_id, sensor_kind),
                )
                return True
            finally:
                con.close()
        except (sqlite3.Error, OSError):
            LOGGER.exception("Failed to delete job %s/%s", asset_id, sensor_kind)
            return False

    def load_all(self) -> List[SensorJob]:
        """Best-effort readback of every enabled job. Invalid rows are logged and skipped. Never raises."""
        try:
            con = self._connect()
            try:
                rows = con.execute(
                    f"""
                    SELECT asset_id, sensor_kind, interval_ms, base_value, variance,
                           anomaly_probability, enabled, created_utc
                    FROM {self.table} WHERE enabled=1 ORDER BY created_utc;
                    """
                ).fetchall()
            finally:
                con.close()
        except (sqlite3.Error, OSError):
            LOGGER.exception("Failed to load jobs from %s", self.db_path)
            return []

        jobs: List[SensorJob] = []
        for row in rows:
            try:
                job = build_job(
                    row[0],
                    row[1],
                    row[2],
                    base_value=row[3],
                    variance=row[4],
                    anomaly_probability=row[5],
                )
                normalize_address(job.asset_id)
            except InvalidParameter as exc:
                LOGGER.warning("Skipping stored job %s/%s: %s", row[0], row[1], exc.message)
                continue
            try:
                created = datetime.fromisoformat(row[7])
            except (TypeError, ValueError):
                created = datetime.now(timezone.utc)
            jobs.append(replace(job, enabled=bool(row[6]), created_at=created))
        return jobs
