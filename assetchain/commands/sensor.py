"""
assetchain/commands/sensor.py

Sensor reading commands.

A reading is written as one transaction with two chained calls: the first
constructs the reading record, the second attaches that result to the asset.
Both the scheduler and the manual-reading endpoint use
build_reading_transaction, and both broadcast through broadcast_reading only
after the ledger confirmed the write.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from assetchain.commands.base import AssetCommands, Clock, as_u64, now_ms, require_fields, same_id
from assetchain.errors import ConfigError
from assetchain.ledger.gateway import LedgerGateway
from assetchain.ledger.transaction import Transaction, obj, pure_bool, pure_string, pure_u64
from assetchain.telemetry.fanout import TelemetryEvent, TelemetryFanout
from assetchain.types import CommandResult, Reading, SensorJob, TelemetryEventType

if TYPE_CHECKING:
    from assetchain.simulation.scheduler import SensorScheduler

LOGGER = logging.getLogger("assetchain.commands.sensor")

READING_EVENT_STRUCT = "part::SensorDataAdded"


def build_reading_transaction(package_id: str, reading: Reading) -> Transaction:
    tx = Transaction()
    record = tx.move_call(
        f"{package_id}::sensor_data::new_reading",
        [
            pure_string(reading.sensor_id),
            pure_u64(reading.timestamp),
            pure_string(reading.kind),
            pure_u64(reading.value),
            pure_string(reading.unit),
            pure_bool(reading.is_anomaly),
        ],
    )
    tx.move_call(f"{package_id}::part::add_sensor_reading", [obj(reading.asset_id), record])
    return tx


def broadcast_reading(fanout: TelemetryFanout, reading: Reading) -> None:
    """Publish a confirmed reading, plus an anomaly event when flagged."""
    payload = reading.to_payload()
    fanout.publish(reading.asset_id, TelemetryEvent.now(TelemetryEventType.READING.value, reading.asset_id, payload))
    if reading.is_anomaly:
        fanout.publish(reading.asset_id, TelemetryEvent.now(TelemetryEventType.ANOMALY.value, reading.asset_id, payload))


class SensorCommands(AssetCommands):
    module = "sensor_data"

    def __init__(
        self,
        gateway: LedgerGateway,
        package_id: str,
        *,
        fanout: Optional[TelemetryFanout] = None,
        scheduler: Optional["SensorScheduler"] = None,
        clock: Clock = now_ms,
    ) -> None:
        super().__init__(gateway, package_id, clock=clock)
        self._fanout = fanout
        self._scheduler = scheduler

    def record_reading(
        self,
        asset_id: str,
        sensor_id: str,
        kind: str,
        value: Any,
        unit: str,
        is_anomaly: bool = False,
    ) -> CommandResult:
        require_fields({"assetId": asset_id, "sensorId": sensor_id, "readingType": kind, "value": value, "unit": unit})
        reading = Reading(
            asset_id=asset_id,
            sensor_id=sensor_id,
            kind=kind,
            value=as_u64("value", value),
            unit=unit,
            is_anomaly=bool(is_anomaly),
            timestamp=self._clock(),
        )
        result = self._submit(build_reading_transaction(self._package_id, reading), f"reading added to {asset_id}")
        if self._fanout is not None:
            broadcast_reading(self._fanout, reading)
        return result

    def reading_history(self, asset_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        """Readings recorded for ``asset_id``, newest first, from ledger events."""
        require_fields({"assetId": asset_id})
        limit = as_u64("limit", limit, positive=True)
        events = self._gateway.query_events(f"{self._package_id}::{READING_EVENT_STRUCT}", limit=limit, descending=True)
        out: List[Dict[str, Any]] = []
        for event in events:
            parsed = event.get("parsedJson") or {}
            if same_id(parsed.get("part_id"), asset_id):
                out.append(parsed)
        return out

    # ------------------------------------------------------------------ #
    # Recurring simulation jobs
    # ------------------------------------------------------------------ #

    def add_sensor_job(
        self,
        asset_id: str,
        sensor_kind: str,
        interval_ms: Optional[int] = None,
        *,
        base_value: Optional[float] = None,
        variance: Optional[float] = None,
        anomaly_probability: Optional[float] = None,
    ) -> SensorJob:
        require_fields({"assetId": asset_id, "sensorKind": sensor_kind})
        return self._jobs().add_job(
            asset_id,
            sensor_kind,
            interval_ms,
            base_value=base_value,
            variance=variance,
            anomaly_probability=anomaly_probability,
        )

    def remove_sensor_job(self, asset_id: str, sensor_kind: str) -> bool:
        require_fields({"assetId": asset_id, "sensorKind": sensor_kind})
        return self._jobs().remove_job(asset_id, sensor_kind)

    def _jobs(self) -> "SensorScheduler":
        if self._scheduler is None:
            raise ConfigError("Sensor scheduler is not configured")
        return self._scheduler
