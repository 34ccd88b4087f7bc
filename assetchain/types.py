"""
assetchain/types.py

Core type definitions shared by the scheduler, the fan-out and the command
handlers.

Ledger records themselves (Aircraft, Part, Building, Column) are consumed as
opaque JSON content; only the identifiers and linkage fields the application
needs are modelled here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class SensorKind(str, Enum):
    """Sensor kinds with built-in simulation profiles."""

    TEMPERATURE = "temperature"
    VIBRATION = "vibration"
    PRESSURE = "pressure"


class TelemetryEventType(str, Enum):
    READING = "reading"
    ANOMALY = "anomaly"


# ---------------------------------------------------------------------------
# Sensor jobs & readings
# ---------------------------------------------------------------------------


JobKey = Tuple[str, str]


@dataclass(frozen=True)
class SensorJob:
    """
    A recurring synthetic-telemetry task for one (asset, sensor kind) pair.

    Instances are immutable snapshots; the scheduler replaces a job by
    registering a new instance under the same key.
    """

    asset_id: str
    sensor_kind: str
    interval_ms: int
    base_value: float
    variance: float
    anomaly_probability: float
    enabled: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> JobKey:
        return (self.asset_id, self.sensor_kind)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assetId": self.asset_id,
            "sensorKind": self.sensor_kind,
            "intervalMillis": self.interval_ms,
            "baseValue": self.base_value,
            "variance": self.variance,
            "anomalyProbability": self.anomaly_probability,
            "enabled": self.enabled,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Reading:
    """One generated telemetry sample for one tick of one job."""

    asset_id: str
    sensor_id: str
    kind: str
    value: int
    unit: str
    is_anomaly: bool
    timestamp: int  # capture time, epoch milliseconds

    def to_payload(self) -> Dict[str, Any]:
        return {
            "assetId": self.asset_id,
            "sensorId": self.sensor_id,
            "kind": self.kind,
            "value": self.value,
            "unit": self.unit,
            "isAnomaly": self.is_anomaly,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one asset command: exactly one confirmed ledger transaction."""

    transaction_id: str
    created_object_id: Optional[str] = None
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success, "transactionId": self.transaction_id}
        if self.created_object_id is not None:
            out["createdObjectId"] = self.created_object_id
        return out
