"""
assetchain/simulation/readings.py

Synthetic sensor reading generation and the anomaly policy.

One tick of a job:
    value      = base_value + uniform(-variance, +variance)
    is_anomaly = uniform(0, 1) < anomaly_probability
    value      = value * amplification when anomalous
    reading    = floor(value), with a unit from a fixed lookup

Base values are expressed in hundredths (7500 == 75.00 celsius) because the
ledger stores readings as u64.
"""

from __future__ import annotations

import math
import random
from typing import Dict, Final, Optional

from assetchain.errors import InvalidParameter
from assetchain.types import Reading, SensorJob, SensorKind

UNITS: Final[Dict[str, str]] = {
    SensorKind.TEMPERATURE.value: "celsius",
    SensorKind.VIBRATION.value: "hz",
    SensorKind.PRESSURE.value: "psi",
}

BASE_VALUES: Final[Dict[str, float]] = {
    SensorKind.TEMPERATURE.value: 7500,  # 75.00 celsius
    SensorKind.VIBRATION.value: 250,  # 2.50 hz
    SensorKind.PRESSURE.value: 3500,  # 35.00 psi
}

DEFAULT_VARIANCE_RATIO: Final[float] = 0.1
DEFAULT_ANOMALY_PROBABILITY: Final[float] = 0.05
DEFAULT_AMPLIFICATION: Final[float] = 1.5


def unit_for(kind: str) -> str:
    return UNITS.get(kind, "unknown")


def sensor_id_for(asset_id: str, kind: str) -> str:
    return f"{kind}-sensor-{asset_id[:8]}"


def build_job(
    asset_id: str,
    sensor_kind: str,
    interval_ms: int,
    *,
    base_value: Optional[float] = None,
    variance: Optional[float] = None,
    anomaly_probability: Optional[float] = None,
    variance_ratio: float = DEFAULT_VARIANCE_RATIO,
    default_anomaly_probability: float = DEFAULT_ANOMALY_PROBABILITY,
) -> SensorJob:
    """
    Validate parameters and fill sensor-kind defaults.

    Raises InvalidParameter for empty ids, intervals under one millisecond, unknown
    kinds without an explicit base value, negative variance, readings that
    could go negative, or probabilities outside [0, 1].
    """
    asset_id = (asset_id or "").strip()
    sensor_kind = (sensor_kind or "").strip().lower()
    if not asset_id:
        raise InvalidParameter("assetId must not be empty")
    if not sensor_kind:
        raise InvalidParameter("sensorKind must not be empty")
    if (
        isinstance(interval_ms, bool)
        or not isinstance(interval_ms, (int, float))
        or not math.isfinite(interval_ms)
        or int(interval_ms) < 1
    ):
        raise InvalidParameter(f"intervalMillis must be at least 1 whole millisecond, got {interval_ms!r}")

    if base_value is None:
        if sensor_kind not in BASE_VALUES:
            raise InvalidParameter(f"No default base value for sensor kind {sensor_kind!r}; pass baseValue")
        base_value = BASE_VALUES[sensor_kind]
    if variance is None:
        variance = base_value * variance_ratio
    if anomaly_probability is None:
        anomaly_probability = default_anomaly_probability

    if variance < 0:
        raise InvalidParameter(f"variance must be >= 0, got {variance}")
    if base_value - variance < 0:
        raise InvalidParameter("baseValue - variance must be >= 0 (readings are unsigned)")
    if not 0.0 <= anomaly_probability <= 1.0:
        raise InvalidParameter(f"anomalyProbability must be within [0, 1], got {anomaly_probability}")

    return SensorJob(
        asset_id=asset_id,
        sensor_kind=sensor_kind,
        interval_ms=int(interval_ms),
        base_value=float(base_value),
        variance=float(variance),
        anomaly_probability=float(anomaly_probability),
    )


def generate_reading(
    job: SensorJob,
    rng: random.Random,
    captured_at_ms: int,
    *,
    amplification: float = DEFAULT_AMPLIFICATION,
) -> Reading:
    value = job.base_value + rng.uniform(-job.variance, job.variance)
    is_anomaly = rng.random() < job.anomaly_probability
    if is_anomaly:
        value *= amplification
    return Reading(
        asset_id=job.asset_id,
        sensor_id=sensor_id_for(job.asset_id, job.sensor_kind),
        kind=job.sensor_kind,
        value=int(math.floor(value)),
        unit=unit_for(job.sensor_kind),
        is_anomaly=is_anomaly,
        timestamp=int(captured_at_ms),
    )
