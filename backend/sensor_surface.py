from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from assetchain.simulation.readings import BASE_VALUES
from assetchain.types import SensorJob
from backend.services import Services, get_services, ok

router = APIRouter(prefix="/api/sensors", tags=["sensors"])


class ReadingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    asset_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("assetId", "partId", "asset_id"))
    sensor_id: Optional[str] = Field(default=None, alias="sensorId")
    reading_type: Optional[str] = Field(default=None, alias="readingType")
    value: Optional[int] = None
    unit: Optional[str] = None
    is_anomaly: bool = Field(default=False, alias="isAnomaly")


class SensorJobRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    asset_id: Optional[str] = Field(default=None, alias="assetId")
    sensor_kind: Optional[str] = Field(default=None, alias="sensorKind")
    interval_ms: Optional[int] = Field(default=None, alias="intervalMillis")
    base_value: Optional[float] = Field(default=None, alias="baseValue")
    variance: Optional[float] = None
    anomaly_probability: Optional[float] = Field(default=None, alias="anomalyProbability")


class SimulateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    interval_seconds: Optional[float] = Field(default=None, alias="interval", gt=0)
    kinds: Optional[List[str]] = None


def _job_view(services: Services, job: SensorJob) -> dict:
    out = job.to_dict()
    out["stats"] = services.scheduler.stats(job.asset_id, job.sensor_kind).to_dict()
    return out


# ---------------------------------------------------------------------------
# Readings
# ---------------------------------------------------------------------------


@router.post("/reading")
def add_reading(req: ReadingRequest, services: Services = Depends(get_services)) -> dict:
    result = services.sensors.record_reading(
        req.asset_id,
        req.sensor_id,
        req.reading_type,
        req.value,
        req.unit,
        req.is_anomaly,
    )
    return result.to_dict()


@router.get("/{asset_id}/readings")
def reading_history(
    asset_id: str, limit: int = Query(default=100, ge=1, le=1000), services: Services = Depends(get_services)
) -> dict:
    return ok(services.sensors.reading_history(asset_id, limit=limit))


# ---------------------------------------------------------------------------
# Recurring jobs (run on the event loop, the scheduler's home)
# ---------------------------------------------------------------------------


@router.get("/jobs")
async def list_jobs(asset_id: Optional[str] = Query(default=None, alias="assetId"), services: Services = Depends(get_services)) -> dict:
    return ok([_job_view(services, job) for job in services.scheduler.list_jobs(asset_id)])


@router.post("/jobs")
async def add_sensor_job(req: SensorJobRequest, services: Services = Depends(get_services)) -> dict:
    job = services.sensors.add_sensor_job(
        req.asset_id,
        req.sensor_kind,
        req.interval_ms,
        base_value=req.base_value,
        variance=req.variance,
        anomaly_probability=req.anomaly_probability,
    )
    return ok(job.to_dict())


@router.delete("/jobs/{asset_id}/{sensor_kind}")
async def remove_sensor_job(asset_id: str, sensor_kind: str, services: Services = Depends(get_services)) -> dict:
    removed = services.sensors.remove_sensor_job(asset_id, sensor_kind)
    return {"success": True, "removed": removed}


@router.post("/simulate/{asset_id}")
async def simulate(asset_id: str, req: Optional[SimulateRequest] = None, services: Services = Depends(get_services)) -> dict:
    """Start (or restart) one job per sensor kind for ``asset_id``."""
    req = req or SimulateRequest()
    interval_ms = int(req.interval_seconds * 1000) if req.interval_seconds else None
    kinds = req.kinds or sorted(BASE_VALUES)
    jobs = [services.sensors.add_sensor_job(asset_id, kind, interval_ms) for kind in kinds]
    return ok([job.to_dict() for job in jobs])
