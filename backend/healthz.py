from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from assetchain.ops.metrics import render_metrics
from backend.services import Services, get_services

router = APIRouter(tags=["system"])


class HealthResponse(BaseModel):
    service: str = Field(default="AssetChain Backend")
    healthy: bool
    message: str
    details: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health(services: Services = Depends(get_services)) -> HealthResponse:
    """
    Liveness probe. Reports local state only; it does not call the ledger.
    """
    cfg = services.config
    return HealthResponse(
        healthy=True,
        message="AssetChain backend is up.",
        details={
            "network": cfg.network.value,
            "rpcUrl": cfg.rpc_url,
            "packageId": cfg.package_id,
            "sensorJobs": len(services.scheduler.list_jobs()),
            "telemetryChannels": len(services.fanout.channel_sizes()),
        },
    )


@router.get("/metrics", include_in_schema=False)
async def metrics(services: Services = Depends(get_services)) -> Response:
    body = render_metrics(services.scheduler, services.fanout, services.gateway)
    return Response(content=body, media_type="text/plain; version=0.0.4")
