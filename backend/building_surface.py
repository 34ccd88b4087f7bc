from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from backend.services import Services, get_services, ok

router = APIRouter(prefix="/api", tags=["buildings"])


class CreateBuildingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    location: Optional[str] = None
    construction_year: Optional[int] = Field(default=None, alias="constructionYear")
    building_type: Optional[str] = Field(default=None, alias="buildingType")
    num_floors: Optional[int] = Field(default=None, alias="numFloors")
    seismic_zone: Optional[str] = Field(default=None, alias="seismicZone")


class CreateColumnRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    column_id: Optional[str] = Field(default=None, alias="columnId")
    floor_level: Optional[int] = Field(default=None, alias="floorLevel")
    column_type: Optional[str] = Field(default=None, alias="columnType")
    material: Optional[str] = None
    max_tilt: Optional[int] = Field(default=None, alias="maxTilt")
    max_vibration: Optional[int] = Field(default=None, alias="maxVibration")
    crack_threshold: Optional[int] = Field(default=None, alias="crackThreshold")
    building_id: Optional[str] = Field(default=None, alias="buildingId")


@router.post("/buildings/create")
def create_building(req: CreateBuildingRequest, services: Services = Depends(get_services)) -> dict:
    result = services.buildings.create_building(
        req.name,
        req.location,
        req.construction_year,
        req.building_type,
        req.num_floors,
        req.seismic_zone,
    )
    return result.to_dict()


@router.get("/buildings/owner/{address}")
def buildings_by_owner(address: str, services: Services = Depends(get_services)) -> dict:
    return ok(services.buildings.list_buildings(address))


@router.get("/buildings/{building_id}")
def get_building(building_id: str, services: Services = Depends(get_services)) -> dict:
    return ok(services.buildings.get_building(building_id))


@router.post("/columns/create")
def create_column(req: CreateColumnRequest, services: Services = Depends(get_services)) -> dict:
    result = services.buildings.create_column(
        req.column_id,
        req.floor_level,
        req.column_type,
        req.material,
        req.max_tilt,
        req.max_vibration,
        req.crack_threshold,
        building_id=req.building_id,
    )
    return result.to_dict()


@router.get("/columns/owner/{address}")
def columns_by_owner(
    address: str, building_id: Optional[str] = None, services: Services = Depends(get_services)
) -> dict:
    return ok(services.buildings.list_columns(address, building_id=building_id))
