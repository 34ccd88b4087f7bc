from __future__ import annotations

from typing import Optional, Union

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from backend.services import Services, get_services, ok

router = APIRouter(prefix="/api/parts", tags=["parts"])


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreatePartRequest(_CamelModel):
    serial_number: Optional[str] = Field(default=None, alias="serialNumber")
    part_type: Optional[str] = Field(default=None, alias="partType")
    manufacturer: Optional[str] = None
    manufacture_date: Optional[Union[int, str]] = Field(default=None, alias="manufactureDate")
    maintenance_interval: Optional[int] = Field(default=None, alias="maintenanceInterval")


class AttachPartRequest(_CamelModel):
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    aircraft_id: Optional[str] = Field(default=None, alias="aircraftId")


class TransferPartRequest(_CamelModel):
    aircraft_id: Optional[str] = Field(default=None, alias="aircraftId")


class UpdateHoursRequest(_CamelModel):
    additional_hours: Optional[int] = Field(default=None, alias="additionalHours")


class MaintenanceRequest(_CamelModel):
    maintenance_type: Optional[str] = Field(default=None, alias="maintenanceType")
    next_maintenance_hours: Optional[int] = Field(default=None, alias="nextMaintenanceHours")


@router.post("/create")
def create_part(req: CreatePartRequest, services: Services = Depends(get_services)) -> dict:
    result = services.parts.create_part(
        req.serial_number,
        req.part_type,
        req.manufacturer,
        req.manufacture_date,
        req.maintenance_interval,
    )
    return result.to_dict()


@router.get("/owner/{address}")
def parts_by_owner(address: str, services: Services = Depends(get_services)) -> dict:
    return ok(services.parts.list_parts(address))


@router.get("/{part_id}")
def get_part(part_id: str, services: Services = Depends(get_services)) -> dict:
    return ok(services.parts.get_part(part_id))


@router.get("/{part_id}/transfers")
def part_transfers(
    part_id: str, limit: int = Query(default=50, ge=1, le=1000), services: Services = Depends(get_services)
) -> dict:
    return ok(services.parts.transfer_history(part_id, limit=limit))


@router.post("/{part_id}/attach")
def attach_part(part_id: str, req: AttachPartRequest, services: Services = Depends(get_services)) -> dict:
    return services.parts.attach_part(part_id, req.parent_id, req.aircraft_id).to_dict()


@router.post("/{part_id}/detach")
def detach_part(part_id: str, services: Services = Depends(get_services)) -> dict:
    return services.parts.detach_part(part_id).to_dict()


@router.post("/{part_id}/transfer")
def transfer_part(part_id: str, req: TransferPartRequest, services: Services = Depends(get_services)) -> dict:
    return services.parts.transfer_part(part_id, req.aircraft_id).to_dict()


@router.post("/{part_id}/update-hours")
def update_hours(part_id: str, req: UpdateHoursRequest, services: Services = Depends(get_services)) -> dict:
    return services.parts.update_flight_hours(part_id, req.additional_hours).to_dict()


@router.post("/{part_id}/maintenance")
def perform_maintenance(part_id: str, req: MaintenanceRequest, services: Services = Depends(get_services)) -> dict:
    result = services.parts.perform_maintenance(part_id, req.maintenance_type, req.next_maintenance_hours)
    return result.to_dict()


@router.post("/{part_id}/activate")
def activate_part(part_id: str, services: Services = Depends(get_services)) -> dict:
    return services.parts.mark_active(part_id).to_dict()
