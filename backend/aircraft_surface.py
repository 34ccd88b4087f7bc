from __future__ import annotations

from typing import Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from backend.services import Services, get_services, ok

router = APIRouter(prefix="/api/aircraft", tags=["aircraft"])


class CreateAircraftRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tail_number: Optional[str] = Field(default=None, alias="tailNumber")
    model: Optional[str] = None
    manufacturer: Optional[str] = None
    manufacture_date: Optional[Union[int, str]] = Field(
        default=None, alias="manufactureDate", description="Epoch millis or ISO date"
    )


class CompleteFlightRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    flight_hours: Optional[int] = Field(default=None, alias="flightHours")


class ChangeStatusRequest(BaseModel):
    status: Optional[str] = None


@router.post("/create")
def create_aircraft(req: CreateAircraftRequest, services: Services = Depends(get_services)) -> dict:
    result = services.aircraft.create_aircraft(req.tail_number, req.model, req.manufacturer, req.manufacture_date)
    return result.to_dict()


@router.get("/owner/{address}")
def aircraft_by_owner(address: str, services: Services = Depends(get_services)) -> dict:
    return ok(services.aircraft.list_aircraft(address))


@router.get("/{aircraft_id}")
def get_aircraft(aircraft_id: str, services: Services = Depends(get_services)) -> dict:
    return ok(services.aircraft.get_aircraft(aircraft_id))


@router.post("/{aircraft_id}/complete-flight")
def complete_flight(
    aircraft_id: str, req: CompleteFlightRequest, services: Services = Depends(get_services)
) -> dict:
    return services.aircraft.complete_flight(aircraft_id, req.flight_hours).to_dict()


@router.post("/{aircraft_id}/change-status")
def change_status(aircraft_id: str, req: ChangeStatusRequest, services: Services = Depends(get_services)) -> dict:
    return services.aircraft.change_status(aircraft_id, req.status).to_dict()
