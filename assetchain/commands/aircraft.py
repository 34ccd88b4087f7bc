from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from assetchain.commands.base import AssetCommands, as_timestamp_ms, as_u64, object_fields, require_fields, same_id
from assetchain.ledger.transaction import Transaction, obj, pure_string, pure_u64
from assetchain.types import CommandResult

LOGGER = logging.getLogger("assetchain.commands.aircraft")

AIRCRAFT_STRUCT = "aircraft::Aircraft"
PART_STRUCT = "part::Part"


class AircraftCommands(AssetCommands):
    """Aircraft registration, flights and status changes."""

    module = "aircraft"

    def create_aircraft(self, tail_number: str, model: str, manufacturer: str, manufacture_date: Any) -> CommandResult:
        require_fields(
            {
                "tailNumber": tail_number,
                "model": model,
                "manufacturer": manufacturer,
                "manufactureDate": manufacture_date,
            }
        )
        tx = Transaction()
        tx.move_call(
            self._target("create_aircraft"),
            [
                pure_string(tail_number),
                pure_string(model),
                pure_string(manufacturer),
                pure_u64(as_timestamp_ms("manufactureDate", manufacture_date)),
            ],
        )
        return self._submit(tx, f"aircraft {tail_number} created", created_struct=AIRCRAFT_STRUCT)

    def complete_flight(self, aircraft_id: str, flight_hours: Any) -> CommandResult:
        """
        Log a completed flight.

        The aircraft and every part attached to it are updated in the same
        transaction, so hours never drift between an aircraft and its parts.
        """
        require_fields({"aircraftId": aircraft_id, "flightHours": flight_hours})
        hours = as_u64("flightHours", flight_hours, positive=True)
        parts = self.attached_part_ids(aircraft_id)

        tx = Transaction()
        tx.move_call(self._target("complete_flight"), [obj(aircraft_id), pure_u64(hours), pure_u64(self._clock())])
        for part_id in parts:
            tx.move_call(self._target("update_flight_hours", module="part"), [obj(part_id), pure_u64(hours)])
        return self._submit(tx, f"flight completed for aircraft {aircraft_id}: {hours}h, {len(parts)} parts")

    def change_status(self, aircraft_id: str, status: str) -> CommandResult:
        require_fields({"aircraftId": aircraft_id, "status": status})
        tx = Transaction()
        tx.move_call(self._target("change_status"), [obj(aircraft_id), pure_string(status), pure_u64(self._clock())])
        return self._submit(tx, f"aircraft {aircraft_id} status -> {status}")

    def attached_part_ids(self, aircraft_id: str) -> List[str]:
        return [
            str(part.get("objectId"))
            for part in self._owned(None, PART_STRUCT)
            if same_id(object_fields(part).get("aircraft_id"), aircraft_id)
        ]

    def get_aircraft(self, aircraft_id: str) -> Dict[str, Any]:
        return self._get(aircraft_id, AIRCRAFT_STRUCT, "Aircraft")

    def list_aircraft(self, owner: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._owned(owner, AIRCRAFT_STRUCT)
