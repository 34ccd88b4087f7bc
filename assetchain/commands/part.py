from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from assetchain.commands.base import (
    AssetCommands,
    as_timestamp_ms,
    as_u64,
    object_fields,
    require_fields,
    same_id,
)
from assetchain.ledger.transaction import Transaction, obj, pure_address, pure_string, pure_u64
from assetchain.types import CommandResult

LOGGER = logging.getLogger("assetchain.commands.part")

PART_STRUCT = "part::Part"
PART_TRANSFERRED_EVENT = "part::PartTransferred"


class PartCommands(AssetCommands):
    """Part lifecycle: creation, attachment, hours and maintenance."""

    module = "part"

    def create_part(
        self,
        serial_number: str,
        part_type: str,
        manufacturer: str,
        manufacture_date: Any,
        maintenance_interval: Any,
    ) -> CommandResult:
        require_fields(
            {
                "serialNumber": serial_number,
                "partType": part_type,
                "manufacturer": manufacturer,
                "manufactureDate": manufacture_date,
                "maintenanceInterval": maintenance_interval,
            }
        )
        tx = Transaction()
        tx.move_call(
            self._target("create_part"),
            [
                pure_string(serial_number),
                pure_string(part_type),
                pure_string(manufacturer),
                pure_u64(as_timestamp_ms("manufactureDate", manufacture_date)),
                pure_u64(as_u64("maintenanceInterval", maintenance_interval, positive=True)),
            ],
        )
        return self._submit(tx, f"part {serial_number} created", created_struct=PART_STRUCT)

    def attach_part(self, part_id: str, parent_id: str, aircraft_id: str) -> CommandResult:
        require_fields({"partId": part_id, "parentId": parent_id, "aircraftId": aircraft_id})
        tx = Transaction()
        tx.move_call(self._target("attach_to_parent"), [obj(part_id), pure_address(parent_id), pure_address(aircraft_id)])
        return self._submit(tx, f"part {part_id} attached to {parent_id}")

    def detach_part(self, part_id: str) -> CommandResult:
        require_fields({"partId": part_id})
        tx = Transaction()
        tx.move_call(self._target("detach_from_aircraft"), [obj(part_id)])
        return self._submit(tx, f"part {part_id} detached")

    def transfer_part(self, part_id: str, aircraft_id: str) -> CommandResult:
        """Move a part onto ``aircraft_id``, detaching it first when attached elsewhere."""
        require_fields({"partId": part_id, "aircraftId": aircraft_id})
        current = object_fields(self.get_part(part_id)).get("aircraft_id")

        tx = Transaction()
        if current:
            tx.move_call(self._target("detach_from_aircraft"), [obj(part_id)])
        tx.move_call(self._target("attach_to_parent"), [obj(part_id), pure_address(aircraft_id), pure_address(aircraft_id)])
        return self._submit(tx, f"part {part_id} transferred to {aircraft_id}")

    def update_flight_hours(self, part_id: str, additional_hours: Any) -> CommandResult:
        require_fields({"partId": part_id, "additionalHours": additional_hours})
        tx = Transaction()
        tx.move_call(
            self._target("update_flight_hours"),
            [obj(part_id), pure_u64(as_u64("additionalHours", additional_hours, positive=True))],
        )
        return self._submit(tx, f"part {part_id} flight hours +{additional_hours}")

    def perform_maintenance(self, part_id: str, maintenance_type: str, next_maintenance_hours: Any) -> CommandResult:
        require_fields(
            {
                "partId": part_id,
                "maintenanceType": maintenance_type,
                "nextMaintenanceHours": next_maintenance_hours,
            }
        )
        tx = Transaction()
        tx.move_call(
            self._target("perform_maintenance"),
            [
                obj(part_id),
                pure_string(maintenance_type),
                pure_u64(self._clock()),
                pure_u64(as_u64("nextMaintenanceHours", next_maintenance_hours, positive=True)),
            ],
        )
        return self._submit(tx, f"maintenance on part {part_id}: {maintenance_type}")

    def mark_active(self, part_id: str) -> CommandResult:
        require_fields({"partId": part_id})
        tx = Transaction()
        tx.move_call(self._target("mark_active"), [obj(part_id)])
        return self._submit(tx, f"part {part_id} marked active")

    def get_part(self, part_id: str) -> Dict[str, Any]:
        return self._get(part_id, PART_STRUCT, "Part")

    def list_parts(self, owner: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._owned(owner, PART_STRUCT)

    def transfer_history(self, part_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        require_fields({"partId": part_id})
        events = self._gateway.query_events(
            f"{self._package_id}::{PART_TRANSFERRED_EVENT}",
            limit=as_u64("limit", limit, positive=True),
            descending=True,
        )
        return [
            event.get("parsedJson") or {}
            for event in events
            if same_id((event.get("parsedJson") or {}).get("part_id"), part_id)
        ]
