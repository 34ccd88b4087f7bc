from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from assetchain.commands.base import AssetCommands, as_u64, object_fields, require_fields, same_id
from assetchain.ledger.transaction import Transaction, pure_id, pure_string, pure_u64
from assetchain.types import CommandResult

LOGGER = logging.getLogger("assetchain.commands.building")

BUILDING_STRUCT = "building::Building"
COLUMN_STRUCT = "column::Column"


class BuildingCommands(AssetCommands):
    """Buildings and the structural columns monitored inside them."""

    module = "building"

    def create_building(
        self,
        name: str,
        location: str,
        construction_year: Any,
        building_type: str,
        num_floors: Any,
        seismic_zone: str,
    ) -> CommandResult:
        require_fields(
            {
                "name": name,
                "location": location,
                "constructionYear": construction_year,
                "buildingType": building_type,
                "numFloors": num_floors,
                "seismicZone": seismic_zone,
            }
        )
        tx = Transaction()
        tx.move_call(
            self._target("create_building"),
            [
                pure_string(name),
                pure_string(location),
                pure_u64(as_u64("constructionYear", construction_year, positive=True)),
                pure_string(building_type),
                pure_u64(as_u64("numFloors", num_floors, positive=True)),
                pure_string(seismic_zone),
            ],
        )
        return self._submit(tx, f"building {name} created", created_struct=BUILDING_STRUCT)

    def create_column(
        self,
        column_id: str,
        floor_level: Any,
        column_type: str,
        material: str,
        max_tilt: Any,
        max_vibration: Any,
        crack_threshold: Any,
        building_id: Optional[str] = None,
    ) -> CommandResult:
        """
        Create a column and, when ``building_id`` is given, attach it in the
        same transaction (the attach call consumes the create call's result).
        """
        require_fields(
            {
                "columnId": column_id,
                "floorLevel": floor_level,
                "columnType": column_type,
                "material": material,
                "maxTilt": max_tilt,
                "maxVibration": max_vibration,
                "crackThreshold": crack_threshold,
            }
        )
        tx = Transaction()
        column = tx.move_call(
            self._target("create_column", module="column"),
            [
                pure_string(column_id),
                pure_u64(as_u64("floorLevel", floor_level)),
                pure_string(column_type),
                pure_string(material),
                pure_u64(self._clock()),
                pure_u64(as_u64("maxTilt", max_tilt)),
                pure_u64(as_u64("maxVibration", max_vibration)),
                pure_u64(as_u64("crackThreshold", crack_threshold)),
            ],
        )
        if building_id:
            tx.move_call(self._target("attach_to_building", module="column"), [column, pure_id(building_id)])
        return self._submit(tx, f"column {column_id} created", created_struct=COLUMN_STRUCT)

    def get_building(self, building_id: str) -> Dict[str, Any]:
        return self._get(building_id, BUILDING_STRUCT, "Building")

    def list_buildings(self, owner: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._owned(owner, BUILDING_STRUCT)

    def list_columns(self, owner: Optional[str] = None, building_id: Optional[str] = None) -> List[Dict[str, Any]]:
        columns = self._owned(owner, COLUMN_STRUCT)
        if not building_id:
            return columns
        return [c for c in columns if same_id(object_fields(c).get("building_id"), building_id)]
