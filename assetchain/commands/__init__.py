from assetchain.commands.aircraft import AircraftCommands
from assetchain.commands.building import BuildingCommands
from assetchain.commands.part import PartCommands
from assetchain.commands.sensor import SensorCommands, broadcast_reading, build_reading_transaction

__all__ = [
    "AircraftCommands",
    "BuildingCommands",
    "PartCommands",
    "SensorCommands",
    "broadcast_reading",
    "build_reading_transaction",
]
