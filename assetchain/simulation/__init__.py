from assetchain.simulation.job_store import SensorJobStore
from assetchain.simulation.readings import build_job, generate_reading, sensor_id_for, unit_for
from assetchain.simulation.scheduler import JobStats, SensorScheduler

__all__ = [
    "JobStats",
    "SensorJobStore",
    "SensorScheduler",
    "build_job",
    "generate_reading",
    "sensor_id_for",
    "unit_for",
]
