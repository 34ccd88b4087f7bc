from __future__ import annotations

import random
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient

from assetchain.config import AppConfig, SimulationDefaults
from backend.app import create_app
from backend.services import Services, wire_services


@pytest.fixture
def services(fake_gateway: Any, package_id: str) -> Services:
    config = AppConfig(
        package_id=package_id,
        simulate_on_subscribe=("temperature",),
        simulation=SimulationDefaults(anomaly_probability=0.0, interval_seconds=60.0),
    )
    return wire_services(config, fake_gateway, rng=random.Random(3))


@pytest.fixture
def client(services: Services) -> Iterator[TestClient]:
    with TestClient(create_app(services=services)) as c:
        yield c
