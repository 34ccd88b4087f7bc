"""
Service container for the AssetChain API.

Everything a route needs (gateway, fan-out, scheduler, command handlers) is
built once at startup by build_services() and hung off ``app.state``. Routes
reach it through the get_services dependency, which lets tests hand the app
a container wired to a fake gateway.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Request, WebSocket

from assetchain.commands import AircraftCommands, BuildingCommands, PartCommands, SensorCommands
from assetchain.config import AppConfig
from assetchain.errors import ConfigError
from assetchain.ledger import JsonRpcClient, LedgerGateway, SigningCredential
from assetchain.simulation import SensorJobStore, SensorScheduler
from assetchain.telemetry import TelemetryFanout

LOGGER = logging.getLogger("assetchain.backend.services")


@dataclass
class Services:
    config: AppConfig
    gateway: Any
    fanout: TelemetryFanout
    scheduler: SensorScheduler
    aircraft: AircraftCommands
    parts: PartCommands
    buildings: BuildingCommands
    sensors: SensorCommands


def wire_services(
    config: AppConfig,
    gateway: Any,
    *,
    store: Optional[SensorJobStore] = None,
    rng: Optional[random.Random] = None,
) -> Services:
    """Assemble handlers around an existing gateway (real or fake)."""
    fanout = TelemetryFanout()
    package_id = config.package_id
    scheduler = SensorScheduler(
        gateway,
        fanout,
        package_id,
        store,
        defaults=config.simulation,
        rng=rng,
    )
    return Services(
        config=config,
        gateway=gateway,
        fanout=fanout,
        scheduler=scheduler,
        aircraft=AircraftCommands(gateway, package_id),
        parts=PartCommands(gateway, package_id),
        buildings=BuildingCommands(gateway, package_id),
        sensors=SensorCommands(gateway, package_id, fanout=fanout, scheduler=scheduler),
    )


def build_services(config: AppConfig) -> Services:
    """
    Production wiring: credential -> JSON-RPC client -> gateway.

    Raises ConfigError when the signing key or package id is missing or the
    key cannot be decoded; the process must not start without them.
    """
    config.require_ledger_credentials()
    credential = SigningCredential.from_encoded(config.private_key)
    rpc = JsonRpcClient(config.rpc_url, timeout_s=config.ledger_timeout_s)
    gateway = LedgerGateway(rpc, credential, gas_budget=config.gas_budget)
    store = SensorJobStore(config.job_store_path)
    LOGGER.info("Ledger gateway ready: network=%s address=%s", config.network.value, gateway.address)
    return wire_services(config, gateway, store=store)


def _from_state(state: Any) -> Services:
    services = getattr(state, "services", None)
    if services is None:
        raise ConfigError("Services are not initialised")
    return services


def get_services(request: Request) -> Services:
    return _from_state(request.app.state)


def get_ws_services(websocket: WebSocket) -> Services:
    return _from_state(websocket.app.state)


def ok(data: Any) -> dict:
    return {"success": True, "data": data}
