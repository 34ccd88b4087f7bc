"""
Live telemetry push channel.

Protocol (JSON text frames):

    client -> {"action": "subscribe", "assetId": "0x..."}
    client -> {"action": "unsubscribe", "assetId": "0x..."}
    server -> {"event": "subscribed" | "unsubscribed", "assetId": "0x..."}
    server -> {"event": "reading" | "anomaly", "assetId": "0x...", "data": {...}}
    server -> {"event": "error", "message": "..."}

``subscribe:part`` / ``subscribe:aircraft`` (and their ``unsubscribe:``
forms) are accepted as aliases, as are ``partId`` / ``aircraftId`` in place
of ``assetId``. Every subscription of a socket ends when it disconnects.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from assetchain.errors import AssetChainError
from assetchain.telemetry import Subscriber
from backend.services import Services, get_ws_services

LOGGER = logging.getLogger("assetchain.backend.telemetry")

router = APIRouter(tags=["telemetry"])

_ID_KEYS = ("assetId", "partId", "aircraftId")


def _asset_id(message: Dict[str, Any]) -> Optional[str]:
    for key in _ID_KEYS:
        value = message.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class _Connection:
    """One websocket: its subscriber outbox plus a lock serialising sends."""

    def __init__(self, websocket: WebSocket, services: Services) -> None:
        self.websocket = websocket
        self.services = services
        self.subscriber = Subscriber(
            max_pending=services.config.fanout_queue_size,
            loop=asyncio.get_running_loop(),
        )
        self._send_lock = asyncio.Lock()

    async def send(self, message: Dict[str, Any]) -> None:
        async with self._send_lock:
            await self.websocket.send_json(message)

    async def pump(self) -> None:
        while True:
            event = await self.subscriber.next_event()
            await self.send(event.to_message())

    async def handle(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            await self.send({"event": "error", "message": "Messages must be JSON objects"})
            return
        if not isinstance(message, dict):
            await self.send({"event": "error", "message": "Messages must be JSON objects"})
            return

        action = str(message.get("action") or "").split(":", 1)[0].strip().lower()
        asset_id = _asset_id(message)
        if action not in ("subscribe", "unsubscribe"):
            await self.send({"event": "error", "message": f"Unknown action {message.get('action')!r}"})
            return
        if asset_id is None:
            await self.send({"event": "error", "message": "assetId is required"})
            return

        fanout = self.services.fanout
        if action == "subscribe":
            first = fanout.subscribe(asset_id, self.subscriber)
            if first:
                self._simulate_on_subscribe(asset_id)
            await self.send({"event": "subscribed", "assetId": asset_id})
        else:
            fanout.unsubscribe(asset_id, self.subscriber)
            await self.send({"event": "unsubscribed", "assetId": asset_id})

    def _simulate_on_subscribe(self, asset_id: str) -> None:
        services = self.services
        for kind in services.config.simulate_on_subscribe:
            if services.scheduler.get_job(asset_id, kind) is not None:
                continue
            try:
                services.sensors.add_sensor_job(asset_id, kind)
            except AssetChainError as exc:
                LOGGER.warning("Cannot start %s simulation for %s: %s", kind, asset_id, exc)

    def close(self) -> None:
        self.services.fanout.unsubscribe_all(self.subscriber)


@router.websocket("/ws/telemetry")
async def telemetry_socket(websocket: WebSocket, services: Services = Depends(get_ws_services)) -> None:
    await websocket.accept()
    conn = _Connection(websocket, services)
    LOGGER.info("Telemetry client connected: %s", conn.subscriber.subscriber_id)
    pump = asyncio.create_task(conn.pump())
    try:
        while True:
            raw = await websocket.receive_text()
            await conn.handle(raw)
    except WebSocketDisconnect:
        LOGGER.info("Telemetry client disconnected: %s", conn.subscriber.subscriber_id)
    finally:
        conn.close()
        pump.cancel()
        await asyncio.gather(pump, return_exceptions=True)
