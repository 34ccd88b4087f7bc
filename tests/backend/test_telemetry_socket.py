from __future__ import annotations

import time
from typing import Any

from fastapi.testclient import TestClient

from assetchain.errors import TransactionRejected
from backend.services import Services

READING = {"assetId": "0xa1", "sensorId": "vib-1", "readingType": "vibration", "value": 900, "unit": "hz"}


def test_subscribe_then_receive_confirmed_readings(client: TestClient) -> None:
    with client.websocket_connect("/ws/telemetry") as ws:
        ws.send_json({"action": "subscribe", "assetId": "0xa1"})
        assert ws.receive_json() == {"event": "subscribed", "assetId": "0xa1"}

        r = client.post("/api/sensors/reading", json={**READING, "isAnomaly": True})
        assert r.status_code == 200

        reading = ws.receive_json()
        anomaly = ws.receive_json()
        assert reading["event"] == "reading"
        assert reading["assetId"] == "0xa1"
        assert reading["data"]["value"] == 900
        assert reading["data"]["sensorId"] == "vib-1"
        assert anomaly["event"] == "anomaly"


def test_rejected_write_is_not_broadcast(client: TestClient, services: Services, fake_gateway: Any) -> None:
    with client.websocket_connect("/ws/telemetry") as ws:
        ws.send_json({"action": "subscribe:part", "partId": "0xa1"})
        assert ws.receive_json()["event"] == "subscribed"

        fake_gateway.fail_next(TransactionRejected("abort"))
        assert client.post("/api/sensors/reading", json=READING).status_code == 422
        assert client.post("/api/sensors/reading", json={**READING, "value": 901}).status_code == 200

        # the first event to arrive is the second, confirmed write
        assert ws.receive_json()["data"]["value"] == 901


def test_protocol_errors(client: TestClient) -> None:
    with client.websocket_connect("/ws/telemetry") as ws:
        ws.send_text("not json")
        assert ws.receive_json()["event"] == "error"

        ws.send_json({"action": "dance", "assetId": "0xa1"})
        error = ws.receive_json()
        assert error["event"] == "error"
        assert "dance" in error["message"]

        ws.send_json({"action": "subscribe"})
        assert ws.receive_json() == {"event": "error", "message": "assetId is required"}


def test_unsubscribe_and_disconnect_cleanup(client: TestClient, services: Services) -> None:
    with client.websocket_connect("/ws/telemetry") as ws:
        ws.send_json({"action": "subscribe", "assetId": "0xa1"})
        ws.receive_json()
        ws.send_json({"action": "subscribe:aircraft", "aircraftId": "0xa2"})
        ws.receive_json()

        ws.send_json({"action": "unsubscribe", "assetId": "0xa1"})
        assert ws.receive_json() == {"event": "unsubscribed", "assetId": "0xa1"}
        assert services.fanout.subscriber_count("0xa1") == 0
        assert services.fanout.subscriber_count("0xa2") == 1

    deadline = time.monotonic() + 2.0
    while services.fanout.channel_sizes() and time.monotonic() < deadline:
        time.sleep(0.01)
    assert services.fanout.channel_sizes() == {}


def test_first_subscriber_starts_configured_simulation(client: TestClient, services: Services) -> None:
    with client.websocket_connect("/ws/telemetry") as ws:
        ws.send_json({"action": "subscribe", "assetId": "0xa1"})
        ws.receive_json()

    (job,) = services.scheduler.list_jobs("0xa1")
    assert job.sensor_kind == "temperature"
    assert job.interval_ms == 60000


def test_simulation_failure_does_not_break_subscription(client: TestClient, services: Services) -> None:
    with client.websocket_connect("/ws/telemetry") as ws:
        ws.send_json({"action": "subscribe", "assetId": "not-a-ledger-id"})
        assert ws.receive_json() == {"event": "subscribed", "assetId": "not-a-ledger-id"}

    assert services.scheduler.list_jobs() == []
