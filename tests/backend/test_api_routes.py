from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient

from assetchain.errors import TransactionRejected, TransportFailure
from assetchain.ledger.bcs import normalize_address
from backend.services import Services


def test_health_reports_local_state(client: TestClient, package_id: str) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["healthy"] is True
    assert body["details"]["packageId"] == package_id
    assert body["details"]["sensorJobs"] == 0


def test_metrics_are_prometheus_text(client: TestClient) -> None:
    r = client.get("/metrics")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert "assetchain_up 1.0" in r.text.splitlines()


def test_create_aircraft(client: TestClient, fake_gateway: Any, package_id: str) -> None:
    aircraft_id = normalize_address("0xa1")
    fake_gateway.creates(f"{package_id}::aircraft::Aircraft", aircraft_id)

    r = client.post(
        "/api/aircraft/create",
        json={"tailNumber": "N123AB", "model": "A320", "manufacturer": "Airbus", "manufactureDate": "2015-06-01"},
    )

    assert r.status_code == 200
    assert r.json() == {"success": True, "transactionId": "tx1", "createdObjectId": aircraft_id}


def test_missing_fields_are_listed(client: TestClient, fake_gateway: Any) -> None:
    r = client.post("/api/aircraft/create", json={"tailNumber": "N1"})

    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["error"] == "missing_field"
    assert body["details"]["fields"] == ["model", "manufacturer", "manufactureDate"]
    assert fake_gateway.submitted == []


def test_malformed_body_is_invalid_parameter(client: TestClient) -> None:
    r = client.post("/api/aircraft/0xa1/complete-flight", json={"flightHours": "many"})
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_parameter"
    assert "flightHours" in r.json()["message"]


def test_unknown_object_is_404(client: TestClient) -> None:
    r = client.get("/api/aircraft/0xa1")
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"


def test_read_returns_object(client: TestClient, fake_gateway: Any, package_id: str) -> None:
    fake_gateway.objects["0xb1"] = {"objectId": normalize_address("0xb1"), "type": f"{package_id}::part::Part"}
    r = client.get("/api/parts/0xb1")
    assert r.status_code == 200
    assert r.json()["data"]["objectId"] == normalize_address("0xb1")


def test_ledger_rejection_is_422(client: TestClient, fake_gateway: Any) -> None:
    fake_gateway.fail_next(TransactionRejected("MoveAbort in part::mark_active"))
    r = client.post("/api/parts/0xb1/activate")
    assert r.status_code == 422
    assert r.json()["error"] == "transaction_rejected"
    assert r.json()["retryable"] is False


def test_transport_failure_is_503_and_retryable(client: TestClient, fake_gateway: Any) -> None:
    fake_gateway.fail_next(TransportFailure("connection refused"))
    r = client.post("/api/parts/0xb1/update-hours", json={"additionalHours": 4})
    assert r.status_code == 503
    assert r.json()["retryable"] is True


def test_owner_listing(client: TestClient, fake_gateway: Any, package_id: str) -> None:
    fake_gateway.owned = [{"objectId": "0x1", "type": f"{package_id}::building::Building"}]
    r = client.get("/api/buildings/owner/0xowner")
    assert r.status_code == 200
    assert r.json() == {"success": True, "data": fake_gateway.owned}
    assert fake_gateway.owned_queries == [("0xowner", f"{package_id}::building::Building")]


def test_manual_reading_accepts_part_id_alias(client: TestClient, fake_gateway: Any) -> None:
    r = client.post(
        "/api/sensors/reading",
        json={"partId": "0xb1", "sensorId": "t-1", "readingType": "temperature", "value": 7400, "unit": "celsius"},
    )
    assert r.status_code == 200
    assert r.json()["transactionId"] == "tx1"
    (tx,) = fake_gateway.submitted
    assert tx.calls[1].function == "add_sensor_reading"


def test_sensor_job_lifecycle(client: TestClient, services: Services) -> None:
    r = client.post("/api/sensors/jobs", json={"assetId": "0xa1", "sensorKind": "pressure", "intervalMillis": 60000})
    assert r.status_code == 200
    assert r.json()["data"]["intervalMillis"] == 60000
    assert r.json()["data"]["baseValue"] == 3500

    listed = client.get("/api/sensors/jobs", params={"assetId": "0xa1"}).json()["data"]
    assert [(j["sensorKind"], j["stats"]["ticks"]) for j in listed] == [("pressure", 0)]

    assert client.delete("/api/sensors/jobs/0xa1/pressure").json() == {"success": True, "removed": True}
    assert client.delete("/api/sensors/jobs/0xa1/pressure").json() == {"success": True, "removed": False}
    assert services.scheduler.list_jobs() == []


def test_sensor_job_validation(client: TestClient) -> None:
    bad_interval = client.post("/api/sensors/jobs", json={"assetId": "0xa1", "sensorKind": "pressure", "intervalMillis": 0})
    assert bad_interval.status_code == 400

    bad_asset = client.post("/api/sensors/jobs", json={"assetId": "hangar-7", "sensorKind": "pressure"})
    assert bad_asset.status_code == 400

    missing = client.post("/api/sensors/jobs", json={"assetId": "0xa1"})
    assert missing.status_code == 400
    assert missing.json()["details"]["fields"] == ["sensorKind"]


def test_simulate_starts_one_job_per_kind(client: TestClient, services: Services) -> None:
    r = client.post("/api/sensors/simulate/0xa1", json={"interval": 30})
    assert r.status_code == 200
    assert [j["sensorKind"] for j in r.json()["data"]] == ["pressure", "temperature", "vibration"]
    assert {j.interval_ms for j in services.scheduler.list_jobs("0xa1")} == {30000}
