from datetime import datetime, timedelta
from unittest.mock import patch

from tests.conftest import FakeResponse

ORG = {"X-Organization-Id": "org-1"}


def test_root(client):
    assert client.get("/").json()["service"] == "Fusion Bridge"


def test_health_without_redis(client):
    body = client.get("/api/health").json()
    assert body["status"] == "healthy"
    assert body["database_connected"] is True
    assert body["redis_connected"] is False


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json()["success"] is False


# Services

def test_service_configuration_is_masked(client):
    saved = client.put("/api/services/pushover", json={
        "config": {"apiToken": "atoken12345", "groupKey": "gkey12345"},
        "isEnabled": True,
    })
    assert saved.status_code == 200
    assert saved.json()["data"]["type"] == "PUSHOVER"
    assert saved.json()["data"]["config"] == {"apiToken": "atok****", "groupKey": "gkey****"}

    fetched = client.get("/api/services/PUSHOVER").json()["data"]
    assert fetched["isEnabled"] is True
    listed = client.get("/api/services").json()
    assert [s["type"] for s in listed["data"]] == ["PUSHOVER"]
    assert "LINEAR" in listed["supportedTypes"]


def test_service_configuration_errors(client):
    unsupported = client.put("/api/services/fax", json={"config": {}})
    assert unsupported.status_code == 400
    assert unsupported.json()["error"] == "Unsupported service type: fax"

    invalid = client.put("/api/services/pushover", json={"config": {"apiToken": "x"}})
    assert invalid.status_code == 400
    assert invalid.json()["error"].startswith("Invalid PUSHOVER configuration")

    assert client.get("/api/services/linear").status_code == 404


def test_pushover_test_requires_configuration(client):
    response = client.post("/api/services/pushover/test")
    assert response.status_code == 404
    assert response.json()["error"] == "Pushover service is not configured"


def test_pushover_test_sends_to_group(client):
    client.put("/api/services/pushover", json={"config": {"apiToken": "atoken12345", "groupKey": "gkey12345"}})

    reply = FakeResponse(200, {"status": 1, "request": "req-1"})
    with patch("app.services.drivers.pushover.requests.post", return_value=reply) as post:
        response = client.post("/api/services/pushover/test")

    assert response.json() == {"success": True, "data": {"request": "req-1", "receipt": None}}
    payload = post.call_args.kwargs["json"]
    assert payload["user"] == "gkey12345"
    assert payload["token"] == "atoken12345"


def test_pushover_api_rejection_maps_status(client):
    client.put("/api/services/pushover", json={"config": {"apiToken": "atoken12345", "groupKey": "gkey12345"}})

    reply = FakeResponse(400, {"status": 0, "errors": ["user key is invalid"]}, reason="Bad Request")
    with patch("app.services.drivers.pushover.requests.post", return_value=reply):
        response = client.post("/api/services/pushover/test", json={"message": "hi", "userKey": "ukey"})

    assert response.status_code == 400
    assert "user key is invalid" in response.json()["error"]


def test_linear_issues_mock_mode(client, monkeypatch, settings):
    monkeypatch.setattr(settings, "linear_use_mock_data", True)
    response = client.get("/api/services/linear/issues", params={"activeOnly": "true"})
    assert response.status_code == 200
    assert response.json()["data"]["issues"]


# Retention

def test_retention_policy_requires_organization(client, organization):
    response = client.get("/api/retention/policy")
    assert response.status_code == 400
    assert response.json()["error"] == "X-Organization-Id header is required"


def test_retention_policy_round_trip(client, organization):
    updated = client.put("/api/retention/policy", json={"strategy": "time", "maxAgeInDays": 14}, headers=ORG)
    assert updated.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"
    assert updated.json()["data"]["strategy"] == "time"

    invalid = client.put("/api/retention/policy", json={"strategy": "forever"}, headers=ORG)
    assert invalid.status_code == 400


def test_retention_cleanup_for_organization(client, organization, make_connector, make_event):
    connector = make_connector("genea")
    make_event(connector, "lobby", timestamp=datetime.utcnow() - timedelta(days=400))
    make_event(connector, "lobby")

    body = client.post("/api/retention/cleanup", headers=ORG).json()
    assert body["data"]["eventsDeleted"] == 1
    assert body["data"]["eventsAfter"] == 1

    stats = client.get("/api/retention/stats", headers=ORG).json()["data"]
    assert stats["total_events"] == 1


def test_retention_cleanup_unknown_organization(client, organization):
    response = client.post("/api/retention/cleanup", headers={"X-Organization-Id": "missing"})
    assert response.status_code == 404


def test_retention_preview_and_scheduler_status(client, organization):
    preview = client.get("/api/retention/preview", headers=ORG).json()["data"]
    assert preview["currentEventCount"] == 0

    status = client.get("/api/retention/scheduler/status").json()["data"]
    assert status["running"] is False


# Locations

def test_create_location_geocodes_full_address(client, organization):
    census = FakeResponse(200, {"result": {"addressMatches": [{
        "coordinates": {"x": -77.0365, "y": 38.8977},
        "matchedAddress": "1600 PENNSYLVANIA AVE NW, WASHINGTON, DC, 20500",
    }]}})
    with patch("app.services.drivers.census_geocoding.requests.get", return_value=census) as get:
        response = client.post("/api/locations", headers=ORG, json={
            "name": "HQ",
            "addressStreet": "1600 Pennsylvania Ave NW",
            "addressCity": "Washington",
            "addressState": "DC",
            "addressPostalCode": "20500",
        })

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["latitude"] == 38.8977
    assert data["longitude"] == -77.0365
    assert "20500" in get.call_args.kwargs["params"]["address"]


def test_location_without_address_skips_geocoding(client, organization):
    with patch("app.services.drivers.census_geocoding.requests.get") as get:
        response = client.post("/api/locations", headers=ORG, json={"name": "Annex"})
    get.assert_not_called()
    assert response.json()["data"]["latitude"] is None

    location_id = response.json()["data"]["id"]
    area = client.post(f"/api/locations/{location_id}/areas", json={"name": "Lobby"}, headers=ORG)
    assert area.status_code == 201
    areas = client.get(f"/api/locations/{location_id}/areas", headers=ORG).json()["data"]
    assert [a["name"] for a in areas] == ["Lobby"]


def test_location_requires_organization(client, organization):
    response = client.post("/api/locations", json={"name": "Nowhere"})
    assert response.status_code == 400
    assert response.json()["error"] == "organizationId is required"


# Automations

AUTOMATION = {
    "name": "Door opened webhook",
    "config": {
        "trigger": {"sourceEntityTypes": ["Sensor"], "eventTypeFilter": "STATE_*"},
        "actions": [{"type": "sendHttpRequest", "params": {"urlTemplate": "https://example.com/{{device.name}}"}}],
    },
}


def test_automation_crud(client, make_connector):
    connector = make_connector("yolink")

    created = client.post("/api/automations", headers=ORG, json={**AUTOMATION, "sourceConnectorId": connector.id})
    assert created.status_code == 201
    data = created.json()["data"]
    assert data["organizationId"] == "org-1"
    assert data["configJson"]["actions"][0]["params"]["method"] == "GET"

    automation_id = data["id"]
    updated = client.put(f"/api/automations/{automation_id}", json={"enabled": False}).json()["data"]
    assert updated["enabled"] is False

    assert [a["id"] for a in client.get("/api/automations", headers=ORG).json()["data"]] == [automation_id]
    client.delete(f"/api/automations/{automation_id}")
    missing = client.get(f"/api/automations/{automation_id}")
    assert missing.status_code == 404
    assert missing.json()["error"] == "Automation not found"


def test_automation_validation(client, make_connector):
    connector = make_connector("yolink")

    bad_connector = client.post("/api/automations", json={**AUTOMATION, "sourceConnectorId": "nope"})
    assert bad_connector.status_code == 400
    assert bad_connector.json()["error"] == "Source connector not found"

    no_actions = {**AUTOMATION, "sourceConnectorId": connector.id,
                  "config": {"trigger": {"sourceEntityTypes": ["Sensor"]}, "actions": []}}
    response = client.post("/api/automations", json=no_actions)
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request data"
