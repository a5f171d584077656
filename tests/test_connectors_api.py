import json
import re
import time
from unittest.mock import patch

import anyio
import httpx
import pytest

from app.core.exceptions import YoLinkApiError
from app.main import app
from app.models.db_models import Automation, Connector, Device, Organization
from app.services.device_sync import SyncError, SyncResult
from app.services.drivers.yolink import YoLinkClient

ADMIN = {"X-User-Role": "admin"}


@pytest.fixture
def second_org(db_session):
    org = Organization(id="org-2", name="Globex", slug="globex")
    db_session.add(org)
    db_session.commit()
    return org


# Connectors

def test_create_yolink_connector_verifies_credentials(client, db_session, organization):
    with patch.object(YoLinkClient, "get_access_token", return_value="tok"), \
            patch.object(YoLinkClient, "get_home_info", return_value="home-77"):
        response = client.post("/api/connectors", json={
            "category": "yolink",
            "name": "Warehouse",
            "config": {"uaid": "ua-1", "clientSecret": "supersecret"},
            "organizationId": organization.id,
        })

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["name"] == "Warehouse"
    assert data["organizationId"] == organization.id
    assert data["config"]["clientSecret"] == "supe****"
    assert data["config"]["homeId"] == "home-77"

    stored = json.loads(db_session.query(Connector).one().cfg_enc)
    assert stored["clientSecret"] == "supersecret"
    assert stored["homeId"] == "home-77"


def test_create_yolink_connector_reports_api_error(client, organization):
    error = YoLinkApiError("Failed to get new YoLink token: Invalid Client Secret.", code="010103")
    with patch.object(YoLinkClient, "get_access_token", side_effect=error):
        response = client.post("/api/connectors", json={
            "category": "yolink",
            "config": {"uaid": "ua-1", "clientSecret": "wrong"},
            "organizationId": organization.id,
        })

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "YoLink API Error: Failed to get new YoLink token: Invalid Client Secret.",
    }


def test_create_connector_default_name_and_validation(client, organization):
    headers = {"X-Organization-Id": organization.id}
    created = client.post("/api/connectors", json={"category": "genea", "config": {"apiKey": "k-123456"}}, headers=headers)
    assert created.status_code == 201
    assert re.fullmatch(r"genea-\d+", created.json()["data"]["name"])

    invalid = client.post("/api/connectors", json={"category": "genea", "config": {}}, headers=headers)
    assert invalid.status_code == 400
    assert invalid.json()["error"].startswith("Invalid genea configuration")

    unknown_org = client.post("/api/connectors", json={"category": "genea", "config": {"apiKey": "k"},
                                                       "organizationId": "nope"})
    assert unknown_org.status_code == 404


def test_connector_crud(client, db_session, make_connector):
    connector = make_connector("genea", name="Doors")

    fetched = client.get(f"/api/connectors/{connector.id}").json()["data"]
    assert fetched["config"]["apiKey"] == "gene****"

    updated = client.put(f"/api/connectors/{connector.id}", json={
        "name": "Front Doors",
        "eventsEnabled": True,
        "config": {"customerUuid": "cust-1"},
    }).json()["data"]
    assert updated["name"] == "Front Doors"
    assert updated["eventsEnabled"] is True
    stored = json.loads(db_session.query(Connector).one().cfg_enc)
    assert stored == {"apiKey": "genea-key", "customerUuid": "cust-1"}

    assert client.delete(f"/api/connectors/{connector.id}").json()["success"] is True
    missing = client.get(f"/api/connectors/{connector.id}")
    assert missing.status_code == 404
    assert missing.json()["error"] == "Connector not found"


def test_connectors_are_scoped_by_organization(client, make_connector, second_org):
    make_connector("genea", name="Mine")
    other = make_connector("genea", name="Theirs", organization_id=second_org.id)

    names = [c["name"] for c in client.get("/api/connectors", headers={"X-Organization-Id": "org-1"}).json()["data"]]
    assert names == ["Mine"]
    assert client.get(f"/api/connectors/{other.id}", headers={"X-Organization-Id": "org-1"}).status_code == 404


def test_connector_test_endpoint(client, make_connector):
    connector = make_connector("yolink")
    with patch.object(YoLinkClient, "test_connection", return_value=True):
        response = client.post(f"/api/connectors/{connector.id}/test")
    assert response.json()["data"] == {"connected": True, "message": "Connected to YoLink"}


# Event stream toggles

def test_mqtt_toggle(client, db_session, make_connector):
    connector = make_connector("yolink", config={"uaid": "u", "clientSecret": "s", "homeId": "home-1"})

    response = client.post("/api/mqtt-toggle", json={"connectorId": connector.id, "disabled": False})
    body = response.json()
    assert body["success"] is True
    assert body["homeId"] == "home-1"
    assert body["mqttState"]["disabled"] is False
    db_session.refresh(connector)
    assert connector.events_enabled is True

    body = client.post("/api/mqtt-toggle", json={"connectorId": connector.id, "disabled": True}).json()
    assert body["disabled"] is True
    assert body["mqttState"]["connected"] is False


def test_toggle_errors(client, make_connector):
    piko = make_connector("piko")
    yolink = make_connector("yolink")

    missing = client.post("/api/mqtt-toggle", json={"connectorId": "nope", "disabled": True})
    assert missing.status_code == 404
    assert missing.json()["error"] == "Connector not found"

    wrong = client.post("/api/mqtt-toggle", json={"connectorId": piko.id, "disabled": True})
    assert wrong.status_code == 400
    assert wrong.json()["error"] == "Selected connector is not a YoLink connector"

    wrong = client.post("/api/websocket-toggle", json={"connectorId": yolink.id, "disabled": True})
    assert wrong.json()["error"] == "Selected connector is not a Piko connector"

    ok = client.post("/api/websocket-toggle", json={"connectorId": piko.id, "disabled": False}).json()
    assert ok["websocketState"]["disabled"] is False


def test_toggle_requires_body_fields(client):
    response = client.post("/api/mqtt-toggle", json={"disabled": True})
    assert response.status_code == 400
    assert response.json()["success"] is False


# Admin

def test_admin_routes_require_admin_role(client):
    response = client.get("/api/admin/connectors")
    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Admin access required"}
    assert client.get("/api/admin/connectors", headers={"X-User-Role": "member"}).status_code == 403


def test_admin_lists_connectors_with_organization(client, make_connector):
    make_connector("genea", name="Doors")
    data = client.get("/api/admin/connectors", headers=ADMIN).json()["data"]
    assert data[0]["organization"] == {"id": "org-1", "name": "Acme Security", "slug": "acme"}


def test_admin_moves_connector(client, db_session, make_connector, second_org):
    connector = make_connector("genea")

    response = client.patch(f"/api/admin/connectors/{connector.id}/organization",
                            json={"organizationId": second_org.id}, headers=ADMIN)
    assert response.json()["message"] == "Connector moved to organization: Globex"
    db_session.refresh(connector)
    assert connector.organization_id == "org-2"

    assert client.patch(f"/api/admin/connectors/{connector.id}/organization", json={},
                        headers=ADMIN).json()["error"] == "organizationId is required"
    assert client.patch(f"/api/admin/connectors/{connector.id}/organization", json={"organizationId": "nope"},
                        headers=ADMIN).json()["error"] == "Target organization not found"
    assert client.patch("/api/admin/connectors/nope/organization", json={"organizationId": "org-2"},
                        headers=ADMIN).json()["error"] == "Connector not found"


def test_admin_migrates_legacy_automation_configs(client, db_session, make_connector):
    connector = make_connector("yolink")
    action = {"type": "sendHttpRequest", "params": {"urlTemplate": "https://example.com", "method": "GET"}}
    db_session.add_all([
        Automation(name="a-legacy", source_connector_id=connector.id,
                   config_json={"sourceEntityTypes": ["Sensor"], "eventTypeFilter": "STATE_*", "actions": [action]}),
        Automation(name="b-current", source_connector_id=connector.id,
                   config_json={"trigger": {"sourceEntityTypes": ["Sensor"]}, "actions": [action]}),
        Automation(name="c-broken", source_connector_id=connector.id, config_json={"actions": []}),
    ])
    db_session.commit()

    body = client.post("/api/admin/trigger-migration", headers=ADMIN).json()

    assert (body["migrated"], body["skipped"], body["errors"]) == (1, 1, 1)
    assert body["errorDetails"][0]["name"] == "c-broken"
    legacy = db_session.query(Automation).filter(Automation.name == "a-legacy").one()
    db_session.refresh(legacy)
    assert legacy.config_json["trigger"] == {"sourceEntityTypes": ["Sensor"], "eventTypeFilter": "STATE_*"}
    assert "sourceEntityTypes" not in legacy.config_json


# Devices

def test_device_listing_and_count(client, make_connector, make_device):
    yolink = make_connector("yolink")
    genea = make_connector("genea")
    door = make_device(yolink, "door-1", name="Back Door", status="Closed")
    make_device(genea, "lobby", name="Lobby", raw_type="Door", device_type="Door", subtype=None, status="Locked")

    devices = client.get("/api/devices").json()["data"]
    assert [d["name"] for d in devices] == ["Back Door", "Lobby"]
    assert devices[0]["displayState"] == "Closed"
    assert devices[0]["deviceTypeInfo"] == {"type": "Sensor", "subtype": "Contact"}

    assert client.get("/api/devices", params={"count": "true"}).json() == {"success": True, "count": 2}
    assert client.get("/api/devices", params={"connectorCategory": "genea", "count": "true"}).json()["count"] == 1
    assert client.get("/api/devices", params={"status": "Closed", "count": "true"}).json()["count"] == 1
    assert client.get("/api/devices", params={"deviceId": door.id}).json()["data"]["deviceId"] == "door-1"

    missing = client.get("/api/devices", params={"deviceId": "nope"})
    assert missing.status_code == 404
    assert missing.json()["error"] == "Device not found"


def test_device_sync_endpoint_reports_errors(client, make_connector):
    result = SyncResult(synced_count=3, errors=[SyncError(connector_name="Broken", error="boom")])
    with patch("app.api.devices.sync_organization_devices", return_value=result):
        body = client.post("/api/devices", headers={"X-Organization-Id": "org-1"}).json()

    assert body["syncedCount"] == 3
    assert body["errors"] == [{"connectorName": "Broken", "error": "boom"}]


def test_device_sync_endpoint_failure(client):
    with patch("app.api.devices.sync_organization_devices", side_effect=RuntimeError("db gone")):
        response = client.post("/api/devices")
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Failed to sync devices"}


def test_deleting_connector_removes_devices(client, db_session, make_connector, make_device):
    connector = make_connector("yolink")
    make_device(connector, "door-1")

    client.delete(f"/api/connectors/{connector.id}")

    assert db_session.query(Device).count() == 0


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.mark.anyio
async def test_slow_sync_does_not_block_other_requests(client, make_connector):
    make_connector("genea", name="Slow Doors")

    def slow_doors(config):
        time.sleep(0.6)
        return []

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        with patch("app.services.device_sync.genea.get_doors", side_effect=slow_doors):
            async with anyio.create_task_group() as tasks:
                tasks.start_soon(http.post, "/api/devices")
                await anyio.sleep(0.1)
                started = time.monotonic()
                root = await http.get("/")
                latency = time.monotonic() - started

    assert root.status_code == 200
    assert latency < 0.3
