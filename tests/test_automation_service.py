from unittest.mock import patch

import pytest
import requests

from app.core.exceptions import AutomationActionError
from app.models.db_models import Automation, CameraAssociation, Device
from app.services.automation_service import automation_service, matches_event_type_filter
from app.services.drivers.piko import PikoClient
from app.services.service_configurations import save_service_config
from app.utils.timestamps import to_epoch_ms

from tests.conftest import FakeResponse


@pytest.mark.parametrize("event_filter,event_type,expected", [
    ("", "STATE_CHANGED", True),
    ("   ", "STATE_CHANGED", True),
    ("STATE_CHANGED", "STATE_CHANGED", True),
    ("state_*", "STATE_CHANGED", True),
    ("ACCESS_*", "STATE_CHANGED", False),
    ("DEVICE_O?LINE", "DEVICE_ONLINE", True),
    ("STATE", "STATE_CHANGED", False),
])
def test_event_type_filter(event_filter, event_type, expected):
    assert matches_event_type_filter(event_filter, event_type) is expected


def http_action(method="POST", body=None, url="https://hooks.example.com/{{device.name}}", **extra):
    params = {"urlTemplate": url, "method": method, **extra}
    if body is not None:
        params["bodyTemplate"] = body
    return {"type": "sendHttpRequest", "params": params}


@pytest.fixture
def door(make_connector, make_device):
    connector = make_connector("yolink")
    make_device(connector, "door-1", name="Front Door")
    return connector


def add_automation(db_session, connector, actions, source_types=("Sensor",), event_filter="", enabled=True):
    automation = Automation(
        organization_id=connector.organization_id,
        name="Door alert",
        source_connector_id=connector.id,
        enabled=enabled,
        config_json={
            "trigger": {"sourceEntityTypes": list(source_types), "eventTypeFilter": event_filter},
            "actions": actions,
        },
    )
    db_session.add(automation)
    db_session.commit()
    return automation


def test_post_body_resolves_tokens_and_sniffs_json(db_session, door, make_event):
    add_automation(db_session, door, [http_action(body='{"state": "{{event.displayState}}"}')])
    event = make_event(door, "door-1", payload={"displayState": "Open"})

    with patch("app.services.automation_service.requests.request", return_value=FakeResponse(200)) as request:
        summary = automation_service.process_event(db_session, event)

    assert summary == {"matched": 1, "actionsSucceeded": 1, "actionsFailed": 0}
    args, kwargs = request.call_args
    assert args == ("POST", "https://hooks.example.com/Front Door")
    assert kwargs["data"] == '{"state": "Open"}'
    assert kwargs["headers"]["Content-Type"] == "application/json"
    assert kwargs["headers"]["User-Agent"] == "FusionBridge Automation/1.0"


@pytest.mark.parametrize("method", ["GET", "DELETE"])
def test_bodyless_methods_send_no_body(db_session, door, make_event, method):
    add_automation(db_session, door, [http_action(method=method, body='{"ignored": true}')])
    event = make_event(door, "door-1")

    with patch("app.services.automation_service.requests.request", return_value=FakeResponse(200)) as request:
        automation_service.process_event(db_session, event)

    assert request.call_args.kwargs["data"] is None
    assert "Content-Type" not in request.call_args.kwargs["headers"]


def test_explicit_content_type_and_headers(db_session, door, make_event):
    add_automation(db_session, door, [http_action(
        body="state={{event.displayState}}",
        contentType="application/x-www-form-urlencoded",
        headers=[{"keyTemplate": "X-Device", "valueTemplate": "{{device.externalId}}"},
                 {"keyTemplate": "  ", "valueTemplate": "dropped"}],
    )])
    event = make_event(door, "door-1", payload={"displayState": "Closed"})

    with patch("app.services.automation_service.requests.request", return_value=FakeResponse(200)) as request:
        automation_service.process_event(db_session, event)

    headers = request.call_args.kwargs["headers"]
    assert headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert headers["X-Device"] == "door-1"
    assert len(headers) == 3


def test_failed_action_is_retried_then_reported(db_session, door, make_event):
    add_automation(db_session, door, [http_action(body="x")])
    event = make_event(door, "door-1")

    with patch("app.services.automation_service.requests.request",
               return_value=FakeResponse(500, reason="Server Error")) as request:
        summary = automation_service.process_event(db_session, event)

    assert request.call_count == 3
    assert summary == {"matched": 1, "actionsSucceeded": 0, "actionsFailed": 1}


def test_transient_failure_recovers(db_session, door, make_event):
    add_automation(db_session, door, [http_action()])
    event = make_event(door, "door-1")

    responses = [requests.ConnectionError("reset"), FakeResponse(200)]
    with patch("app.services.automation_service.requests.request", side_effect=responses) as request:
        summary = automation_service.process_event(db_session, event)

    assert request.call_count == 2
    assert summary["actionsSucceeded"] == 1


def test_one_failing_action_does_not_stop_the_next(db_session, door, make_event):
    add_automation(db_session, door, [
        http_action(url="https://broken.example.com"),
        http_action(url="https://ok.example.com"),
    ])
    event = make_event(door, "door-1")

    def respond(method, url, **kwargs):
        return FakeResponse(503) if "broken" in url else FakeResponse(200)

    with patch("app.services.automation_service.requests.request", side_effect=respond) as request:
        summary = automation_service.process_event(db_session, event)

    assert summary == {"matched": 1, "actionsSucceeded": 1, "actionsFailed": 1}
    assert request.call_args.args[1] == "https://ok.example.com"


def test_trigger_conditions(db_session, door, make_event):
    add_automation(db_session, door, [http_action()], source_types=("Camera",))
    add_automation(db_session, door, [http_action()], event_filter="ACCESS_*")
    add_automation(db_session, door, [http_action()], enabled=False)
    event = make_event(door, "door-1")

    with patch("app.services.automation_service.requests.request", return_value=FakeResponse(200)) as request:
        summary = automation_service.process_event(db_session, event)

    assert summary["matched"] == 0
    request.assert_not_called()


def test_unknown_device_matches_nothing(db_session, door, make_event):
    add_automation(db_session, door, [http_action()])
    event = make_event(door, "not-synced")

    with patch("app.services.automation_service.requests.request") as request:
        assert automation_service.process_event(db_session, event)["matched"] == 0
    request.assert_not_called()


def test_invalid_stored_config_is_skipped(db_session, door, make_event):
    automation = add_automation(db_session, door, [http_action()])
    automation.config_json = {"trigger": {}, "actions": []}
    db_session.commit()
    event = make_event(door, "door-1")

    assert automation_service.process_event(db_session, event)["matched"] == 0


def test_set_device_state_action(db_session, door, make_device, make_event):
    switch = make_device(door, "switch-1", raw_type="Switch", device_type="Switch", subtype="Toggle",
                         status="Off", raw={"token": "sw-token"})
    add_automation(db_session, door, [{
        "type": "setDeviceState",
        "params": {"targetDeviceInternalId": switch.id, "targetState": "ON"},
    }])
    event = make_event(door, "door-1")

    with patch("app.services.automation_service.YoLinkClient.set_device_state") as set_state:
        summary = automation_service.process_event(db_session, event)

    assert summary["actionsSucceeded"] == 1
    set_state.assert_called_once_with("switch-1", "sw-token", "Switch", "open")
    db_session.refresh(switch)
    assert switch.status == "On"


def test_retry_raises_last_error():
    calls = []

    def always_fails():
        calls.append(1)
        raise AutomationActionError("nope")

    with pytest.raises(AutomationActionError):
        automation_service.execute_with_retry(always_fails, "test action")
    assert len(calls) == automation_service.max_attempts


@pytest.fixture
def piko(make_connector):
    return make_connector("piko", name="Piko NVR")


def link_camera(db_session, door, piko, make_device, camera_id="cam-1"):
    camera = make_device(piko, camera_id, raw_type="Camera", device_type="Camera", subtype=None)
    sensor = db_session.query(Device).filter(Device.device_id == "door-1").one()
    db_session.add(CameraAssociation(device_id=sensor.id, piko_camera_id=camera.id))
    db_session.commit()
    return camera


def bookmark_action(piko, duration="{{event.payload.clipMs}}", tags="door, {{device.name}} ,,"):
    return {"type": "createBookmark", "params": {
        "nameTemplate": "{{device.name}} {{event.displayState}}",
        "durationMsTemplate": duration,
        "tagsTemplate": tags,
        "targetConnectorId": piko.id,
    }}


def test_create_event_action_references_associated_cameras(db_session, door, piko, make_device, make_event):
    link_camera(db_session, door, piko, make_device)
    add_automation(db_session, door, [{"type": "createEvent", "params": {
        "sourceTemplate": "Fusion",
        "captionTemplate": "{{device.name}} is {{event.displayState}}",
        "descriptionTemplate": "Event {{event.id}}",
        "targetConnectorId": piko.id,
    }}])
    event = make_event(door, "door-1", payload={"displayState": "Open"}, event_uuid="evt-open")

    with patch.object(PikoClient, "create_event", return_value={}) as create_event:
        summary = automation_service.process_event(db_session, event)

    assert summary["actionsSucceeded"] == 1
    kwargs = create_event.call_args.kwargs
    assert kwargs["caption"] == "Front Door is Open"
    assert kwargs["description"] == "Event evt-open"
    assert kwargs["camera_refs"] == ["cam-1"]
    assert kwargs["timestamp"].endswith("Z")


def test_create_bookmark_per_camera_with_tags(db_session, door, piko, make_device, make_event):
    link_camera(db_session, door, piko, make_device, "cam-1")
    link_camera(db_session, door, piko, make_device, "cam-2")
    add_automation(db_session, door, [bookmark_action(piko)])
    event = make_event(door, "door-1", payload={"displayState": "Open", "clipMs": 12000})

    with patch.object(PikoClient, "create_bookmark") as create_bookmark:
        summary = automation_service.process_event(db_session, event)

    assert summary["actionsSucceeded"] == 1
    assert sorted(c.args[0] for c in create_bookmark.call_args_list) == ["cam-1", "cam-2"]
    kwargs = create_bookmark.call_args.kwargs
    assert kwargs["name"] == "Front Door Open"
    assert kwargs["duration_ms"] == 12000
    assert kwargs["tags"] == ["door", "Front Door"]
    assert kwargs["start_time_ms"] == to_epoch_ms(event.timestamp)


@pytest.mark.parametrize("duration", ["not a number", "0", "-50"])
def test_create_bookmark_falls_back_to_default_duration(db_session, door, piko, make_device, make_event, duration):
    link_camera(db_session, door, piko, make_device)
    add_automation(db_session, door, [bookmark_action(piko, duration=duration, tags="")])
    event = make_event(door, "door-1")

    with patch.object(PikoClient, "create_bookmark") as create_bookmark:
        automation_service.process_event(db_session, event)

    assert create_bookmark.call_args.kwargs["duration_ms"] == 5000
    assert create_bookmark.call_args.kwargs["tags"] == []


def test_create_bookmark_without_cameras_is_skipped(db_session, door, piko, make_event):
    add_automation(db_session, door, [bookmark_action(piko)])
    event = make_event(door, "door-1")

    with patch.object(PikoClient, "create_bookmark") as create_bookmark:
        summary = automation_service.process_event(db_session, event)

    create_bookmark.assert_not_called()
    assert summary["actionsSucceeded"] == 1


def push_action(target=None):
    params = {"titleTemplate": "{{device.name}}", "messageTemplate": "State: {{event.displayState}}", "priority": 1}
    if target is not None:
        params["targetUserKeyTemplate"] = target
    return {"type": "sendPushNotification", "params": params}


@pytest.mark.parametrize("target,recipient", [
    (None, "gkey12345"),
    ("__all__", "gkey12345"),
    ("ukey-77", "ukey-77"),
])
def test_push_notification_recipient(db_session, door, make_event, target, recipient):
    save_service_config(db_session, "pushover", {"apiToken": "atoken12345", "groupKey": "gkey12345"}, True)
    db_session.commit()
    add_automation(db_session, door, [push_action(target)])
    event = make_event(door, "door-1", payload={"displayState": "Open"})

    with patch("app.services.automation_service.pushover.send_notification") as send:
        summary = automation_service.process_event(db_session, event)

    assert summary["actionsSucceeded"] == 1
    api_token, user_key, message = send.call_args.args
    assert (api_token, user_key) == ("atoken12345", recipient)
    assert message.title == "Front Door"
    assert message.message == "State: Open"
    assert message.priority == 1


def test_push_notification_requires_enabled_service(db_session, door, make_event):
    save_service_config(db_session, "pushover", {"apiToken": "atoken12345", "groupKey": "gkey12345"}, False)
    db_session.commit()
    add_automation(db_session, door, [push_action()])
    event = make_event(door, "door-1")

    with patch("app.services.automation_service.pushover.send_notification") as send:
        summary = automation_service.process_event(db_session, event)

    send.assert_not_called()
    assert summary["actionsFailed"] == 1
