from datetime import datetime

from app.models.db_models import Connector, Device, Event
from app.services.templating import build_token_context, resolve_template, resolve_tokens


def make_context():
    event = Event(
        event_uuid="evt-42",
        timestamp=datetime(2024, 5, 1, 12, 30, 0),
        connector_id="conn-1",
        device_id="door-1",
        standardized_event_category="DEVICE_STATE",
        standardized_event_type="STATE_CHANGED",
        standardized_payload={"displayState": "Open", "rawStateValue": "open", "extra": {"a": 1}},
    )
    device = Device(id="dev-1", device_id="door-1", name="Front Door", type="DoorSensor",
                    standardized_device_type="Sensor", standardized_device_subtype="Contact", status="Open")
    connector = Connector(id="conn-1", name="Office", category="yolink")
    return build_token_context(event, device, connector)


def test_context_promotes_payload_fields():
    context = make_context()
    assert context["event"]["displayState"] == "Open"
    assert context["event"]["rawStateValue"] == "open"
    assert "extra" not in context["event"]
    assert context["event"]["timestamp"] == "2024-05-01T12:30:00Z"
    assert context["device"]["externalId"] == "door-1"
    assert context["area"] is None


def test_tokens_resolve_with_and_without_spaces():
    context = make_context()
    assert resolve_template("{{device.name}} is {{ event.displayState }}", context) == "Front Door is Open"


def test_unresolved_tokens_stay_verbatim():
    context = make_context()
    assert resolve_template("Area: {{area.name}} / {{nope}}", context) == "Area: {{area.name}} / {{nope}}"


def test_value_rendering():
    context = {"a": None, "b": True, "c": {"x": 1}, "d": [1, 2], "e": 3.5}
    assert resolve_template("[{{a}}]", context) == "[]"
    assert resolve_template("{{b}}", context) == "true"
    assert resolve_template("{{c}}", context) == '{"x": 1}'
    assert resolve_template("{{d}}", context) == "[1, 2]"
    assert resolve_template("{{e}}", context) == "3.5"


def test_resolve_tokens_walks_nested_params():
    context = make_context()
    params = {
        "url_template": "https://hooks.example.com/{{event.id}}",
        "headers": [{"key_template": "X-Device", "value_template": "{{device.id}}"}],
        "priority": 1,
        "body_template": None,
    }
    resolved = resolve_tokens(params, context)
    assert resolved["url_template"] == "https://hooks.example.com/evt-42"
    assert resolved["headers"][0]["value_template"] == "dev-1"
    assert resolved["priority"] == 1
    assert resolved["body_template"] is None
