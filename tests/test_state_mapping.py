import pytest

from app.models.definitions import DeviceSubtype, DeviceType, DisplayState, TypedDeviceInfo, is_valid_display_state
from app.services.device_mapping import get_device_type_info
from app.services.state_mapping import (
    calculate_genea_display_state,
    calculate_yolink_display_state,
    map_piko_status,
    map_raw_state_to_display_state,
)


def info(device_type, subtype=None):
    return TypedDeviceInfo(type=device_type, subtype=subtype)


@pytest.mark.parametrize("category,identifier,expected_type,expected_subtype", [
    ("yolink", "DoorSensor", "Sensor", "Contact"),
    ("yolink", "LeakSensor", "Sensor", "Leak"),
    ("yolink", "MultiOutlet", "Outlet", "Multi"),
    ("piko", "Camera", "Camera", None),
    ("genea", "Door", "Door", None),
])
def test_device_type_info(category, identifier, expected_type, expected_subtype):
    type_info = get_device_type_info(category, identifier)
    assert type_info.type == expected_type
    assert type_info.subtype == expected_subtype


def test_unknown_identifier_is_unmapped():
    assert get_device_type_info("yolink", "QuantumSensor").type == DeviceType.UNMAPPED.value
    assert get_device_type_info("unknown-vendor", "DoorSensor").type == DeviceType.UNMAPPED.value


def test_door_sensor_states():
    door = info(DeviceType.SENSOR, DeviceSubtype.CONTACT)
    assert map_raw_state_to_display_state("yolink", door, "open") == DisplayState.OPEN
    assert map_raw_state_to_display_state("yolink", door, "closed") == DisplayState.CLOSED


def test_alert_sensors_use_subtype():
    assert map_raw_state_to_display_state("yolink", info(DeviceType.SENSOR, DeviceSubtype.LEAK), "alert") == DisplayState.LEAK_DETECTED
    assert map_raw_state_to_display_state("yolink", info(DeviceType.SENSOR, DeviceSubtype.LEAK), "normal") == DisplayState.DRY
    assert map_raw_state_to_display_state("yolink", info(DeviceType.SENSOR, DeviceSubtype.MOTION), "alert") == DisplayState.MOTION_DETECTED
    assert map_raw_state_to_display_state("yolink", info(DeviceType.SENSOR, DeviceSubtype.VIBRATION), "normal") == DisplayState.NO_VIBRATION


def test_switch_open_means_on():
    switch = info(DeviceType.SWITCH)
    assert map_raw_state_to_display_state("yolink", switch, "open") == DisplayState.ON
    assert map_raw_state_to_display_state("yolink", switch, "closed") == DisplayState.OFF


def test_unmapped_raw_state_returns_none():
    assert map_raw_state_to_display_state("yolink", info(DeviceType.SENSOR, DeviceSubtype.CONTACT), "ajar") is None
    assert map_raw_state_to_display_state("piko", info(DeviceType.CAMERA), "open") is None


def test_yolink_offline_wins_over_state():
    door = info(DeviceType.SENSOR, DeviceSubtype.CONTACT)
    assert calculate_yolink_display_state(door, {"online": False, "state": {"state": "open"}}) == DisplayState.OFFLINE


def test_yolink_nested_state_and_online_fallback():
    door = info(DeviceType.SENSOR, DeviceSubtype.CONTACT)
    assert calculate_yolink_display_state(door, {"online": True, "state": {"state": "open"}}) == DisplayState.OPEN
    assert calculate_yolink_display_state(door, {"online": True, "state": {}}) == DisplayState.ONLINE
    assert calculate_yolink_display_state(door, {}) is None
    assert calculate_yolink_display_state(door, None) is None


def test_yolink_error_state():
    lock = info(DeviceType.LOCK)
    assert calculate_yolink_display_state(lock, {"state": "error"}) == DisplayState.ERROR


def test_piko_status_is_always_a_display_state():
    assert map_piko_status("Online") == DisplayState.ONLINE
    assert map_piko_status("Recording") == DisplayState.ONLINE
    assert map_piko_status("Offline") == DisplayState.OFFLINE
    assert map_piko_status("Unauthorized") == DisplayState.ERROR
    assert map_piko_status("NotDefined") is None
    assert map_piko_status(None) is None


def test_genea_door_state():
    assert calculate_genea_display_state({"is_locked": True}) == DisplayState.LOCKED
    assert calculate_genea_display_state({"is_locked": False, "is_online": False}) == DisplayState.UNLOCKED
    assert calculate_genea_display_state({"is_online": False}) == DisplayState.OFFLINE
    assert calculate_genea_display_state({}) is None


def test_valid_display_states():
    leak = info(DeviceType.SENSOR, DeviceSubtype.LEAK)
    assert is_valid_display_state(leak, DisplayState.LEAK_DETECTED)
    assert is_valid_display_state(leak, DisplayState.OFFLINE)
    assert not is_valid_display_state(leak, DisplayState.OPEN)
