"""
Translation of vendor raw device states into canonical display states.

raw vendor string -> intermediate state (BinaryState, ContactState, ...) -> DisplayState

All functions here are pure lookups. Unknown values produce None and a warning;
they never raise, so a caller can leave the previously stored status alone.
"""
from typing import Any, Dict, Optional

from app.models.definitions import (
    CANONICAL_STATE_MAP,
    BinaryState,
    ContactState,
    DeviceSubtype,
    DeviceType,
    DisplayState,
    ErrorState,
    IntermediateState,
    LockStatus,
    SensorAlertState,
    TypedDeviceInfo,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)

_LOCK_STATES = {"locked": LockStatus.LOCKED, "unlocked": LockStatus.UNLOCKED}
_BINARY_STATES = {
    "open": BinaryState.ON,
    "on": BinaryState.ON,
    "closed": BinaryState.OFF,
    "off": BinaryState.OFF,
}
_CONTACT_STATES = {"open": ContactState.OPEN, "closed": ContactState.CLOSED}
_ALERT_STATES = {"normal": SensorAlertState.NORMAL, "alert": SensorAlertState.ALERT}

_ALERT_SUBTYPES = {DeviceSubtype.LEAK, DeviceSubtype.MOTION, DeviceSubtype.VIBRATION}


def _yolink_intermediate(type_info: TypedDeviceInfo, raw: str) -> Optional[IntermediateState]:
    if raw == "error":
        return ErrorState.ERROR

    device_type = DeviceType(type_info.type)
    subtype = DeviceSubtype(type_info.subtype) if type_info.subtype else None

    if device_type == DeviceType.LOCK:
        return _LOCK_STATES.get(raw)
    if device_type in (DeviceType.SWITCH, DeviceType.OUTLET):
        return _BINARY_STATES.get(raw)
    if device_type == DeviceType.SENSOR:
        if subtype in _ALERT_SUBTYPES:
            return _ALERT_STATES.get(raw)
        return _CONTACT_STATES.get(raw)
    return None


def _genea_intermediate(type_info: TypedDeviceInfo, raw: str) -> Optional[IntermediateState]:
    if DeviceType(type_info.type) == DeviceType.DOOR:
        return _LOCK_STATES.get(raw) or _CONTACT_STATES.get(raw)
    return None


_TRANSLATORS = {
    "yolink": _yolink_intermediate,
    "genea": _genea_intermediate,
}


def translate_raw_state(
    connector_category: str,
    type_info: TypedDeviceInfo,
    raw_state: Optional[str]
) -> Optional[IntermediateState]:
    """
    Translate a vendor raw state string into an intermediate state.

    Args:
        connector_category: Vendor of the device (yolink, genea, ...)
        type_info: Standardized type of the device
        raw_state: Raw value reported by the vendor (case-insensitive)

    Returns:
        Intermediate state, or None if the vendor/type/value is not mapped
    """
    if raw_state is None:
        return None
    translator = _TRANSLATORS.get((connector_category or "").lower())
    if translator is None:
        return None
    return translator(type_info, str(raw_state).strip().lower())


def intermediate_state_to_display(
    intermediate: IntermediateState,
    type_info: TypedDeviceInfo
) -> Optional[DisplayState]:
    """Map an intermediate state onto its canonical display state."""
    if isinstance(intermediate, SensorAlertState):
        subtype = DeviceSubtype(type_info.subtype) if type_info.subtype else None
        return CANONICAL_STATE_MAP["sensor"].get(subtype, {}).get(intermediate)
    return CANONICAL_STATE_MAP["simple"].get(intermediate)


def map_raw_state_to_display_state(
    connector_category: str,
    type_info: TypedDeviceInfo,
    raw_state: Optional[str]
) -> Optional[DisplayState]:
    """
    Convert a vendor raw state into a DisplayState.

    Args:
        connector_category: Vendor of the device
        type_info: Standardized type of the device
        raw_state: Raw state string

    Returns:
        DisplayState, or None when the value cannot be mapped (logged as a warning)
    """
    intermediate = translate_raw_state(connector_category, type_info, raw_state)
    if intermediate is None:
        logger.warning(
            f"Unmapped raw state '{raw_state}' for {connector_category} device "
            f"type {type_info.type}/{type_info.subtype}"
        )
        return None

    display = intermediate_state_to_display(intermediate, type_info)
    if display is None:
        logger.warning(
            f"No display state for intermediate state {intermediate.value} on "
            f"{type_info.type}/{type_info.subtype}"
        )
    return display


def extract_yolink_raw_state(state_data: Dict[str, Any]) -> Optional[str]:
    """
    Pull the raw state string out of a YoLink getState/device list payload.

    YoLink reports either a plain string ("open") or an object carrying
    'state' or 'power'.
    """
    state = state_data.get("state")
    if isinstance(state, dict):
        state = state.get("state", state.get("power"))
    if isinstance(state, str) and state:
        return state.lower()
    return None


def calculate_yolink_display_state(
    type_info: TypedDeviceInfo,
    state_data: Optional[Dict[str, Any]],
    device_id: str = ""
) -> Optional[DisplayState]:
    """
    Derive the display state of a YoLink device from its getState data.

    Args:
        type_info: Standardized type of the device
        state_data: 'data' object of the YoLink getState response
        device_id: Used for log context only

    Returns:
        DisplayState, or None when no state could be determined
    """
    if not isinstance(state_data, dict):
        return None

    online = state_data.get("online")
    if online is False:
        logger.info(f"[YoLink] Device {device_id} is offline")
        return DisplayState.OFFLINE

    raw_state = extract_yolink_raw_state(state_data)
    if raw_state:
        display = map_raw_state_to_display_state("yolink", type_info, raw_state)
        if display is not None:
            logger.debug(f"[YoLink] Device {device_id} state: {raw_state} -> {display.value}")
        return display

    if online is True:
        return DisplayState.ONLINE

    logger.warning(f"[YoLink] Could not determine state for device {device_id} from response: {state_data}")
    return None


_PIKO_STATUS = {
    "online": DisplayState.ONLINE,
    "recording": DisplayState.ONLINE,
    "offline": DisplayState.OFFLINE,
    "unauthorized": DisplayState.ERROR,
}


def map_piko_status(raw_status: Optional[str]) -> Optional[DisplayState]:
    """Map a Piko device/server status (Online, Recording, Offline, Unauthorized) to a display state."""
    if not raw_status:
        return None
    display = _PIKO_STATUS.get(str(raw_status).strip().lower())
    if display is None:
        logger.warning(f"[Piko] Unmapped device status '{raw_status}'")
    return display


def calculate_genea_display_state(door: Dict[str, Any]) -> Optional[DisplayState]:
    """
    Derive a door's display state: lock state when reported, else connectivity.
    """
    if isinstance(door.get("is_locked"), bool):
        return DisplayState.LOCKED if door["is_locked"] else DisplayState.UNLOCKED
    if isinstance(door.get("is_online"), bool):
        return DisplayState.ONLINE if door["is_online"] else DisplayState.OFFLINE
    return None
