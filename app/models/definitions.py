"""
Canonical device, state and event vocabularies shared across vendors.

Vendor drivers speak their own dialects ("open", "alert", "IOModule", ...).
Everything stored in the database or returned by the API uses the values
defined here.
"""
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel


class DeviceType(str, Enum):
    """Standardized device types."""
    ALARM = "Alarm"
    CAMERA = "Camera"
    DOOR = "Door"
    GARAGE_DOOR = "Garage Door"
    ENCODER = "Encoder"
    HUB = "Hub"
    IO_MODULE = "I/O Module"
    LOCK = "Lock"
    OUTLET = "Outlet"
    SENSOR = "Sensor"
    SPRINKLER = "Sprinkler"
    SWITCH = "Switch"
    THERMOSTAT = "Thermostat"
    UNMAPPED = "Unmapped"


class DeviceSubtype(str, Enum):
    """Standardized device subtypes."""
    # Alarm
    SIREN = "Siren"
    # Hub
    CELLULAR = "Cellular"
    GENERIC = "Generic"
    SPEAKER = "Speaker"
    # Outlet
    MULTI = "Multi"
    SINGLE = "Single"
    # Sensor
    CO_SMOKE = "CO & Smoke"
    CONTACT = "Contact"
    LEAK = "Leak"
    MOTION = "Motion"
    POWER_FAILURE = "Power Failure"
    VIBRATION = "Vibration"
    # Switch
    DIMMER = "Dimmer"
    TOGGLE = "Toggle"


# Intermediate (vendor-neutral) states

class BinaryState(str, Enum):
    ON = "ON"
    OFF = "OFF"


class ContactState(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class SensorAlertState(str, Enum):
    NORMAL = "NORMAL"
    ALERT = "ALERT"


class LockStatus(str, Enum):
    LOCKED = "LOCKED"
    UNLOCKED = "UNLOCKED"


class ErrorState(str, Enum):
    ERROR = "ERROR"


IntermediateState = Union[BinaryState, ContactState, SensorAlertState, LockStatus, ErrorState]


class DisplayState(str, Enum):
    """Canonical state labels stored on devices and shown to users."""
    LOCKED = "Locked"
    UNLOCKED = "Unlocked"
    ON = "On"
    OFF = "Off"
    OPEN = "Open"
    CLOSED = "Closed"
    DRY = "Dry"
    LEAK_DETECTED = "Leak Detected"
    NO_MOTION = "No Motion"
    MOTION_DETECTED = "Motion Detected"
    NO_VIBRATION = "No Vibration"
    VIBRATION_DETECTED = "Vibration Detected"
    ONLINE = "Online"
    OFFLINE = "Offline"
    ERROR = "Error"


# Intermediate state -> display state. Sensor alert states depend on the subtype.
CANONICAL_STATE_MAP: Dict[str, Dict] = {
    "simple": {
        BinaryState.ON: DisplayState.ON,
        BinaryState.OFF: DisplayState.OFF,
        LockStatus.LOCKED: DisplayState.LOCKED,
        LockStatus.UNLOCKED: DisplayState.UNLOCKED,
        ContactState.OPEN: DisplayState.OPEN,
        ContactState.CLOSED: DisplayState.CLOSED,
        ErrorState.ERROR: DisplayState.ERROR,
    },
    "sensor": {
        DeviceSubtype.LEAK: {
            SensorAlertState.NORMAL: DisplayState.DRY,
            SensorAlertState.ALERT: DisplayState.LEAK_DETECTED,
        },
        DeviceSubtype.MOTION: {
            SensorAlertState.NORMAL: DisplayState.NO_MOTION,
            SensorAlertState.ALERT: DisplayState.MOTION_DETECTED,
        },
        DeviceSubtype.VIBRATION: {
            SensorAlertState.NORMAL: DisplayState.NO_VIBRATION,
            SensorAlertState.ALERT: DisplayState.VIBRATION_DETECTED,
        },
    },
}


# Legal display states per (type, subtype). A None subtype covers the whole type.
VALID_DISPLAY_STATES: Dict[DeviceType, Dict[Optional[DeviceSubtype], List[DisplayState]]] = {
    DeviceType.DOOR: {None: [DisplayState.OPEN, DisplayState.CLOSED, DisplayState.LOCKED, DisplayState.UNLOCKED]},
    DeviceType.LOCK: {None: [DisplayState.LOCKED, DisplayState.UNLOCKED]},
    DeviceType.OUTLET: {
        DeviceSubtype.MULTI: [DisplayState.ON, DisplayState.OFF],
        DeviceSubtype.SINGLE: [DisplayState.ON, DisplayState.OFF],
    },
    DeviceType.SENSOR: {
        DeviceSubtype.CONTACT: [DisplayState.OPEN, DisplayState.CLOSED],
        DeviceSubtype.LEAK: [DisplayState.DRY, DisplayState.LEAK_DETECTED],
        DeviceSubtype.MOTION: [DisplayState.NO_MOTION, DisplayState.MOTION_DETECTED],
        DeviceSubtype.VIBRATION: [DisplayState.NO_VIBRATION, DisplayState.VIBRATION_DETECTED],
    },
    DeviceType.SWITCH: {
        DeviceSubtype.DIMMER: [DisplayState.ON, DisplayState.OFF],
        DeviceSubtype.TOGGLE: [DisplayState.ON, DisplayState.OFF],
    },
}

# Connectivity/error states are valid for every device
UNIVERSAL_DISPLAY_STATES = [DisplayState.ONLINE, DisplayState.OFFLINE, DisplayState.ERROR]

# Display states that represent an alerting condition
ALERT_DISPLAY_STATES = {
    DisplayState.OPEN,
    DisplayState.UNLOCKED,
    DisplayState.LEAK_DETECTED,
    DisplayState.MOTION_DETECTED,
    DisplayState.VIBRATION_DETECTED,
}

SECURITY_DEVICE_TYPES = {
    DeviceType.SENSOR,
    DeviceType.CAMERA,
    DeviceType.DOOR,
    DeviceType.LOCK,
    DeviceType.ALARM,
}


class ConnectorCategory(str, Enum):
    YOLINK = "yolink"
    PIKO = "piko"
    GENEA = "genea"
    NETBOX = "netbox"


class EventCategory(str, Enum):
    DEVICE_STATE = "DEVICE_STATE"
    DEVICE_CONNECTIVITY = "DEVICE_CONNECTIVITY"
    ANALYTICS = "ANALYTICS"
    UNKNOWN = "UNKNOWN"


class EventType(str, Enum):
    # Device state
    STATE_CHANGED = "STATE_CHANGED"
    BATTERY_LEVEL_CHANGED = "BATTERY_LEVEL_CHANGED"
    DOOR_HELD_OPEN = "DOOR_HELD_OPEN"
    DOOR_FORCED_OPEN = "DOOR_FORCED_OPEN"
    ACCESS_GRANTED = "ACCESS_GRANTED"
    ACCESS_DENIED = "ACCESS_DENIED"
    # Connectivity
    DEVICE_ONLINE = "DEVICE_ONLINE"
    DEVICE_OFFLINE = "DEVICE_OFFLINE"
    # Analytics
    ANALYTICS_EVENT = "ANALYTICS_EVENT"
    PERSON_DETECTED = "PERSON_DETECTED"
    LOITERING = "LOITERING"
    LINE_CROSSING = "LINE_CROSSING"
    ARMED_PERSON = "ARMED_PERSON"
    TAILGATING = "TAILGATING"
    INTRUSION = "INTRUSION"
    # Other
    UNKNOWN_EXTERNAL_EVENT = "UNKNOWN_EXTERNAL_EVENT"
    SYSTEM_NOTIFICATION = "SYSTEM_NOTIFICATION"


EVENT_TYPE_DISPLAY_MAP: Dict[EventType, str] = {
    EventType.STATE_CHANGED: "State Changed",
    EventType.BATTERY_LEVEL_CHANGED: "Battery Level Changed",
    EventType.DOOR_HELD_OPEN: "Door Held Open",
    EventType.DOOR_FORCED_OPEN: "Door Forced Open",
    EventType.ACCESS_GRANTED: "Access Granted",
    EventType.ACCESS_DENIED: "Access Denied",
    EventType.DEVICE_ONLINE: "Device Online",
    EventType.DEVICE_OFFLINE: "Device Offline",
    EventType.ANALYTICS_EVENT: "Generic Analytics",
    EventType.PERSON_DETECTED: "Person Detected",
    EventType.LOITERING: "Loitering",
    EventType.LINE_CROSSING: "Line Crossing",
    EventType.ARMED_PERSON: "Armed Person Detected",
    EventType.TAILGATING: "Tailgating Detected",
    EventType.INTRUSION: "Intrusion Detected",
    EventType.UNKNOWN_EXTERNAL_EVENT: "Unknown External Event",
    EventType.SYSTEM_NOTIFICATION: "System Notification",
}

EVENT_CATEGORY_DISPLAY_MAP: Dict[EventCategory, str] = {
    EventCategory.DEVICE_STATE: "Device State",
    EventCategory.DEVICE_CONNECTIVITY: "Connectivity",
    EventCategory.ANALYTICS: "Analytics",
    EventCategory.UNKNOWN: "Unknown",
}


class TypedDeviceInfo(BaseModel):
    """Standardized type and optional subtype of a device."""
    model_config = {"protected_namespaces": (), "use_enum_values": True}

    type: DeviceType
    subtype: Optional[DeviceSubtype] = None


def is_valid_display_state(type_info: TypedDeviceInfo, display_state: DisplayState) -> bool:
    """
    Check whether a display state is legal for the given device type.

    Types without an explicit entry accept any display state.
    """
    if DisplayState(display_state) in UNIVERSAL_DISPLAY_STATES:
        return True

    by_subtype = VALID_DISPLAY_STATES.get(DeviceType(type_info.type))
    if by_subtype is None:
        return True

    subtype = DeviceSubtype(type_info.subtype) if type_info.subtype else None
    allowed = by_subtype.get(subtype) or by_subtype.get(None)
    if allowed is None:
        return True
    return DisplayState(display_state) in allowed


def is_security_device(type_info: TypedDeviceInfo) -> bool:
    return DeviceType(type_info.type) in SECURITY_DEVICE_TYPES
