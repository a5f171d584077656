"""
Vendor device identifiers -> standardized device type/subtype.
"""
from typing import Dict, Optional, Tuple

from app.models.definitions import DeviceSubtype, DeviceType, TypedDeviceInfo
from app.utils.logger import get_logger

logger = get_logger(__name__)

_TypeEntry = Tuple[DeviceType, Optional[DeviceSubtype]]

YOLINK_DEVICE_MAP: Dict[str, _TypeEntry] = {
    "COSmokeSensor": (DeviceType.SENSOR, DeviceSubtype.CO_SMOKE),
    "CSDevice": (DeviceType.UNMAPPED, None),
    "CellularHub": (DeviceType.HUB, DeviceSubtype.CELLULAR),
    "Dimmer": (DeviceType.SWITCH, DeviceSubtype.DIMMER),
    "DoorSensor": (DeviceType.SENSOR, DeviceSubtype.CONTACT),
    "Finger": (DeviceType.SWITCH, None),
    "GarageDoor": (DeviceType.GARAGE_DOOR, None),
    "Hub": (DeviceType.HUB, DeviceSubtype.GENERIC),
    "IPCamera": (DeviceType.CAMERA, None),
    "InfraredRemoter": (DeviceType.UNMAPPED, None),
    "LeakSensor": (DeviceType.SENSOR, DeviceSubtype.LEAK),
    "Lock": (DeviceType.LOCK, None),
    "Manipulator": (DeviceType.UNMAPPED, None),
    "MotionSensor": (DeviceType.SENSOR, DeviceSubtype.MOTION),
    "MultiOutlet": (DeviceType.OUTLET, DeviceSubtype.MULTI),
    "Outlet": (DeviceType.OUTLET, DeviceSubtype.SINGLE),
    "PowerFailureAlarm": (DeviceType.SENSOR, DeviceSubtype.POWER_FAILURE),
    "Siren": (DeviceType.ALARM, DeviceSubtype.SIREN),
    "SmartRemoter": (DeviceType.UNMAPPED, None),
    "SpeakerHub": (DeviceType.HUB, DeviceSubtype.SPEAKER),
    "Sprinkler": (DeviceType.SPRINKLER, None),
    "Switch": (DeviceType.SWITCH, DeviceSubtype.TOGGLE),
    "THSensor": (DeviceType.SENSOR, None),
    "Thermostat": (DeviceType.THERMOSTAT, None),
    "VibrationSensor": (DeviceType.SENSOR, DeviceSubtype.VIBRATION),
    "WaterDepthSensor": (DeviceType.SENSOR, None),
    "WaterMeterController": (DeviceType.UNMAPPED, None),
}

PIKO_DEVICE_MAP: Dict[str, _TypeEntry] = {
    "Camera": (DeviceType.CAMERA, None),
    "Encoder": (DeviceType.ENCODER, None),
    "IOModule": (DeviceType.IO_MODULE, None),
    "HornSpeaker": (DeviceType.ALARM, DeviceSubtype.SIREN),
    "MultisensorCamera": (DeviceType.CAMERA, None),
}

GENEA_DEVICE_MAP: Dict[str, _TypeEntry] = {
    "Door": (DeviceType.DOOR, None),
}

_VENDOR_MAPS: Dict[str, Dict[str, _TypeEntry]] = {
    "yolink": YOLINK_DEVICE_MAP,
    "piko": PIKO_DEVICE_MAP,
    "genea": GENEA_DEVICE_MAP,
}


def get_device_type_info(connector_category: Optional[str], identifier: Optional[str]) -> TypedDeviceInfo:
    """
    Resolve a vendor device identifier to a standardized type.

    Args:
        connector_category: Connector category (yolink, piko, genea, ...)
        identifier: Raw vendor type identifier (e.g. "DoorSensor", "IOModule")

    Returns:
        TypedDeviceInfo; Unmapped for unknown vendors or identifiers
    """
    vendor_map = _VENDOR_MAPS.get((connector_category or "").lower())
    if vendor_map is None:
        logger.warning(f"No device mapping for connector category '{connector_category}' (identifier '{identifier}')")
        return TypedDeviceInfo(type=DeviceType.UNMAPPED)

    entry = vendor_map.get(identifier or "")
    if entry is None:
        logger.warning(f"Unknown {connector_category} device identifier '{identifier}', treating as Unmapped")
        return TypedDeviceInfo(type=DeviceType.UNMAPPED)

    device_type, subtype = entry
    return TypedDeviceInfo(type=device_type, subtype=subtype)
