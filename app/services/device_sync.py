"""
Device synchronization: reconcile vendor device lists with the devices table.

Each vendor routine upserts the devices reported upstream (keyed by
connector_id + device_id), deletes the ones that disappeared and returns the
number of devices processed. The organization sweep runs connectors one after
another and commits per connector; a failing connector is recorded and the
sweep moves on.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.exceptions import ConnectorConfigError
from app.models.connector_models import GeneaConfig, PikoConfig, YoLinkConfig
from app.models.db_models import Connector, Device, PikoServer
from app.models.definitions import DisplayState, is_security_device
from app.services.connector_config import load_connector_config, store_connector_config
from app.services.device_mapping import get_device_type_info
from app.services.drivers import genea
from app.services.drivers.piko import PikoClient
from app.services.drivers.yolink import YoLinkClient
from app.services.state_mapping import (
    calculate_genea_display_state,
    calculate_yolink_display_state,
    map_piko_status,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)


class SyncError(BaseModel):
    model_config = {"protected_namespaces": (), "populate_by_name": True}

    connector_name: str = Field(serialization_alias="connectorName")
    error: str


class SyncResult(BaseModel):
    model_config = {"protected_namespaces": ()}

    synced_count: int = 0
    errors: List[SyncError] = Field(default_factory=list)


def _delete_stale_devices(db: Session, connector_id: str, upstream_ids: List[str]) -> int:
    """Delete devices of the connector whose device_id is not in upstream_ids (all of them if empty)."""
    query = db.query(Device).filter(Device.connector_id == connector_id)
    if upstream_ids:
        query = query.filter(Device.device_id.notin_(upstream_ids))
    return query.delete(synchronize_session=False)


def _unique_by(entries: List[Dict[str, Any]], key: str) -> List[Dict[str, Any]]:
    """
    Collapse entries sharing the same id; the last one reported wins.
    Entries without an id are passed through for the caller to skip.
    """
    unique: Dict[Any, Dict[str, Any]] = {}
    for index, entry in enumerate(entries):
        unique[entry.get(key) or ("missing", index)] = entry
    return list(unique.values())


def _upsert_device(
    db: Session,
    connector_id: str,
    device_id: str,
    values: Dict[str, Any],
    display_state: Optional[DisplayState]
) -> Device:
    """
    Insert or update one device. status is only written when a display state
    was calculated; otherwise the stored status is kept.
    """
    device = db.query(Device).filter(
        Device.connector_id == connector_id,
        Device.device_id == device_id
    ).first()

    if device is None:
        device = Device(connector_id=connector_id, device_id=device_id)
        db.add(device)

    for key, value in values.items():
        setattr(device, key, value)
    if display_state is not None:
        device.status = DisplayState(display_state).value
    return device


def sync_yolink_devices(db: Session, connector: Connector, config: YoLinkConfig) -> int:
    """
    Sync a YoLink home.

    Tokens refreshed during the sync are stored back on the connector. A failed
    per-device state fetch leaves that device's status unchanged.
    """
    client = YoLinkClient(config, connector.id)
    client.get_access_token()
    upstream = _unique_by(client.get_device_list(), "deviceId")
    logger.info(f"[Sync YoLink][{connector.id}] {len(upstream)} devices reported by YoLink")

    upstream_ids = [d.get("deviceId") for d in upstream if d.get("deviceId")]
    deleted = _delete_stale_devices(db, connector.id, upstream_ids)
    if deleted:
        logger.info(f"[Sync YoLink][{connector.id}] Deleted {deleted} stale devices")

    processed = 0
    for raw in upstream:
        device_id, name, raw_type = raw.get("deviceId"), raw.get("name"), raw.get("type")
        if not device_id or not name or not raw_type:
            logger.warning(f"[Sync YoLink][{connector.id}] Skipping device with missing id/name/type: {raw}")
            continue

        type_info = get_device_type_info("yolink", raw_type)
        display_state = None
        if raw.get("token"):
            try:
                state_data = client.get_device_state(device_id, raw["token"], raw_type)
                display_state = calculate_yolink_display_state(type_info, state_data, device_id)
            except Exception as e:
                logger.error(f"[Sync YoLink][{connector.id}] Failed to fetch state for {raw_type} {device_id}, status left unchanged: {e}")

        _upsert_device(db, connector.id, device_id, {
            "name": name,
            "type": raw_type,
            "vendor": str(raw["vendor"]) if raw.get("vendor") else None,
            "model": str(raw["modelName"]) if raw.get("modelName") else None,
            "url": None,
            "standardized_device_type": type_info.type,
            "standardized_device_subtype": type_info.subtype,
            "is_security_device": is_security_device(type_info),
            "raw_device_data": raw,
            "server_id": None,
        }, display_state)
        processed += 1

    if client.config_changed:
        store_connector_config(connector, client.config)

    logger.info(f"[Sync YoLink][{connector.id}] Processed {processed} devices, deleted {deleted}")
    return processed


def sync_piko_devices(db: Session, connector: Connector, config: PikoConfig) -> int:
    """Sync a Piko system: servers first, then cameras."""
    client = PikoClient(config, connector.id)
    servers = _unique_by(client.get_system_servers(), "id")
    cameras = _unique_by(client.get_system_devices(), "id")
    logger.info(f"[Sync Piko][{connector.id}] {len(cameras)} cameras and {len(servers)} servers reported by Piko")

    for server in servers:
        if not server.get("id") or not server.get("name"):
            continue
        os_info = server.get("osInfo") or {}
        row = db.query(PikoServer).filter(PikoServer.server_id == server["id"]).first()
        if row is None:
            row = PikoServer(server_id=server["id"])
            db.add(row)
        row.connector_id = connector.id
        row.name = server["name"]
        row.status = server.get("status")
        row.version = server.get("version")
        row.os_platform = os_info.get("platform")
        row.os_variant_version = os_info.get("variantVersion")
        row.url = server.get("url")
    db.flush()

    upstream_ids = [c.get("id") for c in cameras if c.get("id")]
    deleted = _delete_stale_devices(db, connector.id, upstream_ids)
    if deleted:
        logger.info(f"[Sync Piko][{connector.id}] Deleted {deleted} stale devices")

    known_servers = {s.get("id") for s in servers if s.get("id")}
    processed = 0
    for camera in cameras:
        if not camera.get("id") or not camera.get("name"):
            continue
        raw_type = camera.get("deviceType") or "Camera"
        type_info = get_device_type_info("piko", raw_type)
        server_id = camera.get("serverId") if camera.get("serverId") in known_servers else None
        _upsert_device(db, connector.id, camera["id"], {
            "name": camera["name"],
            "type": raw_type,
            "vendor": camera.get("vendor") or "Piko",
            "model": camera.get("model"),
            "url": camera.get("url"),
            "standardized_device_type": type_info.type,
            "standardized_device_subtype": type_info.subtype,
            "is_security_device": is_security_device(type_info),
            "raw_device_data": camera,
            "server_id": server_id,
        }, map_piko_status(camera.get("status")))
        processed += 1

    if client.config_changed:
        store_connector_config(connector, client.config)

    logger.info(f"[Sync Piko][{connector.id}] Processed {processed} cameras")
    return processed


def sync_genea_devices(db: Session, connector: Connector, config: GeneaConfig) -> int:
    """Sync Genea doors."""
    doors = _unique_by(genea.get_doors(config), "uuid")
    logger.info(f"[Sync Genea][{connector.id}] {len(doors)} doors reported by Genea")

    upstream_ids = [d.get("uuid") for d in doors if d.get("uuid")]
    deleted = _delete_stale_devices(db, connector.id, upstream_ids)
    if deleted:
        logger.info(f"[Sync Genea][{connector.id}] Deleted {deleted} stale devices")

    type_info = get_device_type_info("genea", "Door")
    processed = 0
    for door in doors:
        if not door.get("uuid") or not door.get("name"):
            continue
        _upsert_device(db, connector.id, door["uuid"], {
            "name": door["name"],
            "type": "Door",
            "vendor": "Genea",
            "model": door.get("reader_model"),
            "url": None,
            "standardized_device_type": type_info.type,
            "standardized_device_subtype": type_info.subtype,
            "is_security_device": is_security_device(type_info),
            "raw_device_data": door,
            "server_id": None,
        }, calculate_genea_display_state(door))
        processed += 1

    logger.info(f"[Sync Genea][{connector.id}] Processed {processed} doors")
    return processed


_SYNC_ROUTINES = {
    "yolink": sync_yolink_devices,
    "piko": sync_piko_devices,
    "genea": sync_genea_devices,
}


def sync_organization_devices(db: Session, organization_id: Optional[str] = None) -> SyncResult:
    """
    Sync every connector of an organization (or of all organizations when None).

    Args:
        db: Database session
        organization_id: Organization scope, None for all

    Returns:
        SyncResult with the total number of processed devices and per-connector errors
    """
    query = db.query(Connector)
    if organization_id:
        query = query.filter(Connector.organization_id == organization_id)
    connectors = query.order_by(Connector.name).all()

    result = SyncResult()
    for connector in connectors:
        routine = _SYNC_ROUTINES.get(connector.category)
        if routine is None:
            logger.info(f"Skipping sync for unsupported connector category '{connector.category}' ({connector.name})")
            continue

        try:
            config = load_connector_config(connector)
        except ConnectorConfigError as e:
            logger.error(f"Connector {connector.name} ({connector.id}): {e}")
            result.errors.append(SyncError(connector_name=connector.name, error=str(e)))
            continue

        try:
            processed = routine(db, connector, config)
            db.commit()
            result.synced_count += processed
        except Exception as e:
            db.rollback()
            logger.error(f"Error syncing connector {connector.name} ({connector.id}): {e}", exc_info=True)
            result.errors.append(SyncError(connector_name=connector.name, error=str(e)))

    logger.info(f"Device sync finished: {result.synced_count} devices, {len(result.errors)} errors")
    return result
