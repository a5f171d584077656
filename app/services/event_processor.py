"""
Event ingestion: persist a standardized event, refresh the device status,
publish it for real-time consumers and run automations.
"""
from typing import Any, Dict, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.redis_client import redis_client
from app.models.db_models import Connector, Device, Event
from app.models.definitions import DisplayState, EventCategory, TypedDeviceInfo, is_valid_display_state
from app.models.event_models import StandardizedEventIn
from app.services.automation_service import automation_service
from app.services.event_streams import event_stream_registry
from app.utils.logger import get_logger
from app.utils.timestamps import to_epoch_ms, to_naive_utc

logger = get_logger(__name__)

_STATUS_CATEGORIES = {EventCategory.DEVICE_STATE.value, EventCategory.DEVICE_CONNECTIVITY.value}
_STREAM_KINDS = {"yolink": "mqtt", "piko": "websocket"}


class UnknownConnectorError(LookupError):
    """The event references a connector that does not exist."""


def _event_message(event: Event) -> Dict[str, Any]:
    return {
        "eventUuid": event.event_uuid,
        "timestamp": to_epoch_ms(event.timestamp),
        "connectorId": event.connector_id,
        "deviceId": event.device_id,
        "eventCategory": event.standardized_event_category,
        "eventType": event.standardized_event_type,
        "eventSubtype": event.standardized_event_subtype,
        "payload": event.standardized_payload,
    }


def _update_device_status(db: Session, event: Event):
    """Store payload.displayState on the device when it is a legal state for the device type."""
    if event.standardized_event_category not in _STATUS_CATEGORIES:
        return
    payload = event.standardized_payload or {}
    display_state = payload.get("displayState")
    if not display_state:
        return

    try:
        state = DisplayState(display_state)
    except ValueError:
        logger.warning(f"Event {event.event_uuid} carries unknown display state '{display_state}'")
        return

    device = db.query(Device).filter(
        Device.connector_id == event.connector_id,
        Device.device_id == event.device_id
    ).first()
    if device is None or not device.standardized_device_type:
        return

    type_info = TypedDeviceInfo(type=device.standardized_device_type, subtype=device.standardized_device_subtype)
    if not is_valid_display_state(type_info, state):
        logger.warning(f"Display state '{state.value}' is not valid for {type_info.type}/{type_info.subtype}, device {device.id} unchanged")
        return
    device.status = state.value


def publish_event(event: Event):
    """Publish to Redis. Failures are logged and never fail ingestion."""
    try:
        redis_client.publish_event(_event_message(event))
    except Exception as e:
        logger.error(f"Failed to publish event {event.event_uuid} to Redis: {e}")


def ingest_event(db: Session, incoming: StandardizedEventIn) -> Tuple[Event, bool]:
    """
    Ingest one standardized event.

    A duplicate event_uuid returns the stored event and does nothing else, so
    automations run at most once per event.

    Returns:
        (event, created)

    Raises:
        UnknownConnectorError: If the connector does not exist
    """
    existing = db.query(Event).filter(Event.event_uuid == incoming.event_uuid).first()
    if existing is not None:
        logger.info(f"Duplicate event {incoming.event_uuid} ignored")
        return existing, False

    connector = db.query(Connector.id, Connector.category).filter(Connector.id == incoming.connector_id).first()
    if connector is None:
        raise UnknownConnectorError(f"Connector {incoming.connector_id} not found")

    event = Event(
        event_uuid=incoming.event_uuid,
        timestamp=to_naive_utc(incoming.timestamp),
        connector_id=incoming.connector_id,
        device_id=incoming.device_id,
        standardized_event_category=incoming.category,
        standardized_event_type=incoming.type,
        standardized_event_subtype=incoming.subtype,
        standardized_payload=incoming.payload,
        raw_payload=incoming.raw_payload,
        raw_event_type=incoming.raw_event_type,
        best_shot_url_component=incoming.best_shot_url_component,
    )
    db.add(event)
    _update_device_status(db, event)

    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent ingest of the same uuid
        db.rollback()
        existing = db.query(Event).filter(Event.event_uuid == incoming.event_uuid).first()
        if existing is None:
            raise
        logger.info(f"Duplicate event {incoming.event_uuid} ignored")
        return existing, False

    db.refresh(event)
    logger.info(f"Stored event {event.event_uuid} ({event.standardized_event_type}) for device {event.device_id}")

    stream_kind = _STREAM_KINDS.get(connector.category)
    if stream_kind:
        event_stream_registry.mark_event(stream_kind, event.connector_id)

    publish_event(event)

    summary = automation_service.process_event(db, event)
    if summary["matched"]:
        logger.info(f"Event {event.event_uuid} triggered {summary['matched']} automations")
    return event, True
