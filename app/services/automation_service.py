"""
Automation engine: match incoming events against automation triggers and run
the configured actions.
"""
import fnmatch
import time
from typing import Any, Callable, Dict, List, Optional

import requests
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import AutomationActionError
from app.models.automation_models import AutomationConfig
from app.models.db_models import (
    Area,
    Automation,
    CameraAssociation,
    Connector,
    Device,
    Event,
    Location,
)
from app.models.definitions import DisplayState
from app.models.service_models import PushoverMessage
from app.services.connector_config import load_connector_config, store_connector_config
from app.services.drivers import pushover
from app.services.drivers.piko import PikoClient
from app.services.drivers.yolink import YoLinkClient
from app.services.service_configurations import load_service_config
from app.services.templating import build_token_context, resolve_tokens
from app.utils.logger import get_logger
from app.utils.timestamps import to_epoch_ms

logger = get_logger(__name__)
settings = get_settings()

HTTP_USER_AGENT = "FusionBridge Automation/1.0"
BODY_METHODS = {"POST", "PUT", "PATCH"}
DEFAULT_BOOKMARK_DURATION_MS = 5000


def matches_event_type_filter(event_type_filter: Optional[str], event_type: Optional[str]) -> bool:
    """Case-insensitive wildcard match ('*', '?'); an empty filter matches everything."""
    if not event_type_filter or not event_type_filter.strip():
        return True
    return fnmatch.fnmatchcase((event_type or "").lower(), event_type_filter.strip().lower())


def matches_trigger(config: AutomationConfig, event: Event, device: Optional[Device]) -> bool:
    """Check the device type and event type conditions of an automation trigger."""
    if device is None or not device.standardized_device_type:
        return False
    if device.standardized_device_type not in config.trigger.source_entity_types:
        return False
    return matches_event_type_filter(config.trigger.event_type_filter, event.standardized_event_type)


class AutomationService:
    """Runs automations for ingested events."""

    def __init__(self):
        self.max_attempts = settings.automation_max_attempts
        self.initial_delay_ms = settings.automation_initial_delay_ms
        self.max_delay_ms = settings.automation_max_delay_ms
        self.backoff_factor = settings.automation_backoff_factor
        logger.info(
            f"Initializing AutomationService (attempts={self.max_attempts}, "
            f"initial_delay={self.initial_delay_ms}ms, max_delay={self.max_delay_ms}ms)"
        )

    def execute_with_retry(self, action: Callable[[], Any], description: str) -> Any:
        """
        Call action until it succeeds or the attempts are used up.

        Delays grow from initial_delay_ms by backoff_factor, capped at max_delay_ms.

        Raises:
            The exception of the last attempt
        """
        delay_ms = self.initial_delay_ms
        for attempt in range(1, self.max_attempts + 1):
            try:
                return action()
            except Exception as e:
                if attempt >= self.max_attempts:
                    logger.error(f"{description} failed after {attempt} attempts: {e}")
                    raise
                logger.warning(f"{description} failed (attempt {attempt}/{self.max_attempts}), retrying in {delay_ms}ms: {e}")
                time.sleep(delay_ms / 1000)
                delay_ms = min(delay_ms * self.backoff_factor, self.max_delay_ms)

    def process_event(self, db: Session, event: Event) -> Dict[str, int]:
        """
        Evaluate every enabled automation of the event's connector and run the
        matching ones. Failures are logged and never propagate.

        Returns:
            {"matched": n, "actionsSucceeded": n, "actionsFailed": n}
        """
        summary = {"matched": 0, "actionsSucceeded": 0, "actionsFailed": 0}

        try:
            automations, device, context = self._load_automations(db, event)
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to load automations for event {event.event_uuid}: {e}", exc_info=True)
            return summary
        if not automations:
            return summary

        for automation in automations:
            try:
                config = AutomationConfig.model_validate(automation.config_json)
            except ValidationError as e:
                logger.error(f"[Automation {automation.id}] Invalid config, skipping: {e}")
                continue

            if not matches_trigger(config, event, device):
                continue

            summary["matched"] += 1
            logger.info(f"[Automation {automation.id}] '{automation.name}' triggered by event {event.event_uuid}")

            for index, action in enumerate(config.actions):
                description = f"[Automation {automation.id}] Action {index + 1} ({action.type})"
                try:
                    self.execute_with_retry(
                        lambda: self.execute_action(db, action, context, event, device),
                        description
                    )
                    summary["actionsSucceeded"] += 1
                except Exception as e:
                    summary["actionsFailed"] += 1
                    logger.error(f"{description} permanently failed: {e}", exc_info=True)

        return summary

    def _load_automations(self, db: Session, event: Event):
        """Enabled automations of the event's connector, the event's device and the token context."""
        automations = db.query(Automation).filter(
            Automation.source_connector_id == event.connector_id,
            Automation.enabled.is_(True)
        ).order_by(Automation.created_at, Automation.id).all()
        if not automations:
            return [], None, None

        device = db.query(Device).filter(
            Device.connector_id == event.connector_id,
            Device.device_id == event.device_id
        ).first()
        connector = db.query(Connector).filter(Connector.id == event.connector_id).first()
        area = db.query(Area).filter(Area.id == device.area_id).first() if device and device.area_id else None
        location_id = (device.location_id if device else None) or (area.location_id if area else None)
        location = db.query(Location).filter(Location.id == location_id).first() if location_id else None
        context = build_token_context(event, device, connector, area, location)
        return automations, device, context

    def execute_action(self, db: Session, action, context: Dict[str, Any], event: Event, device: Optional[Device]):
        handlers = {
            "createEvent": self._create_event,
            "createBookmark": self._create_bookmark,
            "sendHttpRequest": self._send_http_request,
            "sendPushNotification": self._send_push_notification,
            "setDeviceState": self._set_device_state,
        }
        handler = handlers.get(action.type)
        if handler is None:
            raise AutomationActionError(f"Unsupported action type: {action.type}")
        if action.type == "setDeviceState":
            return handler(db, action.params.model_dump())
        params = resolve_tokens(action.params.model_dump(), context)
        return handler(db, params, event, device)

    # Actions

    def _piko_client(self, db: Session, connector_id: str) -> PikoClient:
        connector = db.query(Connector).filter(Connector.id == connector_id).first()
        if connector is None:
            raise AutomationActionError(f"Target connector {connector_id} not found")
        if connector.category != "piko":
            raise AutomationActionError(f"Unsupported target connector category {connector.category}")
        return PikoClient(load_connector_config(connector), connector.id)

    def _persist_client_config(self, db: Session, client):
        if client.config_changed:
            connector = db.query(Connector).filter(Connector.id == client.connector_id).first()
            store_connector_config(connector, client.config)
            db.commit()

    def _associated_camera_ids(self, db: Session, device: Optional[Device]) -> List[str]:
        """External ids of the Piko cameras associated with a device."""
        if device is None:
            return []
        rows = db.query(Device.device_id).join(
            CameraAssociation, CameraAssociation.piko_camera_id == Device.id
        ).filter(CameraAssociation.device_id == device.id).all()
        return [row[0] for row in rows]

    def _create_event(self, db: Session, params: Dict[str, Any], event: Event, device: Optional[Device]):
        client = self._piko_client(db, params["target_connector_id"])
        try:
            client.create_event(
                source=params["source_template"],
                caption=params["caption_template"],
                description=params["description_template"],
                timestamp=event.timestamp.isoformat() + "Z",
                camera_refs=self._associated_camera_ids(db, device)
            )
        finally:
            self._persist_client_config(db, client)

    def _create_bookmark(self, db: Session, params: Dict[str, Any], event: Event, device: Optional[Device]):
        camera_ids = self._associated_camera_ids(db, device)
        if not camera_ids:
            logger.warning(f"No Piko cameras associated with device {device.id if device else None}, skipping bookmark")
            return

        try:
            duration_ms = int(str(params.get("duration_ms_template")).strip())
            if duration_ms <= 0:
                duration_ms = DEFAULT_BOOKMARK_DURATION_MS
        except ValueError:
            duration_ms = DEFAULT_BOOKMARK_DURATION_MS

        tags_template = params.get("tags_template") or ""
        tags = [tag.strip() for tag in tags_template.split(",") if tag.strip()]

        client = self._piko_client(db, params["target_connector_id"])
        try:
            for camera_id in camera_ids:
                client.create_bookmark(
                    camera_id,
                    name=params["name_template"],
                    description=params.get("description_template") or "",
                    start_time_ms=to_epoch_ms(event.timestamp),
                    duration_ms=duration_ms,
                    tags=tags
                )
        finally:
            self._persist_client_config(db, client)

    def _send_http_request(self, db: Session, params: Dict[str, Any], event: Event, device: Optional[Device]):
        method = params["method"]
        headers = {"User-Agent": HTTP_USER_AGENT}
        for header in params.get("headers") or []:
            key = (header.get("key_template") or "").strip()
            if key:
                headers[key] = header.get("value_template") or ""

        body = None
        if method in BODY_METHODS and params.get("body_template"):
            body = params["body_template"]
            has_content_type = any(k.lower() == "content-type" for k in headers)
            if params.get("content_type"):
                headers["Content-Type"] = params["content_type"]
            elif not has_content_type and body.strip().startswith("{"):
                headers["Content-Type"] = "application/json"

        url = params["url_template"]
        logger.info(f"Automation HTTP request: {method} {url}")
        try:
            response = requests.request(method, url, headers=headers, data=body, timeout=settings.http_timeout_seconds)
        except requests.RequestException as e:
            raise AutomationActionError(f"HTTP request failed: {e}") from e

        if not response.ok:
            logger.error(f"Automation HTTP request error body: {response.text[:500]}")
            raise AutomationActionError(f"HTTP request failed with status {response.status_code}: {response.reason}")

    def _send_push_notification(self, db: Session, params: Dict[str, Any], event: Event, device: Optional[Device]):
        config, enabled = load_service_config(db, "pushover")
        if config is None:
            raise AutomationActionError("Pushover service is not configured.")
        if not enabled:
            raise AutomationActionError("Pushover service is disabled.")

        target = params.get("target_user_key_template")
        recipient = target if target and target != "__all__" else config.group_key
        message = PushoverMessage(
            message=params["message_template"],
            title=params.get("title_template"),
            priority=params["priority"] if params.get("priority") else None
        )
        pushover.send_notification(config.api_token, recipient, message)

    def _set_device_state(self, db: Session, params: Dict[str, Any]):
        device = db.query(Device).filter(Device.id == params["target_device_internal_id"]).first()
        if device is None:
            raise AutomationActionError(f"Target device {params['target_device_internal_id']} not found")
        connector = db.query(Connector).filter(Connector.id == device.connector_id).first()
        if connector is None or connector.category != "yolink":
            raise AutomationActionError(f"Device {device.id} does not belong to a YoLink connector")

        raw = device.raw_device_data if isinstance(device.raw_device_data, dict) else {}
        device_token = raw.get("token")
        if not device_token:
            raise AutomationActionError(f"Device {device.id} has no YoLink device token")

        client = YoLinkClient(load_connector_config(connector), connector.id)
        target_state = params["target_state"]
        try:
            client.set_device_state(device.device_id, device_token, device.type, "open" if target_state == "ON" else "close")
        finally:
            if client.config_changed:
                store_connector_config(connector, client.config)
        device.status = (DisplayState.ON if target_state == "ON" else DisplayState.OFF).value
        db.commit()
        logger.info(f"Set device {device.id} to {target_state}")


automation_service = AutomationService()
