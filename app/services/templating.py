"""
{{ token }} substitution for automation action templates.

A token is a dot path into the context built by build_token_context, e.g.
{{device.name}} or {{ event.displayState }}. Paths that cannot be resolved are
left in the output unchanged.
"""
import json
import re
from typing import Any, Dict, Optional

from app.models.db_models import Area, Connector, Device, Event, Location
from app.utils.logger import get_logger
from app.utils.timestamps import to_epoch_ms

logger = get_logger(__name__)

TOKEN_PATTERN = re.compile(r"\{\{\s*([^}]+?)\s*\}\}")

_MISSING = object()

# Standardized payload fields promoted onto the event context
_PAYLOAD_FIELDS = (
    "displayState",
    "statusType",
    "detectionType",
    "confidence",
    "zone",
    "originalEventType",
    "rawStateValue",
    "rawStatusValue",
)


def _lookup(context: Dict[str, Any], path: str) -> Any:
    value: Any = context
    for key in path.split("."):
        if not isinstance(value, dict) or key not in value:
            return _MISSING
        value = value[key]
    return value


def _render_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def resolve_template(template: Optional[str], context: Dict[str, Any]) -> Optional[str]:
    """
    Substitute every {{ path }} in the template.

    Args:
        template: Template string (None is returned unchanged)
        context: Token context

    Returns:
        The rendered string. Unresolvable tokens stay verbatim; None values
        render as ''; dicts and lists render as JSON.
    """
    if not isinstance(template, str):
        return template

    def replace(match):
        path = match.group(1).strip()
        value = _lookup(context, path)
        if value is _MISSING:
            logger.warning(f"[Token Resolve] Path '{path}' not found, leaving token unresolved")
            return match.group(0)
        return _render_value(value)

    return TOKEN_PATTERN.sub(replace, template)


def resolve_tokens(params: Any, context: Dict[str, Any]) -> Any:
    """Recursively resolve templates inside a params structure (dicts, lists, strings)."""
    if isinstance(params, str):
        return resolve_template(params, context)
    if isinstance(params, dict):
        return {key: resolve_tokens(value, context) for key, value in params.items()}
    if isinstance(params, list):
        return [resolve_tokens(item, context) for item in params]
    return params


def build_token_context(
    event: Event,
    device: Optional[Device] = None,
    connector: Optional[Connector] = None,
    area: Optional[Area] = None,
    location: Optional[Location] = None
) -> Dict[str, Any]:
    """Assemble the token context for one triggering event."""
    payload = event.standardized_payload if isinstance(event.standardized_payload, dict) else {}
    event_context = {
        "id": event.event_uuid,
        "category": event.standardized_event_category,
        "type": event.standardized_event_type,
        "subtype": event.standardized_event_subtype,
        "timestamp": event.timestamp.isoformat() + "Z" if event.timestamp else None,
        "timestampMs": to_epoch_ms(event.timestamp),
        "deviceId": event.device_id,
        "connectorId": event.connector_id,
        "payload": payload,
    }
    for field in _PAYLOAD_FIELDS:
        if field in payload:
            event_context[field] = payload[field]

    return {
        "event": event_context,
        "device": {
            "id": device.id,
            "externalId": device.device_id,
            "name": device.name,
            "type": device.standardized_device_type,
            "subtype": device.standardized_device_subtype,
            "rawType": device.type,
            "status": device.status,
            "vendor": device.vendor,
            "model": device.model,
        } if device else None,
        "connector": {
            "id": connector.id,
            "name": connector.name,
            "category": connector.category,
        } if connector else None,
        "area": {"id": area.id, "name": area.name} if area else None,
        "location": {
            "id": location.id,
            "name": location.name,
            "timeZone": location.time_zone,
            "addressCity": location.address_city,
            "addressState": location.address_state,
        } if location else None,
    }
