"""
Event stream toggles: enable or disable the YoLink MQTT and Piko WebSocket listeners of a connector.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_organization_id
from app.core.database import get_db
from app.core.exceptions import ConnectorConfigError
from app.models.connector_models import ToggleRequest
from app.models.db_models import Connector
from app.services.connector_config import parse_raw_config
from app.services.event_streams import event_stream_registry
from app.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["event-streams"])


def _toggle(db: Session, body: ToggleRequest, organization_id: Optional[str], category: str, label: str) -> Connector:
    query = db.query(Connector).filter(Connector.id == body.connector_id)
    if organization_id:
        query = query.filter(Connector.organization_id == organization_id)
    connector = query.first()
    if connector is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Connector not found"
        )
    if connector.category != category:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Selected connector is not a {label} connector"
        )

    connector.events_enabled = not body.disabled
    db.commit()
    logger.info(f"{label} events for connector {connector.id} {'disabled' if body.disabled else 'enabled'}")
    return connector


@router.post("/mqtt-toggle")
async def toggle_mqtt(
    body: ToggleRequest,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """Enable or disable the YoLink MQTT listener of a connector."""
    try:
        connector = _toggle(db, body, organization_id, "yolink", "YoLink")
        try:
            home_id = parse_raw_config(connector).get("homeId")
        except ConnectorConfigError:
            home_id = None
        state = event_stream_registry.set_enabled("mqtt", connector.id, not body.disabled)
        return {
            "success": True,
            "disabled": body.disabled,
            "connectorId": connector.id,
            "homeId": home_id,
            "mqttState": state,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error toggling MQTT for connector {body.connector_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to toggle MQTT: {str(e)}"
        )


@router.post("/websocket-toggle")
async def toggle_websocket(
    body: ToggleRequest,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """Enable or disable the Piko WebSocket listener of a connector."""
    try:
        connector = _toggle(db, body, organization_id, "piko", "Piko")
        state = event_stream_registry.set_enabled("websocket", connector.id, not body.disabled)
        return {
            "success": True,
            "disabled": body.disabled,
            "connectorId": connector.id,
            "websocketState": state,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error toggling WebSocket for connector {body.connector_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to toggle WebSocket: {str(e)}"
        )
