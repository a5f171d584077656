"""
Connector API endpoints (CRUD and connection tests).
"""
import json
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from app.api.dependencies import get_organization_id
from app.core.database import get_db
from app.core.exceptions import ConnectorConfigError, YoLinkApiError
from app.models.connector_models import (
    CONFIG_MODELS,
    ConnectorCreate,
    ConnectorResponse,
    ConnectorUpdate,
    GeneaConfig,
    PikoConfig,
    YoLinkConfig,
)
from app.models.db_models import Connector, Organization
from app.services.connector_config import dump_config, load_connector_config, parse_raw_config, store_connector_config
from app.services.drivers import genea
from app.services.drivers.piko import PikoClient
from app.services.drivers.yolink import YoLinkClient
from app.services.event_streams import event_stream_registry
from app.services.service_configurations import mask_config
from app.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/connectors", tags=["connectors"])


def serialize_connector(connector: Connector) -> Dict[str, Any]:
    try:
        config = mask_config(parse_raw_config(connector))
    except ConnectorConfigError:
        config = {}
    return ConnectorResponse(
        id=connector.id,
        category=connector.category,
        name=connector.name,
        organization_id=connector.organization_id,
        events_enabled=bool(connector.events_enabled),
        created_at=connector.created_at,
        config=config
    ).model_dump(by_alias=True, mode="json")


def _validate_config(category: str, config: Dict[str, Any]) -> Optional[BaseModel]:
    """Validate a config against its vendor model; categories without a model are stored as given."""
    model = CONFIG_MODELS.get(category)
    if model is None:
        return None
    try:
        return model.model_validate(config)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {category} configuration: {fields}"
        )


def _prepare_yolink_config(config: YoLinkConfig) -> YoLinkConfig:
    """Obtain a token and the home id for new YoLink credentials."""
    client = YoLinkClient(config)
    try:
        client.get_access_token()
        home_id = client.get_home_info()
    except YoLinkApiError as e:
        logger.error(f"YoLink connector validation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"YoLink API Error: {e}"
        )
    client.config.home_id = home_id
    logger.info(f"YoLink credentials verified, home id {home_id}")
    return client.config


def _get_connector(db: Session, connector_id: str, organization_id: Optional[str]) -> Connector:
    query = db.query(Connector).filter(Connector.id == connector_id)
    if organization_id:
        query = query.filter(Connector.organization_id == organization_id)
    connector = query.first()
    if connector is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Connector not found"
        )
    return connector


@router.get("")
async def list_connectors(
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """List connectors of the active organization."""
    try:
        query = db.query(Connector)
        if organization_id:
            query = query.filter(Connector.organization_id == organization_id)
        connectors = query.order_by(Connector.name).all()
        return {"success": True, "data": [serialize_connector(c) for c in connectors]}
    except Exception as e:
        logger.error(f"Error fetching connectors: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch connectors: {str(e)}"
        )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_connector(
    body: ConnectorCreate,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """
    Create a connector.

    YoLink credentials are verified against the YoLink API first; the issued
    tokens and the home id are stored with the config.
    """
    try:
        target_org = body.organization_id or organization_id
        if target_org and db.query(Organization.id).filter(Organization.id == target_org).first() is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Organization not found"
            )

        validated = _validate_config(body.category, body.config)
        if isinstance(validated, YoLinkConfig):
            validated = _prepare_yolink_config(validated)

        name = (body.name or "").strip() or f"{body.category}-{int(time.time() * 1000)}"
        connector = Connector(
            organization_id=target_org,
            category=body.category,
            name=name,
            cfg_enc=dump_config(validated) if validated is not None else json.dumps(body.config),
            events_enabled=body.events_enabled
        )
        db.add(connector)
        db.commit()
        db.refresh(connector)

        logger.info(f"Created {connector.category} connector '{connector.name}' ({connector.id})")
        return {"success": True, "data": serialize_connector(connector)}
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating connector: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create connector: {str(e)}"
        )


@router.get("/{connector_id}")
async def get_connector(
    connector_id: str,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    connector = _get_connector(db, connector_id, organization_id)
    return {"success": True, "data": serialize_connector(connector)}


@router.put("/{connector_id}")
async def update_connector(
    connector_id: str,
    body: ConnectorUpdate,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """
    Update a connector's name, config or event flag.

    The submitted config is merged over the stored one, so cached tokens
    survive a credentials edit unless they are overwritten explicitly.
    """
    try:
        connector = _get_connector(db, connector_id, organization_id)

        if body.name is not None:
            if not body.name.strip():
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Connector name cannot be empty"
                )
            connector.name = body.name.strip()

        if body.config is not None:
            try:
                merged = {**parse_raw_config(connector), **body.config}
            except ConnectorConfigError:
                merged = dict(body.config)
            validated = _validate_config(connector.category, merged)
            connector.cfg_enc = dump_config(validated) if validated is not None else json.dumps(merged)

        if body.events_enabled is not None:
            connector.events_enabled = body.events_enabled

        db.commit()
        db.refresh(connector)
        logger.info(f"Updated connector {connector.id}")
        return {"success": True, "data": serialize_connector(connector)}
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating connector {connector_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update connector: {str(e)}"
        )


@router.delete("/{connector_id}")
async def delete_connector(
    connector_id: str,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """Delete a connector together with its devices and events."""
    try:
        connector = _get_connector(db, connector_id, organization_id)
        db.delete(connector)
        db.commit()
        event_stream_registry.forget(connector_id)
        logger.info(f"Deleted connector {connector_id}")
        return {"success": True, "data": {"id": connector_id}}
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting connector {connector_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete connector: {str(e)}"
        )


@router.post("/{connector_id}/test")
def test_connector(
    connector_id: str,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """Check that a connector's stored credentials still work."""
    connector = _get_connector(db, connector_id, organization_id)
    try:
        config = load_connector_config(connector)
    except ConnectorConfigError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    if isinstance(config, YoLinkConfig):
        client = YoLinkClient(config, connector.id)
        connected = client.test_connection()
        result = {"connected": connected, "message": "Connected to YoLink" if connected else "Failed to connect to YoLink"}
        if client.config_changed:
            store_connector_config(connector, client.config)
            db.commit()
    elif isinstance(config, PikoConfig):
        client = PikoClient(config, connector.id)
        result = client.test_connection()
        if client.config_changed:
            store_connector_config(connector, client.config)
            db.commit()
    elif isinstance(config, GeneaConfig):
        outcome = genea.test_connection(config)
        result = {"connected": outcome["success"], "message": outcome.get("message") or outcome.get("error")}
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Connection test not supported for {connector.category} connectors"
        )

    return {"success": True, "data": result}
