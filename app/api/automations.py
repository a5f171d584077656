"""
Automation API endpoints (CRUD).
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_organization_id
from app.core.database import get_db
from app.models.automation_models import AutomationConfig, AutomationCreate, AutomationUpdate
from app.models.db_models import Automation, Connector
from app.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/automations", tags=["automations"])


def serialize_automation(automation: Automation) -> Dict[str, Any]:
    return {
        "id": automation.id,
        "name": automation.name,
        "organizationId": automation.organization_id,
        "sourceConnectorId": automation.source_connector_id,
        "enabled": bool(automation.enabled),
        "configJson": automation.config_json,
        "createdAt": automation.created_at.isoformat() if automation.created_at else None,
        "updatedAt": automation.updated_at.isoformat() if automation.updated_at else None,
    }


def _dump_config(config: AutomationConfig) -> Dict[str, Any]:
    return config.model_dump(by_alias=True, exclude_none=True)


def _check_connector(db: Session, connector_id: str, organization_id: Optional[str]) -> Connector:
    query = db.query(Connector).filter(Connector.id == connector_id)
    if organization_id:
        query = query.filter(Connector.organization_id == organization_id)
    connector = query.first()
    if connector is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Source connector not found"
        )
    return connector


def _get_automation(db: Session, automation_id: str, organization_id: Optional[str]) -> Automation:
    query = db.query(Automation).filter(Automation.id == automation_id)
    if organization_id:
        query = query.filter(Automation.organization_id == organization_id)
    automation = query.first()
    if automation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Automation not found"
        )
    return automation


@router.get("")
async def list_automations(
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """List automations of the active organization."""
    try:
        query = db.query(Automation)
        if organization_id:
            query = query.filter(Automation.organization_id == organization_id)
        automations = query.order_by(Automation.name).all()
        return {"success": True, "data": [serialize_automation(a) for a in automations]}
    except Exception as e:
        logger.error(f"Error fetching automations: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch automations: {str(e)}"
        )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_automation(
    body: AutomationCreate,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    try:
        connector = _check_connector(db, body.source_connector_id, organization_id)
        automation = Automation(
            organization_id=body.organization_id or organization_id or connector.organization_id,
            name=body.name.strip(),
            source_connector_id=connector.id,
            enabled=body.enabled,
            config_json=_dump_config(body.config)
        )
        db.add(automation)
        db.commit()
        db.refresh(automation)
        logger.info(f"Created automation '{automation.name}' ({automation.id})")
        return {"success": True, "data": serialize_automation(automation)}
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating automation: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create automation: {str(e)}"
        )


@router.get("/{automation_id}")
async def get_automation(
    automation_id: str,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    automation = _get_automation(db, automation_id, organization_id)
    return {"success": True, "data": serialize_automation(automation)}


@router.put("/{automation_id}")
async def update_automation(
    automation_id: str,
    body: AutomationUpdate,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    try:
        automation = _get_automation(db, automation_id, organization_id)
        if body.name is not None:
            automation.name = body.name.strip()
        if body.source_connector_id is not None:
            automation.source_connector_id = _check_connector(db, body.source_connector_id, organization_id).id
        if body.enabled is not None:
            automation.enabled = body.enabled
        if body.config is not None:
            automation.config_json = _dump_config(body.config)
        db.commit()
        db.refresh(automation)
        logger.info(f"Updated automation {automation.id}")
        return {"success": True, "data": serialize_automation(automation)}
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating automation {automation_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update automation: {str(e)}"
        )


@router.delete("/{automation_id}")
async def delete_automation(
    automation_id: str,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    try:
        automation = _get_automation(db, automation_id, organization_id)
        db.delete(automation)
        db.commit()
        logger.info(f"Deleted automation {automation_id}")
        return {"success": True, "data": {"id": automation_id}}
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting automation {automation_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete automation: {str(e)}"
        )

