"""
Admin API endpoints: cross-organization connector management and automation config migration.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.api.connectors import serialize_connector
from app.api.dependencies import require_admin
from app.core.database import get_db
from app.models.automation_models import AutomationConfig
from app.models.connector_models import ConnectorOrganizationUpdate
from app.models.db_models import Automation, Connector, Organization
from app.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])

LEGACY_TRIGGER_KEYS = ("sourceEntityTypes", "eventTypeFilter")


def migrate_automation_config(config: Any) -> Dict[str, Any]:
    """
    Move legacy top-level trigger keys under "trigger".

    Returns:
        The migrated config dict

    Raises:
        ValueError: If the config is not an object
    """
    if not isinstance(config, dict):
        raise ValueError("Automation config is not an object")
    migrated = dict(config)
    trigger = dict(migrated.get("trigger") or {})
    for key in LEGACY_TRIGGER_KEYS:
        if key in migrated:
            trigger.setdefault(key, migrated.pop(key))
    trigger.setdefault("eventTypeFilter", "")
    migrated["trigger"] = trigger
    return migrated


@router.get("/connectors")
async def list_all_connectors(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """List the connectors of every organization."""
    try:
        rows = (
            db.query(Connector, Organization)
            .outerjoin(Organization, Organization.id == Connector.organization_id)
            .order_by(Connector.name)
            .all()
        )
        data = []
        for connector, organization in rows:
            item = serialize_connector(connector)
            item["organization"] = (
                {"id": organization.id, "name": organization.name, "slug": organization.slug}
                if organization else None
            )
            data.append(item)
        return {"success": True, "data": data}
    except Exception as e:
        logger.error(f"Error fetching connectors for admin: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch connectors: {str(e)}"
        )


@router.patch("/connectors/{connector_id}/organization")
async def move_connector(
    connector_id: str,
    body: ConnectorOrganizationUpdate,
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """Move a connector to another organization."""
    try:
        if not body.organization_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="organizationId is required"
            )

        organization = db.query(Organization).filter(Organization.id == body.organization_id).first()
        if organization is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Target organization not found"
            )

        connector = db.query(Connector).filter(Connector.id == connector_id).first()
        if connector is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Connector not found"
            )

        previous = connector.organization_id
        connector.organization_id = organization.id
        db.commit()
        db.refresh(connector)
        logger.info(f"Moved connector {connector.id} from organization {previous} to {organization.id}")

        return {
            "success": True,
            "data": serialize_connector(connector),
            "message": f"Connector moved to organization: {organization.name}",
        }
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error moving connector {connector_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to move connector: {str(e)}"
        )


@router.post("/trigger-migration")
async def trigger_migration(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    Rewrite legacy automation configs into the current schema.

    Configs that already validate are skipped; configs that still fail after
    migration are left untouched and reported.
    """
    migrated = 0
    skipped = 0
    error_details = []

    try:
        for automation in db.query(Automation).order_by(Automation.name).all():
            try:
                AutomationConfig.model_validate(automation.config_json)
                skipped += 1
                continue
            except ValidationError:
                pass

            try:
                candidate = migrate_automation_config(automation.config_json)
                config = AutomationConfig.model_validate(candidate)
            except (ValueError, ValidationError) as e:
                logger.warning(f"[Migration] Automation {automation.id} could not be migrated: {e}")
                error_details.append({"automationId": automation.id, "name": automation.name, "error": str(e)})
                continue

            automation.config_json = config.model_dump(by_alias=True, exclude_none=True)
            migrated += 1

        db.commit()
        logger.info(f"[Migration] Automations migrated={migrated}, skipped={skipped}, errors={len(error_details)}")
        return {
            "success": True,
            "message": f"Migration completed: {migrated} migrated, {skipped} skipped, {len(error_details)} errors",
            "migrated": migrated,
            "skipped": skipped,
            "errors": len(error_details),
            "errorDetails": error_details,
        }
    except Exception as e:
        db.rollback()
        logger.error(f"Error running automation migration: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Migration failed: {str(e)}"
        )
