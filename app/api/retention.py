"""
Event retention management endpoints.
"""
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.dependencies import get_organization_id
from app.core.database import get_db
from app.models.db_models import Organization
from app.services.retention import retention_service
from app.services.retention_scheduler import retention_scheduler
from app.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/retention", tags=["retention"])


class RetentionPolicyUpdate(BaseModel):
    model_config = {"protected_namespaces": ()}

    strategy: Literal["time", "count", "hybrid"]
    max_age_in_days: Optional[int] = Field(default=None, ge=1, alias="maxAgeInDays")
    max_events: Optional[int] = Field(default=None, ge=1, alias="maxEvents")


def _no_cache(response: Response):
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"


@router.get("/stats")
async def get_retention_stats(
    response: Response,
    organization_id: Optional[str] = Depends(get_organization_id)
) -> Dict[str, Any]:
    """
    Get retention statistics, for the active organization or all of them.

    Returns:
        Event counts, age range and per-organization policies
    """
    _no_cache(response)

    try:
        stats = retention_service.get_retention_stats(organization_id)
        logger.info(f"Retrieved retention stats for {len(stats['organizations'])} organizations")
        return {"success": True, "data": stats}
    except Exception as e:
        logger.error(f"Error getting retention stats: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get retention stats: {str(e)}"
        )


@router.post("/cleanup")
async def trigger_retention_cleanup(
    response: Response,
    organization_id: Optional[str] = Depends(get_organization_id)
) -> Dict[str, Any]:
    """
    Manually run retention cleanup.

    With an active organization only that organization is cleaned up;
    otherwise every organization is.
    """
    _no_cache(response)

    try:
        if organization_id:
            logger.info(f"Manual retention cleanup triggered for organization {organization_id}")
            return {"success": True, "data": retention_service.cleanup_organization_events(organization_id)}

        logger.info("Manual retention cleanup triggered via API")
        results = retention_scheduler.run_cleanup_now()
        if "error" in results:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=results["error"]
            )
        return {"success": True, "data": results["summary"]}
    except LookupError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error during manual cleanup: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to run cleanup: {str(e)}"
        )


@router.get("/preview")
async def preview_retention_cleanup(
    response: Response,
    organization_id: Optional[str] = Depends(get_organization_id)
) -> Dict[str, Any]:
    """Estimate how many events a cleanup of the active organization would delete."""
    _no_cache(response)

    if not organization_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Organization-Id header is required"
        )
    try:
        return {"success": True, "data": retention_service.preview_organization_cleanup(organization_id)}
    except LookupError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )


@router.get("/policy")
async def get_retention_policy(
    response: Response,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """Effective retention policy of the active organization."""
    _no_cache(response)

    if not organization_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Organization-Id header is required"
        )
    organization = db.query(Organization).filter(Organization.id == organization_id).first()
    if organization is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Organization {organization_id} not found"
        )
    return {"success": True, "data": retention_service.get_policy(organization)}


@router.put("/policy")
async def update_retention_policy(
    body: RetentionPolicyUpdate,
    response: Response,
    organization_id: Optional[str] = Depends(get_organization_id)
) -> Dict[str, Any]:
    """Set the retention policy of the active organization."""
    _no_cache(response)

    if not organization_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Organization-Id header is required"
        )
    try:
        policy = retention_service.update_policy(
            organization_id,
            body.strategy,
            max_age_days=body.max_age_in_days,
            max_events=body.max_events
        )
        return {"success": True, "data": policy}
    except LookupError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.get("/scheduler/status")
async def get_scheduler_status(response: Response) -> Dict[str, Any]:
    """
    Get retention scheduler status.

    Returns:
        Dictionary with scheduler status information
    """
    _no_cache(response)

    try:
        return {"success": True, "data": retention_scheduler.get_status()}
    except Exception as e:
        logger.error(f"Error getting scheduler status: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get scheduler status: {str(e)}"
        )


@router.post("/scheduler/start")
async def start_retention_scheduler(response: Response) -> Dict[str, Any]:
    _no_cache(response)

    try:
        if retention_scheduler.running:
            return {"success": True, "message": "Scheduler is already running", "data": retention_scheduler.get_status()}
        retention_scheduler.start()
        logger.info("Retention scheduler started via API")
        return {"success": True, "message": "Scheduler started successfully", "data": retention_scheduler.get_status()}
    except Exception as e:
        logger.error(f"Error starting scheduler: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to start scheduler: {str(e)}"
        )


@router.post("/scheduler/stop")
async def stop_retention_scheduler(response: Response) -> Dict[str, Any]:
    _no_cache(response)

    try:
        if not retention_scheduler.running:
            return {"success": True, "message": "Scheduler is not running", "data": retention_scheduler.get_status()}
        retention_scheduler.stop()
        logger.info("Retention scheduler stopped via API")
        return {"success": True, "message": "Scheduler stopped successfully", "data": retention_scheduler.get_status()}
    except Exception as e:
        logger.error(f"Error stopping scheduler: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to stop scheduler: {str(e)}"
        )
