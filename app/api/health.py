"""
Health check endpoint.
"""
from fastapi import APIRouter

from app.core.database import check_db_connection
from app.core.redis_client import redis_client
from app.models.event_models import HealthResponse
from app.services.retention_scheduler import retention_scheduler

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Redis counts only when it is enabled; a disabled Redis does not degrade
    the service.

    Returns:
        Health status of the service
    """
    database_connected = check_db_connection()
    redis_connected = redis_client.health_check()

    healthy = database_connected and (redis_connected or not redis_client.enabled)
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        database_connected=database_connected,
        redis_connected=redis_connected,
        retention_scheduler_running=retention_scheduler.running
    )
