"""
Third-party service configuration endpoints and connection tests.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.exceptions import ConnectorConfigError, ServiceApiError
from app.models.service_models import PushoverMessage, ServiceConfigurationUpdate
from app.services.drivers import linear, openai, pushcut, pushover
from app.services.service_configurations import (
    SERVICE_TYPES,
    get_service_configuration,
    list_service_configurations,
    load_service_config,
    normalize_service_type,
    save_service_config,
    serialize_service_configuration,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(prefix="/api/services", tags=["services"])


class PushoverTestRequest(BaseModel):
    model_config = {"protected_namespaces": ()}

    message: str = "Test notification from Fusion Bridge"
    title: Optional[str] = "Fusion Bridge"
    user_key: Optional[str] = Field(default=None, alias="userKey")
    priority: Optional[int] = Field(default=None, ge=-2, le=1)


class PushcutTestRequest(BaseModel):
    model_config = {"protected_namespaces": ()}

    notification_name: str = Field(alias="notificationName", min_length=1)
    text: Optional[str] = "Test notification from Fusion Bridge"
    title: Optional[str] = None


def _require_config(db: Session, service_type: str):
    """Stored config of a service; 404 when it was never configured."""
    try:
        config, _ = load_service_config(db, service_type)
    except ConnectorConfigError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    if config is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{service_type.capitalize()} service is not configured"
        )
    return config


def _service_error(e: ServiceApiError) -> HTTPException:
    code = e.status_code if e.status_code and 400 <= e.status_code < 600 else status.HTTP_502_BAD_GATEWAY
    return HTTPException(status_code=code, detail=str(e))


@router.get("")
async def list_services(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """List stored service configurations (credentials masked)."""
    try:
        return {"success": True, "data": list_service_configurations(db), "supportedTypes": SERVICE_TYPES}
    except Exception as e:
        logger.error(f"Error fetching service configurations: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch service configurations: {str(e)}"
        )


# Pushover

@router.post("/pushover/test")
def test_pushover(
    body: Optional[PushoverTestRequest] = None,
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """Send a test notification to the configured group (or a given user key)."""
    config = _require_config(db, "pushover")
    body = body or PushoverTestRequest()
    try:
        result = pushover.send_notification(
            config.api_token,
            body.user_key or config.group_key,
            PushoverMessage(message=body.message, title=body.title, priority=body.priority)
        )
        return {"success": True, "data": result}
    except ServiceApiError as e:
        raise _service_error(e)


@router.get("/pushover/group")
async def get_pushover_group(db: Session = Depends(get_db)) -> Dict[str, Any]:
    config = _require_config(db, "pushover")
    try:
        return {"success": True, "data": pushover.get_group_info(config.api_token, config.group_key)}
    except ServiceApiError as e:
        raise _service_error(e)


@router.post("/pushover/validate-user")
def validate_pushover_user(
    user: str = Body(..., embed=True),
    device: Optional[str] = Body(None, embed=True),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    config = _require_config(db, "pushover")
    try:
        return {"success": True, "data": pushover.validate_user(config.api_token, user, device)}
    except ServiceApiError as e:
        raise _service_error(e)


# Pushcut

@router.post("/pushcut/test")
def test_pushcut(body: PushcutTestRequest, db: Session = Depends(get_db)) -> Dict[str, Any]:
    config = _require_config(db, "pushcut")
    params = {"text": body.text}
    if body.title:
        params["title"] = body.title
    try:
        return {"success": True, "data": pushcut.send_notification(config.api_key, body.notification_name, params)}
    except ServiceApiError as e:
        raise _service_error(e)


@router.get("/pushcut/devices")
def get_pushcut_devices(db: Session = Depends(get_db)) -> Dict[str, Any]:
    config = _require_config(db, "pushcut")
    try:
        return {"success": True, "data": pushcut.get_devices(config.api_key)}
    except ServiceApiError as e:
        raise _service_error(e)


@router.get("/pushcut/notifications")
def get_pushcut_notifications(db: Session = Depends(get_db)) -> Dict[str, Any]:
    config = _require_config(db, "pushcut")
    try:
        return {"success": True, "data": pushcut.get_notifications(config.api_key)}
    except ServiceApiError as e:
        raise _service_error(e)


# OpenAI

@router.post("/openai/test")
def test_openai(db: Session = Depends(get_db)) -> Dict[str, Any]:
    config = _require_config(db, "openai")
    result = openai.test_api_key(
        config.api_key,
        model=config.model,
        temperature=config.temperature,
        top_p=config.top_p
    )
    return {"success": bool(result.get("success")), "data": result}


# Linear

@router.post("/linear/test")
def test_linear(db: Session = Depends(get_db)) -> Dict[str, Any]:
    config = _require_config(db, "linear")
    result = linear.test_connection(config.api_key)
    return {"success": bool(result.get("success")), "data": result}


@router.get("/linear/issues")
def get_linear_issues(
    active_only: bool = Query(False, alias="activeOnly"),
    state_id: Optional[str] = Query(None, alias="stateId"),
    assignee_id: Optional[str] = Query(None, alias="assigneeId"),
    priority: Optional[int] = Query(None, ge=0, le=4),
    first: int = Query(50, ge=1, le=250),
    after: Optional[str] = Query(None),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """
    Issues of the configured Linear team.

    With LINEAR_USE_MOCK_DATA set, canned issues are returned and no
    configuration is required.
    """
    if settings.linear_use_mock_data:
        return {"success": True, "data": linear.get_issues("", active_only=active_only)}

    config = _require_config(db, "linear")
    try:
        data = linear.get_issues(
            config.api_key,
            team_id=config.team_id,
            active_only=active_only,
            state_id=state_id,
            assignee_id=assignee_id,
            priority=priority,
            first=first,
            after=after
        )
        return {"success": True, "data": data}
    except ServiceApiError as e:
        raise _service_error(e)


# Generic configuration

def _normalize_or_400(service_type: str) -> str:
    normalized = normalize_service_type(service_type)
    if normalized is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported service type: {service_type}"
        )
    return normalized


@router.get("/{service_type}")
async def get_service(service_type: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    normalized = _normalize_or_400(service_type)
    row = get_service_configuration(db, normalized)
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{normalized} service is not configured"
        )
    return {"success": True, "data": serialize_service_configuration(row)}


@router.put("/{service_type}")
async def update_service(
    service_type: str,
    body: ServiceConfigurationUpdate,
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """Create or replace a service configuration."""
    normalized = _normalize_or_400(service_type)
    try:
        row = save_service_config(db, normalized, body.config, body.is_enabled)
        db.commit()
        db.refresh(row)
        return {"success": True, "data": serialize_service_configuration(row)}
    except ValidationError as e:
        db.rollback()
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {normalized} configuration: {fields}"
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Error saving {normalized} configuration: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to save service configuration: {str(e)}"
        )
