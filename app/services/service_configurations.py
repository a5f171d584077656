"""
Storage of third-party service credentials (Pushover, Pushcut, OpenAI, Linear, ...).
"""
import json
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from app.core.exceptions import ConnectorConfigError
from app.models.db_models import ServiceConfiguration
from app.models.service_models import SERVICE_CONFIG_MODELS
from app.utils.logger import get_logger

logger = get_logger(__name__)

SERVICE_TYPES = ["PUSHOVER", "PUSHCUT", "OPENWEATHER", "OPENAI", "LINEAR", "RESEND"]


def normalize_service_type(service_type: str) -> Optional[str]:
    """Return the canonical upper-case type, or None if unknown."""
    value = (service_type or "").upper()
    return value if value in SERVICE_TYPES else None


def get_service_configuration(db: Session, service_type: str) -> Optional[ServiceConfiguration]:
    return db.query(ServiceConfiguration).filter(ServiceConfiguration.type == service_type.upper()).first()


def load_service_config(db: Session, service_type: str) -> Tuple[Optional[BaseModel], bool]:
    """
    Load and validate a service's stored config.

    Returns:
        (config model or None when not configured, is_enabled)

    Raises:
        ConnectorConfigError: If the stored config is malformed
    """
    row = get_service_configuration(db, service_type)
    if row is None:
        return None, False
    model = SERVICE_CONFIG_MODELS[service_type.lower()]
    try:
        return model.model_validate(json.loads(row.config_enc or "{}")), bool(row.is_enabled)
    except (ValueError, ValidationError) as e:
        raise ConnectorConfigError(f"Stored {service_type.upper()} configuration is invalid") from e


def save_service_config(db: Session, service_type: str, config: Dict[str, Any], is_enabled: bool) -> ServiceConfiguration:
    """
    Validate and upsert a service configuration (caller commits).

    Raises:
        pydantic.ValidationError: If the config does not match the service's model
    """
    model = SERVICE_CONFIG_MODELS[service_type.lower()]
    validated = model.model_validate(config)

    row = get_service_configuration(db, service_type)
    if row is None:
        row = ServiceConfiguration(type=service_type.upper())
        db.add(row)
    row.config_enc = json.dumps(validated.model_dump(by_alias=True, exclude_none=True))
    row.is_enabled = is_enabled
    logger.info(f"Saved {service_type.upper()} service configuration (enabled={is_enabled})")
    return row


def mask_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Hide credential values (keys, tokens, secrets, passwords) for API output."""
    masked = {}
    for key, value in config.items():
        sensitive = any(s in key.lower() for s in ("key", "token", "secret", "password"))
        if sensitive and isinstance(value, str):
            masked[key] = f"{value[:4]}****" if len(value) > 4 else "****"
        elif sensitive and isinstance(value, dict):
            masked[key] = "****"
        else:
            masked[key] = value
    return masked


def serialize_service_configuration(row: ServiceConfiguration) -> Dict[str, Any]:
    """API representation with credentials masked."""
    try:
        config = json.loads(row.config_enc or "{}")
    except ValueError:
        config = {}
    return {
        "id": row.id,
        "type": row.type,
        "isEnabled": bool(row.is_enabled),
        "config": mask_config(config) if isinstance(config, dict) else {},
        "updatedAt": row.updated_at,
    }


def list_service_configurations(db: Session) -> List[Dict[str, Any]]:
    rows = db.query(ServiceConfiguration).order_by(ServiceConfiguration.type).all()
    return [serialize_service_configuration(row) for row in rows]
