"""
Connector configuration and request/response models.

Connector configs are persisted as camelCase JSON in connectors.cfg_enc; the
models accept either the stored aliases or snake_case names.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

_CONFIG_MODEL = {"protected_namespaces": (), "populate_by_name": True, "extra": "allow"}


class YoLinkConfig(BaseModel):
    """YoLink connector credentials and cached token state."""
    model_config = _CONFIG_MODEL

    uaid: str = Field(min_length=1)
    client_secret: str = Field(alias="clientSecret", min_length=1)
    access_token: Optional[str] = Field(default=None, alias="accessToken")
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    token_expires_at: Optional[int] = Field(default=None, alias="tokenExpiresAt")  # epoch ms
    scope: Optional[List[str]] = None
    home_id: Optional[str] = Field(default=None, alias="homeId")


class PikoConfig(BaseModel):
    """Piko connector configuration (cloud relay or direct local connection)."""
    model_config = _CONFIG_MODEL

    type: Literal["cloud", "local"] = "cloud"
    username: str
    password: str
    host: Optional[str] = None
    port: Optional[int] = None
    ignore_tls_errors: bool = Field(default=False, alias="ignoreTlsErrors")
    selected_system: Optional[str] = Field(default=None, alias="selectedSystem")
    token: Optional[Dict[str, Any]] = None


class GeneaConfig(BaseModel):
    """Genea connector configuration."""
    model_config = _CONFIG_MODEL

    api_key: str = Field(alias="apiKey", min_length=1)
    webhook_id: Optional[str] = Field(default=None, alias="webhookId")
    customer_uuid: Optional[str] = Field(default=None, alias="customerUuid")


CONFIG_MODELS = {
    "yolink": YoLinkConfig,
    "piko": PikoConfig,
    "genea": GeneaConfig,
}


class ConnectorCreate(BaseModel):
    """Body of POST /api/connectors."""
    model_config = {"protected_namespaces": ()}

    category: Literal["yolink", "piko", "genea", "netbox"]
    name: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    organization_id: Optional[str] = Field(default=None, alias="organizationId")
    events_enabled: bool = Field(default=False, alias="eventsEnabled")


class ConnectorUpdate(BaseModel):
    """Body of PUT /api/connectors/{id}. Omitted fields are left unchanged."""
    model_config = {"protected_namespaces": ()}

    name: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    events_enabled: Optional[bool] = Field(default=None, alias="eventsEnabled")


class ConnectorResponse(BaseModel):
    model_config = {"protected_namespaces": (), "populate_by_name": True}

    id: str
    category: str
    name: str
    organization_id: Optional[str] = Field(default=None, serialization_alias="organizationId")
    events_enabled: bool = Field(serialization_alias="eventsEnabled")
    created_at: datetime = Field(serialization_alias="createdAt")
    config: Dict[str, Any] = Field(default_factory=dict)


class ToggleRequest(BaseModel):
    """Body of the MQTT/WebSocket event stream toggles."""
    model_config = {"protected_namespaces": ()}

    disabled: bool
    connector_id: str = Field(alias="connectorId")


class ConnectorOrganizationUpdate(BaseModel):
    model_config = {"protected_namespaces": ()}

    organization_id: Optional[str] = Field(default=None, alias="organizationId")
