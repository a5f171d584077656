"""
Third-party service configuration models (stored in service_configurations).
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

_CONFIG_MODEL = {"protected_namespaces": (), "populate_by_name": True, "extra": "allow"}


class PushoverConfig(BaseModel):
    model_config = _CONFIG_MODEL

    api_token: str = Field(alias="apiToken", min_length=1)
    group_key: str = Field(alias="groupKey", min_length=1)


class PushcutConfig(BaseModel):
    model_config = _CONFIG_MODEL

    api_key: str = Field(alias="apiKey", min_length=1)


class OpenAIConfig(BaseModel):
    model_config = _CONFIG_MODEL

    api_key: str = Field(alias="apiKey", min_length=1)
    model: str = "gpt-4o-mini"
    max_tokens: int = Field(default=2000, alias="maxTokens")
    temperature: float = 0.7
    top_p: float = Field(default=1.0, alias="topP")


class LinearConfig(BaseModel):
    model_config = _CONFIG_MODEL

    api_key: str = Field(alias="apiKey", min_length=1)
    team_id: Optional[str] = Field(default=None, alias="teamId")
    team_name: Optional[str] = Field(default=None, alias="teamName")


class OpenWeatherConfig(BaseModel):
    model_config = _CONFIG_MODEL

    api_key: str = Field(alias="apiKey", min_length=1)


class ResendConfig(BaseModel):
    model_config = _CONFIG_MODEL

    api_key: str = Field(alias="apiKey", min_length=1)
    from_email: Optional[str] = Field(default=None, alias="fromEmail")
    from_name: Optional[str] = Field(default=None, alias="fromName")


SERVICE_CONFIG_MODELS = {
    "pushover": PushoverConfig,
    "pushcut": PushcutConfig,
    "openai": OpenAIConfig,
    "linear": LinearConfig,
    "openweather": OpenWeatherConfig,
    "resend": ResendConfig,
}


class ServiceConfigurationUpdate(BaseModel):
    """Body of PUT /api/services/{type}."""
    model_config = {"protected_namespaces": ()}

    config: Dict[str, Any]
    is_enabled: bool = Field(default=True, alias="isEnabled")


class PushoverMessage(BaseModel):
    """Fully resolved Pushover message parameters."""
    model_config = {"protected_namespaces": (), "populate_by_name": True}

    message: str = Field(min_length=1)
    title: Optional[str] = None
    device: Optional[str] = None
    sound: Optional[str] = None
    timestamp: Optional[int] = None
    url: Optional[str] = None
    url_title: Optional[str] = Field(default=None, alias="urlTitle")
    ttl: Optional[int] = None
    html: Optional[int] = None
    monospace: Optional[int] = None
    priority: Optional[int] = Field(default=None, ge=-2, le=2)
    retry: Optional[int] = Field(default=None, ge=30)
    expire: Optional[int] = Field(default=None, le=10800)
    attachment_base64: Optional[str] = None
    attachment_type: Optional[str] = None
