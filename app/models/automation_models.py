"""
Automation rule configuration schema.

config_json = {
    "trigger": {"sourceEntityTypes": [...], "eventTypeFilter": "..."},
    "actions": [{"type": "createEvent", "params": {...}}, ...]
}

Every string field ending in 'Template' may contain {{ tokens }}.
"""
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

_MODEL = {"protected_namespaces": (), "populate_by_name": True}


class AutomationTrigger(BaseModel):
    model_config = _MODEL

    source_entity_types: List[str] = Field(alias="sourceEntityTypes", min_length=1)
    event_type_filter: str = Field(default="", alias="eventTypeFilter")


class CreateEventParams(BaseModel):
    model_config = _MODEL

    source_template: str = Field(alias="sourceTemplate", min_length=1)
    caption_template: str = Field(alias="captionTemplate", min_length=1)
    description_template: str = Field(alias="descriptionTemplate", min_length=1)
    target_connector_id: str = Field(alias="targetConnectorId", min_length=1)


class CreateBookmarkParams(BaseModel):
    model_config = _MODEL

    name_template: str = Field(alias="nameTemplate", min_length=1)
    description_template: Optional[str] = Field(default=None, alias="descriptionTemplate")
    duration_ms_template: str = Field(alias="durationMsTemplate", min_length=1)
    tags_template: Optional[str] = Field(default=None, alias="tagsTemplate")
    target_connector_id: str = Field(alias="targetConnectorId", min_length=1)


class HttpHeader(BaseModel):
    model_config = _MODEL

    key_template: str = Field(alias="keyTemplate")
    value_template: str = Field(alias="valueTemplate")


class SendHttpRequestParams(BaseModel):
    model_config = _MODEL

    url_template: str = Field(alias="urlTemplate", min_length=1)
    method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"] = "GET"
    headers: List[HttpHeader] = Field(default_factory=list)
    content_type: Optional[str] = Field(default=None, alias="contentType")
    body_template: Optional[str] = Field(default=None, alias="bodyTemplate")


class SendPushNotificationParams(BaseModel):
    model_config = _MODEL

    title_template: Optional[str] = Field(default=None, alias="titleTemplate")
    message_template: str = Field(alias="messageTemplate", min_length=1)
    # '__all__' or empty sends to the configured group key
    target_user_key_template: Optional[str] = Field(default=None, alias="targetUserKeyTemplate")
    priority: int = Field(default=0, ge=-2, le=2)


class SetDeviceStateParams(BaseModel):
    model_config = _MODEL

    target_device_internal_id: str = Field(alias="targetDeviceInternalId", min_length=1)
    target_state: Literal["ON", "OFF"] = Field(alias="targetState")


class CreateEventAction(BaseModel):
    model_config = _MODEL

    type: Literal["createEvent"]
    params: CreateEventParams


class CreateBookmarkAction(BaseModel):
    model_config = _MODEL

    type: Literal["createBookmark"]
    params: CreateBookmarkParams


class SendHttpRequestAction(BaseModel):
    model_config = _MODEL

    type: Literal["sendHttpRequest"]
    params: SendHttpRequestParams


class SendPushNotificationAction(BaseModel):
    model_config = _MODEL

    type: Literal["sendPushNotification"]
    params: SendPushNotificationParams


class SetDeviceStateAction(BaseModel):
    model_config = _MODEL

    type: Literal["setDeviceState"]
    params: SetDeviceStateParams


AutomationAction = Annotated[
    Union[
        CreateEventAction,
        CreateBookmarkAction,
        SendHttpRequestAction,
        SendPushNotificationAction,
        SetDeviceStateAction,
    ],
    Field(discriminator="type"),
]


class AutomationConfig(BaseModel):
    model_config = _MODEL

    trigger: AutomationTrigger
    actions: List[AutomationAction] = Field(min_length=1)


class AutomationCreate(BaseModel):
    """Body of POST /api/automations."""
    model_config = {"protected_namespaces": ()}

    name: str = Field(min_length=1)
    source_connector_id: str = Field(alias="sourceConnectorId")
    organization_id: Optional[str] = Field(default=None, alias="organizationId")
    enabled: bool = True
    config: AutomationConfig


class AutomationUpdate(BaseModel):
    """Body of PUT /api/automations/{id}. Omitted fields are left unchanged."""
    model_config = {"protected_namespaces": ()}

    name: Optional[str] = Field(default=None, min_length=1)
    source_connector_id: Optional[str] = Field(default=None, alias="sourceConnectorId")
    enabled: Optional[bool] = None
    config: Optional[AutomationConfig] = None
