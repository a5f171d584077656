from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime
import uuid

from app.models.definitions import EventCategory, EventType


class StandardizedEventIn(BaseModel):
    """Standardized event pushed by a vendor webhook or listener."""
    model_config = {"protected_namespaces": (), "populate_by_name": True, "use_enum_values": True}

    event_uuid: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="eventUuid")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    connector_id: str = Field(alias="connectorId")
    device_id: str = Field(alias="deviceId", min_length=1)
    category: EventCategory = Field(alias="eventCategory")
    type: EventType = Field(alias="eventType")
    subtype: Optional[str] = Field(default=None, alias="eventSubtype")
    payload: Dict[str, Any] = Field(default_factory=dict)
    raw_payload: Optional[Dict[str, Any]] = Field(default=None, alias="rawPayload")
    raw_event_type: Optional[str] = Field(default=None, alias="rawEventType")
    best_shot_url_component: Optional[str] = Field(default=None, alias="bestShotUrlComponent")


class DeviceTypeInfoOut(BaseModel):
    model_config = {"protected_namespaces": ()}

    type: str
    subtype: Optional[str] = None


class EnrichedEvent(BaseModel):
    """Event joined with its device, connector and area/location for display."""
    model_config = {"protected_namespaces": (), "populate_by_name": True}

    id: int
    event_uuid: str = Field(serialization_alias="eventUuid")
    device_id: str = Field(serialization_alias="deviceId")
    device_name: Optional[str] = Field(default=None, serialization_alias="deviceName")
    connector_id: str = Field(serialization_alias="connectorId")
    connector_name: Optional[str] = Field(default=None, serialization_alias="connectorName")
    connector_category: Optional[str] = Field(default=None, serialization_alias="connectorCategory")
    timestamp: int  # epoch ms
    event_category: str = Field(serialization_alias="eventCategory")
    event_type: str = Field(serialization_alias="eventType")
    event_subtype: Optional[str] = Field(default=None, serialization_alias="eventSubtype")
    payload: Optional[Dict[str, Any]] = None
    raw_payload: Optional[Dict[str, Any]] = Field(default=None, serialization_alias="rawPayload")
    raw_event_type: Optional[str] = Field(default=None, serialization_alias="rawEventType")
    device_type_info: DeviceTypeInfoOut = Field(serialization_alias="deviceTypeInfo")
    display_state: Optional[str] = Field(default=None, serialization_alias="displayState")
    best_shot_url_component: Optional[str] = Field(default=None, serialization_alias="bestShotUrlComponent")
    area_id: Optional[str] = Field(default=None, serialization_alias="areaId")
    area_name: Optional[str] = Field(default=None, serialization_alias="areaName")
    location_id: Optional[str] = Field(default=None, serialization_alias="locationId")
    location_name: Optional[str] = Field(default=None, serialization_alias="locationName")


class PaginationInfo(BaseModel):
    model_config = {"protected_namespaces": (), "populate_by_name": True}

    items_per_page: int = Field(serialization_alias="itemsPerPage")
    current_page: int = Field(serialization_alias="currentPage")
    has_next_page: bool = Field(serialization_alias="hasNextPage")


class EventListResponse(BaseModel):
    """Response for listing events."""
    model_config = {"protected_namespaces": ()}

    success: bool = True
    data: List[EnrichedEvent]
    pagination: PaginationInfo


class HealthResponse(BaseModel):
    """Health check response."""
    model_config = {"protected_namespaces": ()}

    status: str
    database_connected: bool
    redis_connected: bool
    retention_scheduler_running: bool
