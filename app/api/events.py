"""
Events API endpoints: polling-friendly event listing and event ingestion.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import and_, desc, or_
from sqlalchemy.orm import Session

from app.api.dependencies import get_organization_id
from app.core.database import get_db
from app.models.db_models import Area, Connector, Device, Event, Location
from app.models.definitions import ALERT_DISPLAY_STATES, SECURITY_DEVICE_TYPES, DeviceType, EventCategory
from app.models.event_models import (
    DeviceTypeInfoOut,
    EnrichedEvent,
    EventListResponse,
    PaginationInfo,
    StandardizedEventIn,
)
from app.services.device_mapping import get_device_type_info
from app.services.event_processor import UnknownConnectorError, ingest_event
from app.utils.logger import get_logger
from app.utils.timestamps import to_epoch_ms, to_naive_utc

logger = get_logger(__name__)

router = APIRouter(prefix="/api/events", tags=["events"])

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500


def _split(value: Optional[str]) -> List[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def _like_pattern(value: str) -> str:
    """Turn a user filter into a LIKE pattern; '*' and '?' act as wildcards."""
    escaped = value.strip().replace("%", r"\%").replace("_", r"\_")
    if "*" in escaped or "?" in escaped:
        return escaped.replace("*", "%").replace("?", "_")
    return f"%{escaped}%"


def _base_query(db: Session):
    return (
        db.query(Event, Connector, Device, Area, Location)
        .outerjoin(Connector, Connector.id == Event.connector_id)
        .outerjoin(Device, and_(Device.connector_id == Event.connector_id, Device.device_id == Event.device_id))
        .outerjoin(Area, Area.id == Device.area_id)
        .outerjoin(Location, Location.id == Area.location_id)
    )


def _alarm_filter():
    """Security devices that changed into an alerting state, or analytics on security devices."""
    alert_states = [state.value for state in ALERT_DISPLAY_STATES]
    display_state = Event.standardized_payload["displayState"].as_string()
    return and_(
        Device.standardized_device_type.in_([t.value for t in SECURITY_DEVICE_TYPES]),
        or_(
            and_(
                Event.standardized_event_category == EventCategory.DEVICE_STATE.value,
                display_state.in_(alert_states)
            ),
            Event.standardized_event_category == EventCategory.ANALYTICS.value
        )
    )


def build_enriched_event(
    event: Event,
    connector: Optional[Connector],
    device: Optional[Device],
    area: Optional[Area] = None,
    location: Optional[Location] = None
) -> EnrichedEvent:
    """
    Join an event with its connector, device and area/location for display.

    Devices that were never synced fall back to Unmapped.
    """
    if device is not None and device.standardized_device_type:
        type_info = DeviceTypeInfoOut(type=device.standardized_device_type, subtype=device.standardized_device_subtype)
    elif device is not None:
        mapped = get_device_type_info(connector.category if connector else None, device.type)
        type_info = DeviceTypeInfoOut(type=mapped.type, subtype=mapped.subtype)
    else:
        type_info = DeviceTypeInfoOut(type=DeviceType.UNMAPPED.value)

    payload = event.standardized_payload if isinstance(event.standardized_payload, dict) else None
    location_id = location.id if location else (device.location_id if device else None)

    return EnrichedEvent(
        id=event.id,
        event_uuid=event.event_uuid,
        device_id=event.device_id,
        device_name=device.name if device else None,
        connector_id=event.connector_id,
        connector_name=connector.name if connector else None,
        connector_category=connector.category if connector else None,
        timestamp=to_epoch_ms(event.timestamp),
        event_category=event.standardized_event_category,
        event_type=event.standardized_event_type,
        event_subtype=event.standardized_event_subtype,
        payload=payload,
        raw_payload=event.raw_payload if isinstance(event.raw_payload, dict) else None,
        raw_event_type=event.raw_event_type,
        device_type_info=type_info,
        display_state=payload.get("displayState") if payload else None,
        best_shot_url_component=event.best_shot_url_component,
        area_id=area.id if area else None,
        area_name=area.name if area else None,
        location_id=location_id,
        location_name=location.name if location else None,
    )


@router.get("", response_model=EventListResponse)
async def list_events(
    page: int = Query(1, ge=1, description="Page number (1-based)"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Items per page"),
    event_categories: Optional[str] = Query(None, alias="eventCategories", description="Comma-separated event categories"),
    connector_category: Optional[str] = Query(None, alias="connectorCategory", description="Connector category (yolink, piko, ...)"),
    location_id: Optional[str] = Query(None, alias="locationId"),
    space_id: Optional[str] = Query(None, alias="spaceId"),
    alarm_events_only: bool = Query(False, alias="alarmEventsOnly"),
    device_name_filter: Optional[str] = Query(None, alias="deviceNameFilter"),
    event_type_filter: Optional[str] = Query(None, alias="eventTypeFilter", description="Event type, '*' wildcards allowed"),
    device_type_filter: Optional[str] = Query(None, alias="deviceTypeFilter"),
    connector_name_filter: Optional[str] = Query(None, alias="connectorNameFilter"),
    time_start: Optional[datetime] = Query(None, alias="timeStart", description="Start timestamp (ISO format)"),
    time_end: Optional[datetime] = Query(None, alias="timeEnd", description="End timestamp (ISO format)"),
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> EventListResponse:
    """
    List events newest first with filtering and pagination.

    One extra row is fetched to decide hasNextPage, so the flag is true
    exactly when the next page would not be empty.
    """
    try:
        query = _base_query(db)

        filters = []
        if organization_id:
            filters.append(Connector.organization_id == organization_id)
        categories = _split(event_categories)
        if categories:
            filters.append(Event.standardized_event_category.in_(categories))
        if connector_category and connector_category.lower() != "all":
            filters.append(Connector.category == connector_category.lower())
        if location_id:
            filters.append(or_(Location.id == location_id, Device.location_id == location_id))
        if space_id:
            filters.append(Device.area_id == space_id)
        if device_name_filter:
            filters.append(Device.name.ilike(_like_pattern(device_name_filter), escape="\\"))
        if event_type_filter:
            filters.append(Event.standardized_event_type.ilike(_like_pattern(event_type_filter), escape="\\"))
        if device_type_filter:
            filters.append(Device.standardized_device_type == device_type_filter)
        if connector_name_filter:
            filters.append(Connector.name.ilike(_like_pattern(connector_name_filter), escape="\\"))
        if time_start:
            filters.append(Event.timestamp >= to_naive_utc(time_start))
        if time_end:
            filters.append(Event.timestamp <= to_naive_utc(time_end))
        if alarm_events_only:
            filters.append(_alarm_filter())

        if filters:
            logger.debug(f"Applying {len(filters)} filters to event query")
            query = query.filter(and_(*filters))

        offset = (page - 1) * limit
        rows = query.order_by(desc(Event.timestamp), desc(Event.id)).offset(offset).limit(limit + 1).all()

        has_next_page = len(rows) > limit
        data = [build_enriched_event(*row) for row in rows[:limit]]

        return EventListResponse(
            data=data,
            pagination=PaginationInfo(items_per_page=limit, current_page=page, has_next_page=has_next_page)
        )
    except Exception as e:
        logger.error(f"Error fetching events: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch events: {str(e)}"
        )


@router.get("/{event_uuid}")
async def get_event(
    event_uuid: str,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """Get a single enriched event by its uuid."""
    try:
        query = _base_query(db).filter(Event.event_uuid == event_uuid)
        if organization_id:
            query = query.filter(Connector.organization_id == organization_id)
        row = query.first()
        if row is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Event {event_uuid} not found"
            )
        return {"success": True, "data": build_enriched_event(*row).model_dump(by_alias=True)}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching event {event_uuid}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch event: {str(e)}"
        )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_event(
    incoming: StandardizedEventIn,
    response: Response,
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """
    Ingest a standardized event.

    A repeated eventUuid returns the stored event with created=false and
    runs no automations.
    """
    try:
        event, created = ingest_event(db, incoming)
        if not created:
            response.status_code = status.HTTP_200_OK
        connector = db.query(Connector).filter(Connector.id == event.connector_id).first()
        device = db.query(Device).filter(
            Device.connector_id == event.connector_id,
            Device.device_id == event.device_id
        ).first()
        area = db.query(Area).filter(Area.id == device.area_id).first() if device and device.area_id else None
        location = db.query(Location).filter(Location.id == area.location_id).first() if area else None

        return {
            "success": True,
            "created": created,
            "data": build_enriched_event(event, connector, device, area, location).model_dump(by_alias=True),
        }
    except UnknownConnectorError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"Error ingesting event: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to ingest event: {str(e)}"
        )
