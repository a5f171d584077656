"""
Location and area endpoints. New addresses are geocoded through the US Census geocoder.
"""
import re
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.dependencies import get_organization_id
from app.core.database import get_db
from app.models.db_models import Area, Location, Organization
from app.services.drivers.census_geocoding import geocode_address
from app.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/locations", tags=["locations"])


class LocationCreate(BaseModel):
    model_config = {"protected_namespaces": ()}

    name: str = Field(min_length=1)
    organization_id: Optional[str] = Field(default=None, alias="organizationId")
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    time_zone: str = Field(default="UTC", alias="timeZone")
    address_street: Optional[str] = Field(default=None, alias="addressStreet")
    address_city: Optional[str] = Field(default=None, alias="addressCity")
    address_state: Optional[str] = Field(default=None, alias="addressState")
    address_postal_code: Optional[str] = Field(default=None, alias="addressPostalCode")


class AreaCreate(BaseModel):
    model_config = {"protected_namespaces": ()}

    name: str = Field(min_length=1)


def serialize_location(location: Location) -> Dict[str, Any]:
    return {
        "id": location.id,
        "organizationId": location.organization_id,
        "parentId": location.parent_id,
        "name": location.name,
        "timeZone": location.time_zone,
        "addressStreet": location.address_street,
        "addressCity": location.address_city,
        "addressState": location.address_state,
        "addressPostalCode": location.address_postal_code,
        "latitude": location.latitude,
        "longitude": location.longitude,
        "createdAt": location.created_at.isoformat() if location.created_at else None,
    }


def serialize_area(area: Area) -> Dict[str, Any]:
    return {"id": area.id, "locationId": area.location_id, "name": area.name}


def _get_location(db: Session, location_id: str, organization_id: Optional[str]) -> Location:
    query = db.query(Location).filter(Location.id == location_id)
    if organization_id:
        query = query.filter(Location.organization_id == organization_id)
    location = query.first()
    if location is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Location not found"
        )
    return location


@router.get("")
async def list_locations(
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    query = db.query(Location)
    if organization_id:
        query = query.filter(Location.organization_id == organization_id)
    return {"success": True, "data": [serialize_location(loc) for loc in query.order_by(Location.name).all()]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_location(
    body: LocationCreate,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """
    Create a location.

    When a full address is given it is geocoded; a failed lookup leaves the
    coordinates empty and does not block creation.
    """
    try:
        target_org = body.organization_id or organization_id
        if not target_org:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="organizationId is required"
            )
        if db.query(Organization.id).filter(Organization.id == target_org).first() is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Organization not found"
            )
        if body.parent_id:
            _get_location(db, body.parent_id, target_org)

        location = Location(
            organization_id=target_org,
            parent_id=body.parent_id,
            name=body.name.strip(),
            time_zone=body.time_zone,
            address_street=body.address_street,
            address_city=body.address_city,
            address_state=body.address_state,
            address_postal_code=body.address_postal_code
        )

        if all([body.address_street, body.address_city, body.address_state, body.address_postal_code]):
            zip_code = re.sub(r"[^0-9-]", "", body.address_postal_code)
            geocoded = geocode_address(body.address_street, body.address_city, body.address_state, zip_code)
            if geocoded:
                location.latitude = geocoded["latitude"]
                location.longitude = geocoded["longitude"]
            else:
                logger.warning(f"Could not geocode address for location '{location.name}'")

        db.add(location)
        db.commit()
        db.refresh(location)
        logger.info(f"Created location '{location.name}' ({location.id})")
        return {"success": True, "data": serialize_location(location)}
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating location: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create location: {str(e)}"
        )


@router.get("/{location_id}/areas")
async def list_areas(
    location_id: str,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    location = _get_location(db, location_id, organization_id)
    areas = db.query(Area).filter(Area.location_id == location.id).order_by(Area.name).all()
    return {"success": True, "data": [serialize_area(a) for a in areas]}


@router.post("/{location_id}/areas", status_code=status.HTTP_201_CREATED)
async def create_area(
    location_id: str,
    body: AreaCreate,
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    location = _get_location(db, location_id, organization_id)
    area = Area(location_id=location.id, name=body.name.strip())
    db.add(area)
    db.commit()
    db.refresh(area)
    logger.info(f"Created area '{area.name}' in location {location.id}")
    return {"success": True, "data": serialize_area(area)}
