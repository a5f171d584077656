"""
Devices API endpoints: device listing and the device sync sweep.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_organization_id
from app.core.database import get_db
from app.models.db_models import Connector, Device
from app.services.device_sync import sync_organization_devices
from app.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/devices", tags=["devices"])


def serialize_device(device: Device, connector: Optional[Connector]) -> Dict[str, Any]:
    return {
        "id": device.id,
        "deviceId": device.device_id,
        "connectorId": device.connector_id,
        "connectorName": connector.name if connector else None,
        "connectorCategory": connector.category if connector else None,
        "name": device.name,
        "type": device.type,
        "deviceTypeInfo": {
            "type": device.standardized_device_type,
            "subtype": device.standardized_device_subtype,
        },
        "displayState": device.status,
        "isSecurityDevice": bool(device.is_security_device),
        "batteryPercentage": device.battery_percentage,
        "serverId": device.server_id,
        "vendor": device.vendor,
        "model": device.model,
        "url": device.url,
        "areaId": device.area_id,
        "locationId": device.location_id,
        "createdAt": device.created_at.isoformat() if device.created_at else None,
        "updatedAt": device.updated_at.isoformat() if device.updated_at else None,
    }


@router.get("")
async def list_devices(
    device_id: Optional[str] = Query(None, alias="deviceId", description="Internal device id"),
    count: bool = Query(False, description="Return only the number of matching devices"),
    connector_category: Optional[str] = Query(None, alias="connectorCategory"),
    device_type: Optional[str] = Query(None, alias="deviceType", description="Standardized device type"),
    device_status: Optional[str] = Query(None, alias="status", description="Display state"),
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """
    List devices of the active organization.

    With deviceId a single device is returned; with count=true only the
    number of devices matching the filters.
    """
    try:
        query = db.query(Device, Connector).join(Connector, Connector.id == Device.connector_id)
        if organization_id:
            query = query.filter(Connector.organization_id == organization_id)

        if device_id:
            row = query.filter(Device.id == device_id).first()
            if row is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Device not found"
                )
            return {"success": True, "data": serialize_device(*row)}

        if connector_category:
            query = query.filter(Connector.category == connector_category.lower())
        if device_type:
            query = query.filter(Device.standardized_device_type == device_type)
        if device_status:
            query = query.filter(Device.status == device_status)

        if count:
            return {"success": True, "count": query.count()}

        rows = query.order_by(Device.name).all()
        return {"success": True, "data": [serialize_device(device, connector) for device, connector in rows]}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching devices: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch devices: {str(e)}"
        )


@router.post("")
def sync_devices(
    organization_id: Optional[str] = Depends(get_organization_id),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """
    Sync devices from every connector of the active organization.

    Per-connector failures are reported in errors; the sweep itself only
    fails when the process around it breaks.
    """
    try:
        result = sync_organization_devices(db, organization_id)

        query = db.query(Device, Connector).join(Connector, Connector.id == Device.connector_id)
        if organization_id:
            query = query.filter(Connector.organization_id == organization_id)
        devices = [serialize_device(device, connector) for device, connector in query.order_by(Device.name).all()]

        body: Dict[str, Any] = {"success": True, "data": devices, "syncedCount": result.synced_count}
        if result.errors:
            body["errors"] = [error.model_dump(by_alias=True) for error in result.errors]
        return body
    except Exception as e:
        logger.error(f"Error syncing devices: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sync devices"
        )
