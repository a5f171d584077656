"""
Request scoping shared by the routers.
"""
from typing import Optional

from fastapi import Header, HTTPException, status


async def get_organization_id(
    x_organization_id: Optional[str] = Header(None, alias="X-Organization-Id")
) -> Optional[str]:
    """Active organization of the caller; None means all organizations."""
    if x_organization_id is not None and not x_organization_id.strip():
        return None
    return x_organization_id


async def require_admin(
    x_user_role: Optional[str] = Header(None, alias="X-User-Role")
) -> str:
    if (x_user_role or "").lower() != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return x_user_role
