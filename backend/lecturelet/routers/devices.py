"""Device registration API endpoints for push notifications."""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..errors import DeviceTokenError
from ..schemas.device import (
    DeviceCount,
    DeviceRegister,
    DeviceRegisterResponse,
    DeviceResponse,
    DeviceUnregisterResponse,
)
from ..services.device_registry import DeviceMetadata, DeviceRegistry, short_token
from .deps import get_current_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/devices", tags=["devices"])


@router.post("/register-device", response_model=DeviceRegisterResponse)
async def register_device(
    request: DeviceRegister,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Register a device for push notifications.

    If the token is already known, it is claimed for the caller and
    reactivated. The app should call this on every launch.
    """
    try:
        device = await DeviceRegistry(db).register(
            user_id,
            request.push_token,
            request.platform,
            DeviceMetadata(device_id=request.device_id, app_version=request.app_version),
        )
    except DeviceTokenError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return DeviceRegisterResponse(
        success=True,
        message="Device registered successfully",
        device=DeviceResponse.model_validate(device),
    )


@router.get("", response_model=List[DeviceResponse])
async def list_devices(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's active devices, most recently used first."""
    return await DeviceRegistry(db).list_devices(user_id)


@router.get("/count", response_model=DeviceCount)
async def get_device_count(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return DeviceCount(active=await DeviceRegistry(db).device_count(user_id))


@router.delete("", response_model=DeviceUnregisterResponse)
async def unregister_all_devices(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Deactivate every device of the caller, e.g. on logout everywhere."""
    count = await DeviceRegistry(db).deactivate_all(user_id)
    return DeviceUnregisterResponse(
        success=True,
        message=f"{count} devices unregistered",
        deactivated=count,
    )


@router.delete("/{device_token}", response_model=DeviceUnregisterResponse)
async def unregister_device(
    device_token: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Unregister a device from push notifications.

    This doesn't delete the record but marks it as inactive.
    """
    if not await DeviceRegistry(db).deactivate(device_token, user_id=user_id):
        raise HTTPException(status_code=404, detail="Device not found")

    logger.info(f"Device unregistered by user {user_id}: {short_token(device_token)}")
    return DeviceUnregisterResponse(
        success=True,
        message="Device unregistered successfully",
        deactivated=1,
    )
