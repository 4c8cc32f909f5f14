"""Device registration schemas for API."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class DeviceRegister(BaseModel):
    """Schema for registering a device for push notifications."""
    push_token: str = Field(..., min_length=1)
    platform: str = Field(..., pattern="^(ios|android)$")
    device_id: Optional[str] = None
    app_version: Optional[str] = None


class DeviceResponse(BaseModel):
    """Schema for a registration in API responses."""
    id: int
    platform: str
    device_id: Optional[str] = None
    app_version: Optional[str] = None
    is_active: bool
    last_used_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class DeviceRegisterResponse(BaseModel):
    """Response after registering a device."""
    success: bool
    message: str
    device: DeviceResponse


class DeviceUnregisterResponse(BaseModel):
    """Response after deactivating one or more devices."""
    success: bool
    message: str
    deactivated: int = 0


class DeviceCount(BaseModel):
    active: int
