"""Broadcast and text-message schemas for API."""
from typing import Optional
from pydantic import BaseModel, Field


class BroadcastRequest(BaseModel):
    """Schema for notifying every enrollee of a course."""
    course_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    type: str = "announcement"
    data: Optional[dict] = None
    send_sms: bool = False


class BroadcastResponse(BaseModel):
    """Counts from a broadcast."""
    in_app_count: int
    push_count: int
    push_sent: int
    push_failed: int
    sms_sent: int
    sms_refused: int
    sms_failed: int
    tokens_deactivated: int


class SmsQuota(BaseModel):
    """Weekly text-message usage for the current user."""
    used: int
    limit: int
    remaining: int
