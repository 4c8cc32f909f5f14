"""Reminder scan schemas for API."""
from datetime import datetime
from pydantic import BaseModel


class ScanResponse(BaseModel):
    """Counts from one reminder scan."""
    window_start: datetime
    window_end: datetime
    users: int
    due: int
    sent: int
    failed: int
    retried: int
    skipped: int
    errors: int

    class Config:
        from_attributes = True
