"""Enrolled course schemas, consumed by client-mode devices."""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class EnrolledCourse(BaseModel):
    """A course with everything needed to compute its sessions."""
    id: str
    course_name: str
    course_code: Optional[str] = None
    days: List[str]
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    venue: Optional[str] = None
    day_times: Dict[str, dict] = Field(default_factory=dict)  # per-weekday start_time, end_time, venue
    index_from: Optional[str] = None
    index_to: Optional[str] = None

    class Config:
        from_attributes = True


class ReminderPreferences(BaseModel):
    notifications_enabled: bool
    reminder_minutes: Optional[int] = None
    notification_sound: Optional[str] = None


class MyCoursesResponse(BaseModel):
    courses: List[EnrolledCourse]
    preferences: ReminderPreferences
