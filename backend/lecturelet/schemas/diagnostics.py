"""Notification diagnostics schemas for API."""
from typing import Dict, List, Optional
from pydantic import BaseModel


class EnrolleeDiagnosisResponse(BaseModel):
    user_id: str
    full_name: str
    active_access: bool
    notifications_enabled: bool
    device_count: int
    has_legacy_token: bool
    would_receive_push: bool
    blocking_issues: List[str]


class CourseDiagnosticsResponse(BaseModel):
    """Eligibility report for one course."""
    course_id: str
    course_name: str
    course_code: Optional[str] = None
    stats: Dict[str, int]
    issues: Dict[str, List[str]]
    enrollees: List[EnrolleeDiagnosisResponse]
