"""Pydantic schemas for API request/response models."""
from .device import (
    DeviceRegister,
    DeviceResponse,
    DeviceRegisterResponse,
    DeviceUnregisterResponse,
    DeviceCount,
)
from .notification import (
    BroadcastRequest,
    BroadcastResponse,
    SmsQuota,
)
from .diagnostics import (
    EnrolleeDiagnosisResponse,
    CourseDiagnosticsResponse,
)
from .enrollment import (
    EnrolledCourse,
    ReminderPreferences,
    MyCoursesResponse,
)
from .reminder import ScanResponse

__all__ = [
    "DeviceRegister",
    "DeviceResponse",
    "DeviceRegisterResponse",
    "DeviceUnregisterResponse",
    "DeviceCount",
    "BroadcastRequest",
    "BroadcastResponse",
    "SmsQuota",
    "EnrolleeDiagnosisResponse",
    "CourseDiagnosticsResponse",
    "EnrolledCourse",
    "ReminderPreferences",
    "MyCoursesResponse",
    "ScanResponse",
]
