"""Database models."""
from .device_registration import DeviceRegistration
from .sms_log import SmsSendLog
from .reminder_delivery import ReminderDelivery
from .notification import Notification
from .user import User
from .course import Course, Enrollment

__all__ = [
    "DeviceRegistration",
    "SmsSendLog",
    "ReminderDelivery",
    "Notification",
    "User",
    "Course",
    "Enrollment",
]
