"""Exceptions raised by the reminder and delivery services."""


class ReminderError(Exception):
    """Base class for reminder subsystem errors."""


class DeviceTokenError(ReminderError):
    """A device registration was rejected before reaching the store."""


class TransportError(ReminderError):
    """A push or text-message transport refused or failed a delivery.

    ``invalid_token`` is set when the provider reports the destination itself
    is dead, so the caller can deactivate it.
    """

    def __init__(self, message: str, code: str | None = None, invalid_token: bool = False):
        super().__init__(message)
        self.code = code
        self.invalid_token = invalid_token


class SmsLimitExceeded(ReminderError):
    """The user has used up their weekly text-message quota."""

    def __init__(self, user_id: str, count: int, limit: int):
        super().__init__(f"Weekly SMS limit reached for user {user_id} ({count}/{limit})")
        self.user_id = user_id
        self.count = count
        self.limit = limit


class CourseNotFound(ReminderError):
    """A broadcast or diagnostic referenced a course the course store does not know."""

    def __init__(self, course_id: str):
        super().__init__(f"Course {course_id} not found")
        self.course_id = course_id
