"""Seeding helpers and fakes shared by the tests."""
from datetime import datetime
from typing import Dict, List, Optional
from uuid import uuid4

from lecturelet.errors import TransportError
from lecturelet.models import Course, Enrollment, User
from lecturelet.services.push_sender import PushMessage


class FakeTransport:
    """Records every message; tokens listed in ``invalid`` are rejected as dead."""

    def __init__(self, platform: str, invalid: Optional[List[str]] = None):
        self.platform = platform
        self.invalid = set(invalid or [])
        self.failing: Dict[str, Exception] = {}
        self.sent: List[PushMessage] = []

    async def send(self, message: PushMessage) -> None:
        if message.token in self.invalid:
            raise TransportError("Unregistered", code="Unregistered", invalid_token=True)
        if message.token in self.failing:
            raise self.failing[message.token]
        self.sent.append(message)

    @property
    def tokens(self) -> List[str]:
        return [m.token for m in self.sent]


async def add_user(
    session,
    user_id: str,
    full_name: str = "Ama Mensah",
    notifications_enabled: bool = True,
    reminder_minutes: Optional[int] = 15,
    payment_status: bool = True,
    trial_end_date: Optional[datetime] = None,
    phone_number: Optional[str] = None,
    notification_sound: Optional[str] = None,
    push_token: Optional[str] = None,
) -> User:
    user = User(
        id=user_id,
        full_name=full_name,
        phone_number=phone_number,
        notifications_enabled=notifications_enabled,
        reminder_minutes=reminder_minutes,
        notification_sound=notification_sound,
        payment_status=payment_status,
        trial_end_date=trial_end_date,
        push_token=push_token,
    )
    session.add(user)
    await session.commit()
    return user


async def add_course(
    session,
    course_id: str,
    course_name: str = "Linear Algebra",
    days: Optional[List[str]] = None,
    start_time: str = "10:00 AM",
    end_time: str = "12:00 PM",
    venue: Optional[str] = "Hall A",
    day_times: Optional[dict] = None,
    course_code: Optional[str] = None,
    index_from: Optional[str] = None,
    index_to: Optional[str] = None,
) -> Course:
    course = Course(
        id=course_id,
        course_name=course_name,
        course_code=course_code,
        days=days if days is not None else ["Wednesday"],
        start_time=start_time,
        end_time=end_time,
        venue=venue,
        day_times=day_times,
        index_from=index_from,
        index_to=index_to,
    )
    session.add(course)
    await session.commit()
    return course


async def enroll(session, user_id: str, course_id: str) -> Enrollment:
    enrollment = Enrollment(id=str(uuid4()), user_id=user_id, course_id=course_id)
    session.add(enrollment)
    await session.commit()
    return enrollment
