"""Read-only access to the course/enrollment store and user records."""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Course, Enrollment, User
from ..utils.timeutils import to_naive_utc, utcnow
from .occurrences import CourseRecurrence, recurrence_from_mapping


@dataclass(frozen=True)
class Student:
    """The parts of a user record the reminder paths care about."""
    user_id: str
    full_name: Optional[str]
    phone_number: Optional[str]
    notifications_enabled: bool
    reminder_minutes: Optional[int]
    notification_sound: Optional[str]
    active_access: bool
    has_legacy_token: bool = False

    @property
    def display_name(self) -> str:
        return self.full_name or "Student"

    @property
    def eligible_for_push(self) -> bool:
        return self.active_access and self.notifications_enabled


def has_active_access(user: User, now: Optional[datetime] = None) -> bool:
    """Paid, or still inside the trial period."""
    if user.payment_status:
        return True
    if not user.trial_end_date:
        return False
    now = to_naive_utc(now) if now else utcnow()
    return now < to_naive_utc(user.trial_end_date)


def student_from_user(user: User, now: Optional[datetime] = None) -> Student:
    return Student(
        user_id=user.id,
        full_name=user.full_name,
        phone_number=user.phone_number,
        notifications_enabled=bool(user.notifications_enabled),
        reminder_minutes=user.reminder_minutes,
        notification_sound=user.notification_sound,
        active_access=has_active_access(user, now),
        has_legacy_token=bool(user.push_token),
    )


def recurrence_from_course(course: Course) -> CourseRecurrence:
    return recurrence_from_mapping({
        "id": course.id,
        "course_name": course.course_name,
        "days": course.days or [],
        "start_time": course.start_time,
        "end_time": course.end_time,
        "venue": course.venue,
        "day_times": course.day_times or {},
        "index_from": course.index_from,
        "index_to": course.index_to,
    })


class EnrollmentDirectory:
    """Queries over users, courses and enrollments. Never writes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_course(self, course_id: str) -> Optional[Course]:
        result = await self.session.execute(select(Course).where(Course.id == course_id))
        return result.scalar_one_or_none()

    async def list_course_ids(self) -> List[str]:
        result = await self.session.execute(select(Course.id).order_by(Course.id))
        return [row[0] for row in result.all()]

    async def courses_for_user(self, user_id: str) -> List[CourseRecurrence]:
        result = await self.session.execute(
            select(Course)
            .join(Enrollment, Enrollment.course_id == Course.id)
            .where(Enrollment.user_id == user_id)
            .order_by(Course.id)
        )
        return [recurrence_from_course(course) for course in result.scalars().all()]

    async def enrollees(self, course_id: str, now: Optional[datetime] = None) -> List[Student]:
        """Every user currently enrolled in a course, eligible or not."""
        result = await self.session.execute(
            select(User)
            .join(Enrollment, Enrollment.user_id == User.id)
            .where(Enrollment.course_id == course_id)
            .order_by(User.id)
        )
        return [student_from_user(user, now) for user in result.scalars().all()]

    async def reminder_candidates(
        self,
        now: Optional[datetime] = None,
    ) -> List[Tuple[Student, List[CourseRecurrence]]]:
        """Users eligible for push reminders, each with their enrolled courses."""
        result = await self.session.execute(
            select(User, Course)
            .join(Enrollment, Enrollment.user_id == User.id)
            .join(Course, Course.id == Enrollment.course_id)
            .where(User.notifications_enabled.is_(True))
            .order_by(User.id, Course.id)
        )

        grouped: Dict[str, Tuple[Student, List[CourseRecurrence]]] = {}
        for user, course in result.all():
            if user.id not in grouped:
                student = student_from_user(user, now)
                if not student.eligible_for_push:
                    continue
                grouped[user.id] = (student, [])
            grouped[user.id][1].append(recurrence_from_course(course))
        return list(grouped.values())
