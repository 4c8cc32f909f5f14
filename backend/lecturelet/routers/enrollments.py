"""Enrolled courses for the current user, consumed by client-mode devices."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Course, Enrollment, User
from ..schemas.enrollment import EnrolledCourse, MyCoursesResponse, ReminderPreferences
from .deps import get_current_user_id

router = APIRouter(prefix="/api/enrollments", tags=["enrollments"])


@router.get("/my-courses", response_model=MyCoursesResponse)
async def get_my_courses(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """The caller's courses plus the reminder preferences the device should apply."""
    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    result = await db.execute(
        select(Course)
        .join(Enrollment, Enrollment.course_id == Course.id)
        .where(Enrollment.user_id == user_id)
        .order_by(Course.id)
    )
    courses = [
        EnrolledCourse(
            id=course.id,
            course_name=course.course_name,
            course_code=course.course_code,
            days=course.days or [],
            start_time=course.start_time,
            end_time=course.end_time,
            venue=course.venue,
            day_times=course.day_times or {},
            index_from=course.index_from,
            index_to=course.index_to,
        )
        for course in result.scalars().all()
    ]

    return MyCoursesResponse(
        courses=courses,
        preferences=ReminderPreferences(
            notifications_enabled=bool(user.notifications_enabled),
            reminder_minutes=user.reminder_minutes,
            notification_sound=user.notification_sound,
        ),
    )
