"""Course and Enrollment models - read-only view of the course store."""
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, UniqueConstraint

from ..database import Base


class Course(Base):
    """A course with its weekly recurrence definition."""

    __tablename__ = "courses"

    id = Column(String, primary_key=True)
    course_name = Column(String, nullable=False)
    course_code = Column(String, nullable=True)
    venue = Column(String, nullable=True)
    days = Column(JSON, nullable=False, default=list)  # ["Monday", "Wednesday"]
    start_time = Column(String, nullable=True)  # "10:00 AM" or "14:30"
    end_time = Column(String, nullable=True)
    day_times = Column(JSON, nullable=True)  # {"Monday": {"start_time", "end_time", "venue"}}
    index_from = Column(String, nullable=True)
    index_to = Column(String, nullable=True)
    updated_at = Column(DateTime, nullable=True)


class Enrollment(Base):
    """A user's enrollment in a course."""

    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_enrollment"),
    )

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(String, ForeignKey("courses.id"), nullable=False, index=True)
