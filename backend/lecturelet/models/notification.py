"""Notification model - in-app notification records."""
from sqlalchemy import Column, Integer, String, DateTime, Boolean

from ..database import Base
from ..utils.timeutils import utcnow


class Notification(Base):
    """In-app copy of a reminder or broadcast, one per recipient."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    type = Column(String, default="announcement")  # lecture_reminder, announcement, quiz, ...
    course_id = Column(String, nullable=True)
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)
