"""ReminderDelivery model - dedup record for reminders handed to the push transport."""
from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint

from ..database import Base
from ..utils.timeutils import utcnow

STATUS_PENDING = "pending"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"


class ReminderDelivery(Base):
    """State of one (user, course, session) reminder."""

    __tablename__ = "reminder_deliveries"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", "session_start", name="uq_reminder_delivery"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    course_id = Column(String, nullable=False)
    session_start = Column(DateTime, nullable=False, index=True)  # naive UTC
    fire_at = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default=STATUS_PENDING)  # pending, sent, failed
    attempts = Column(Integer, nullable=False, default=0)
    devices_sent = Column(Integer, nullable=False, default=0)
    devices_failed = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
