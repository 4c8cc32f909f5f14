"""SmsSendLog model - append-only record of text messages sent."""
from sqlalchemy import Column, Integer, String, DateTime, Index

from ..database import Base
from ..utils.timeutils import utcnow


class SmsSendLog(Base):
    """One successfully delivered text message. Used only for quota counting."""

    __tablename__ = "sms_logs"
    __table_args__ = (
        Index("ix_sms_logs_user_sent_at", "user_id", "sent_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    phone_number = Column(String, nullable=False)
    message = Column(String, nullable=False)
    type = Column(String, default="announcement")  # announcement, course_update, assignment, quiz, tutorial
    course_id = Column(String, nullable=True)
    sent_at = Column(DateTime, default=utcnow, nullable=False)
