"""User model - read-only view of the identity provider's user records."""
from sqlalchemy import Column, String, DateTime, Boolean, Integer

from ..database import Base


class User(Base):
    """An account as exposed by the identity provider.

    The reminder subsystem only reads these rows.
    """

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    full_name = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    notifications_enabled = Column(Boolean, default=True)
    reminder_minutes = Column(Integer, nullable=True)
    notification_sound = Column(String, nullable=True)  # default, r1, r2, r3, none
    payment_status = Column(Boolean, default=False)
    trial_end_date = Column(DateTime, nullable=True)
    push_token = Column(String, nullable=True)  # legacy single-device token
