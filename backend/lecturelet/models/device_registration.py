"""DeviceRegistration model - push-capable endpoints owned by a user."""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Index

from ..database import Base
from ..utils.timeutils import utcnow


class DeviceRegistration(Base):
    """A device token registered for push notifications.

    ``destination_token`` is unique across all users: a token follows the
    physical device, so registering it again claims it for the new user.
    """

    __tablename__ = "device_registrations"
    __table_args__ = (
        Index("ix_device_registrations_user_active", "user_id", "is_active"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    destination_token = Column(String, unique=True, nullable=False, index=True)
    platform = Column(String, nullable=False)  # ios, android
    device_id = Column(String, nullable=True)
    app_version = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_used_at = Column(DateTime, default=utcnow, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
