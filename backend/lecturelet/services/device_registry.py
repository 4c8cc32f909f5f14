"""Device registry - push-capable endpoints per user and their token lifecycle.

Registering a token is a *claim*: whoever registers it last becomes its only
owner, and the row is always left active. Tokens follow the physical
device, so a phone that changes accounts keeps one row that moves with it.

Lifecycle: created on first registration, refreshed on every later
registration, soft-deleted (``is_active = False``) on logout or removal, and
hard-deleted by the cleanup job once inactive past the retention window.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import DeviceTokenError
from ..models.device_registration import DeviceRegistration
from ..utils.db_utils import is_unique_violation, retry_on_lock
from ..utils.timeutils import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

PLATFORMS = ("ios", "android")
MAX_TOKEN_LENGTH = 4096
EXPO_TOKEN_PREFIXES = ("ExponentPushToken[", "ExpoPushToken[")


@dataclass
class DeviceMetadata:
    """Optional details a device sends along with its token."""
    device_id: Optional[str] = None
    app_version: Optional[str] = None


def short_token(token: str) -> str:
    """Token prefix safe to put in logs."""
    return f"{token[:16]}..."


def normalize_token(token) -> str:
    """Validate a destination token and return it stripped.

    Raises:
        DeviceTokenError: Empty, oversized, whitespace-containing or Expo tokens
    """
    if not isinstance(token, str):
        raise DeviceTokenError("Device token must be a string")
    cleaned = token.strip()
    if not cleaned:
        raise DeviceTokenError("Device token is empty")
    if len(cleaned) > MAX_TOKEN_LENGTH:
        raise DeviceTokenError("Device token is too long")
    if any(ch.isspace() for ch in cleaned):
        raise DeviceTokenError("Device token contains whitespace")
    if cleaned.startswith(EXPO_TOKEN_PREFIXES):
        raise DeviceTokenError("Expo push tokens are not supported; register the native device token")
    return cleaned


def normalize_platform(platform) -> str:
    value = (platform or "").strip().lower() if isinstance(platform, str) else ""
    if value not in PLATFORMS:
        raise DeviceTokenError(f"Unsupported platform {platform!r}; expected one of {', '.join(PLATFORMS)}")
    return value


class DeviceRegistry:
    """Store-backed registry of device tokens, bound to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_by_token(self, token: str) -> Optional[DeviceRegistration]:
        result = await self.session.execute(
            select(DeviceRegistration).where(DeviceRegistration.destination_token == token)
        )
        return result.scalar_one_or_none()

    def _claim(
        self,
        device: DeviceRegistration,
        user_id: str,
        platform: str,
        metadata: DeviceMetadata,
        now: datetime,
    ) -> None:
        if device.user_id != user_id:
            logger.info(
                f"Device {short_token(device.destination_token)} claimed by user {user_id} "
                f"(was {device.user_id})"
            )
        device.user_id = user_id
        device.platform = platform
        device.is_active = True
        device.last_used_at = now
        device.updated_at = now
        device.app_version = metadata.app_version or device.app_version
        device.device_id = metadata.device_id or device.device_id

    async def register(
        self,
        user_id: str,
        token: str,
        platform: str,
        metadata: Optional[DeviceMetadata] = None,
        now: Optional[datetime] = None,
    ) -> DeviceRegistration:
        """Claim a token for a user, creating the row on first sight.

        Args:
            user_id: Authenticated user registering the device
            token: Destination token reported by the device
            platform: "ios" or "android"
            metadata: Optional device id / app version
            now: Clock override

        Returns:
            The active registration, owned by ``user_id``

        Raises:
            DeviceTokenError: If the input is malformed (nothing is written)
        """
        if not user_id:
            raise DeviceTokenError("A user id is required to register a device")
        token = normalize_token(token)
        platform = normalize_platform(platform)
        metadata = metadata or DeviceMetadata()
        now = to_naive_utc(now) if now else utcnow()

        existing = await self._get_by_token(token)
        if existing:
            self._claim(existing, user_id, platform, metadata, now)
            await retry_on_lock(self.session.commit)
            await self.session.refresh(existing)
            logger.info(f"Device token updated for user {user_id}: {short_token(token)} ({platform})")
            return existing

        device = DeviceRegistration(
            user_id=user_id,
            destination_token=token,
            platform=platform,
            device_id=metadata.device_id,
            app_version=metadata.app_version,
            is_active=True,
            last_used_at=now,
            created_at=now,
            updated_at=now,
        )
        self.session.add(device)
        try:
            await retry_on_lock(self.session.commit)
        except IntegrityError as e:
            # Another request inserted the same token first; claim it instead
            await self.session.rollback()
            if not is_unique_violation(e):
                raise
            existing = await self._get_by_token(token)
            if existing is None:
                raise
            logger.info(f"Concurrent registration of {short_token(token)}, retrying as update")
            self._claim(existing, user_id, platform, metadata, now)
            await retry_on_lock(self.session.commit)
            device = existing

        await self.session.refresh(device)
        logger.info(f"New device registered for user {user_id}: {short_token(token)} ({platform})")
        return device

    async def list_active(self, user_id: str) -> List[DeviceRegistration]:
        """Active registrations for a user, used for fan-out."""
        result = await self.session.execute(
            select(DeviceRegistration)
            .where(
                DeviceRegistration.user_id == user_id,
                DeviceRegistration.is_active.is_(True),
            )
            .order_by(DeviceRegistration.id)
        )
        return list(result.scalars().all())

    async def list_devices(self, user_id: str) -> List[DeviceRegistration]:
        """Active registrations for device management, most recently used first."""
        result = await self.session.execute(
            select(DeviceRegistration)
            .where(
                DeviceRegistration.user_id == user_id,
                DeviceRegistration.is_active.is_(True),
            )
            .order_by(DeviceRegistration.last_used_at.desc())
        )
        return list(result.scalars().all())

    async def device_count(self, user_id: str) -> int:
        result = await self.session.execute(
            select(func.count(DeviceRegistration.id)).where(
                DeviceRegistration.user_id == user_id,
                DeviceRegistration.is_active.is_(True),
            )
        )
        return result.scalar() or 0

    async def deactivate(
        self,
        token: str,
        now: Optional[datetime] = None,
        user_id: Optional[str] = None,
    ) -> bool:
        """Soft-delete one token.

        With ``user_id`` only a registration owned by that user is touched.
        Returns False when no matching token exists.
        """
        now = to_naive_utc(now) if now else utcnow()
        stmt = update(DeviceRegistration).where(DeviceRegistration.destination_token == token.strip())
        if user_id is not None:
            stmt = stmt.where(DeviceRegistration.user_id == user_id)
        result = await self.session.execute(
            stmt.values(is_active=False, last_used_at=now, updated_at=now)
        )
        await retry_on_lock(self.session.commit)
        if result.rowcount:
            logger.info(f"Deactivated device token: {short_token(token)}")
        return bool(result.rowcount)

    async def deactivate_all(self, user_id: str, now: Optional[datetime] = None) -> int:
        """Soft-delete every token a user owns (logout everywhere, account deletion)."""
        now = to_naive_utc(now) if now else utcnow()
        result = await self.session.execute(
            update(DeviceRegistration)
            .where(
                DeviceRegistration.user_id == user_id,
                DeviceRegistration.is_active.is_(True),
            )
            .values(is_active=False, last_used_at=now, updated_at=now)
        )
        await retry_on_lock(self.session.commit)
        logger.info(f"Deactivated {result.rowcount} device tokens for user {user_id}")
        return result.rowcount or 0

    async def touch(self, token: str, now: Optional[datetime] = None) -> None:
        """Refresh last_used_at after a successful delivery."""
        now = to_naive_utc(now) if now else utcnow()
        await self.session.execute(
            update(DeviceRegistration)
            .where(DeviceRegistration.destination_token == token)
            .values(last_used_at=now)
        )
        await retry_on_lock(self.session.commit)

    async def reclaim_stale(self, older_than_days: int = 30, now: Optional[datetime] = None) -> int:
        """Hard-delete inactive rows not updated within the threshold.

        Active rows are never touched, however old.
        """
        now = to_naive_utc(now) if now else utcnow()
        cutoff = now - timedelta(days=older_than_days)
        result = await self.session.execute(
            delete(DeviceRegistration).where(
                DeviceRegistration.is_active.is_(False),
                DeviceRegistration.updated_at < cutoff,
            )
        )
        await retry_on_lock(self.session.commit)
        return result.rowcount or 0
