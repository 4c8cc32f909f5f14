"""Cleanup job - reclaims device registrations inactive past the retention window."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..config import settings
from ..database import async_session
from .device_registry import DeviceRegistry

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    success: bool
    deleted_count: int
    message: str = ""
    error: Optional[str] = None


async def cleanup_inactive_tokens(
    days_old: Optional[int] = None,
    session_factory=async_session,
    now: Optional[datetime] = None,
) -> CleanupResult:
    """Delete device tokens that have been inactive for ``days_old`` days or more.

    Never raises: a failed cleanup is logged and reported, and the next run
    simply tries again.
    """
    days_old = settings.cleanup_retention_days if days_old is None else days_old
    logger.info(f"Starting device token cleanup (tokens inactive for {days_old}+ days)...")

    try:
        async with session_factory() as session:
            deleted = await DeviceRegistry(session).reclaim_stale(days_old, now)
    except Exception as e:
        logger.warning(f"Device token cleanup skipped: {e}")
        return CleanupResult(success=False, deleted_count=0, error=str(e))

    if deleted:
        logger.info(f"Device token cleanup complete: {deleted} tokens deleted")
    return CleanupResult(
        success=True,
        deleted_count=deleted,
        message=f"Cleaned up {deleted} inactive device tokens",
    )
