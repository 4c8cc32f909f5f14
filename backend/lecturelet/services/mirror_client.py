"""Mirror client service - handles client mode operations."""
import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import httpx

from ..config import get_timezone, settings
from .local_mirror import (
    AsyncioNotificationQueue,
    LocalMirrorScheduler,
    MirrorPreferences,
    MirrorStore,
    SyncTrigger,
)
from .occurrences import CourseRecurrence, recurrence_from_mapping

logger = logging.getLogger(__name__)


class MirrorClientService:
    """Service for client mode - pulls the user's courses and keeps local reminders in sync."""

    def __init__(self):
        self._running = False
        self._courses: List[CourseRecurrence] = []
        self._preferences = MirrorPreferences(lead_minutes=settings.default_reminder_minutes)
        self._scheduler: Optional[LocalMirrorScheduler] = None

    @property
    def scheduler(self) -> LocalMirrorScheduler:
        if self._scheduler is None:
            self._scheduler = LocalMirrorScheduler(
                queue=AsyncioNotificationQueue(),
                store=MirrorStore(Path(settings.data_path) / "scheduled_reminders.json"),
                fetch_courses=self.get_courses,
                load_preferences=self.get_preferences,
                tz=get_timezone(),
                horizon_days=settings.reminder_horizon_days,
            )
        return self._scheduler

    async def refresh(self) -> bool:
        """Fetch enrolled courses and reminder preferences from the server."""
        if not settings.server_url or not settings.client_user_id:
            logger.error("SERVER_URL and CLIENT_USER_ID must be configured for client mode")
            return False

        try:
            async with httpx.AsyncClient(timeout=30) as client:
                response = await client.get(
                    f"{settings.server_url.rstrip('/')}/api/enrollments/my-courses",
                    headers={"X-User-Id": settings.client_user_id},
                )

                if response.status_code != 200:
                    logger.error(f"Failed to get courses: {response.status_code}")
                    return False

                data = response.json()
        except Exception as e:
            logger.error(f"Failed to get courses: {e}")
            return False

        self._courses = [recurrence_from_mapping(course) for course in data.get("courses", [])]
        prefs = data.get("preferences") or {}
        lead_minutes = prefs.get("reminder_minutes")
        if lead_minutes is None:
            lead_minutes = settings.default_reminder_minutes
        self._preferences = MirrorPreferences(
            notifications_enabled=prefs.get("notifications_enabled", True),
            lead_minutes=lead_minutes,
            sound=prefs.get("notification_sound") or "default",
        )
        return True

    async def get_courses(self) -> List[CourseRecurrence]:
        return list(self._courses)

    async def get_preferences(self) -> MirrorPreferences:
        return self._preferences

    async def run(self):
        """Main client loop - refresh, sync, then validate on every interval."""
        self._running = True
        logger.info("Starting mirror client service")

        trigger = SyncTrigger.LOGIN
        while self._running:
            try:
                previous_lead = self._preferences.lead_minutes
                if await self.refresh():
                    if trigger != SyncTrigger.LOGIN and self._preferences.lead_minutes != previous_lead:
                        trigger = SyncTrigger.LEAD_TIME_CHANGE
                    await self.scheduler.sync(trigger)
                    await self.scheduler.validate()
                    trigger = SyncTrigger.APP_FOREGROUND
            except Exception as e:
                logger.error(f"Error in client loop: {e}")

            await asyncio.sleep(settings.client_sync_interval_seconds)

    def stop(self):
        """Stop the client service."""
        self._running = False
        logger.info("Mirror client service stopped")


# Global instance
mirror_client = MirrorClientService()
