"""Scheduler service - owns the periodic reminder scan and device token cleanup.

Both jobs run on one AsyncIOScheduler with explicit start/stop lifecycle:

- reminder_scan: every REMINDER_SCAN_INTERVAL_MINUTES, first run shortly after boot
- device_token_cleanup: every CLEANUP_INTERVAL_HOURS, first run shortly after boot

The jobs touch disjoint rows (dispatch records and active registrations vs.
long-inactive registrations), so they need no coordination beyond the
store. A failing job is logged and never affects the other one.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from .cleanup import CleanupResult, cleanup_inactive_tokens
from .dispatcher import DispatchGateway, ScanSummary, dispatch_gateway

logger = logging.getLogger(__name__)


class SchedulerService:
    """Service for scheduling the reminder scan and cleanup jobs."""

    def __init__(self, gateway: DispatchGateway = dispatch_gateway):
        self.gateway = gateway
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._last_scan_at: Optional[datetime] = None
        self._scan_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def last_scan_at(self) -> Optional[datetime]:
        return self._last_scan_at

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()
        now = datetime.now()
        scan_minutes = settings.reminder_scan_interval_minutes

        self.scheduler.add_job(
            self._run_reminder_scan,
            trigger=IntervalTrigger(
                minutes=scan_minutes,
                start_date=now + timedelta(seconds=settings.reminder_scan_startup_delay_seconds),
            ),
            id="reminder_scan",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=scan_minutes * 60,
        )

        self.scheduler.add_job(
            self._cleanup_device_tokens,
            trigger=IntervalTrigger(
                hours=settings.cleanup_interval_hours,
                start_date=now + timedelta(seconds=settings.cleanup_startup_delay_seconds),
            ),
            id="device_token_cleanup",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        self._running = True
        logger.info(
            f"Scheduler started (reminder scan every {scan_minutes}m, "
            f"token cleanup every {settings.cleanup_interval_hours}h)"
        )

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def run_scan_now(self, now: Optional[datetime] = None) -> ScanSummary:
        """Run one scan covering everything since the previous one.

        Scans never overlap: a manual trigger waits for a running timer scan.
        """
        async with self._scan_lock:
            summary = await self.gateway.run_scan(now=now, previous_scan_at=self._last_scan_at)
            self._last_scan_at = summary.window_end
            return summary

    async def _run_reminder_scan(self):
        try:
            await self.run_scan_now()
        except Exception as e:
            logger.error(f"Error running reminder scan: {e}")

    async def _cleanup_device_tokens(self) -> CleanupResult:
        result = await cleanup_inactive_tokens(settings.cleanup_retention_days)
        logger.info(f"Device token cleanup: {result.deleted_count} deleted")
        return result


# Global instance
scheduler_service = SchedulerService()
