"""Tests for the scheduler service lifecycle and scan windows."""
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from zoneinfo import ZoneInfo

import pytest

from lecturelet.services.cleanup import CleanupResult
from lecturelet.services.dispatcher import ScanSummary
from lecturelet.services.scheduler import SchedulerService

UTC = ZoneInfo("UTC")


def _gateway():
    gateway = MagicMock()

    async def run_scan(now=None, previous_scan_at=None):
        start = previous_scan_at or now - timedelta(minutes=5)
        return ScanSummary(window_start=start, window_end=now)

    gateway.run_scan = AsyncMock(side_effect=run_scan)
    return gateway


class TestSchedulerLifecycle:
    @pytest.mark.asyncio
    async def test_start_registers_both_jobs(self):
        service = SchedulerService(gateway=_gateway())
        service.start()
        try:
            assert service.running is True
            job_ids = {job.id for job in service.scheduler.get_jobs()}
            assert job_ids == {"reminder_scan", "device_token_cleanup"}
        finally:
            service.stop()

        assert service.running is False

    @pytest.mark.asyncio
    async def test_start_twice_is_harmless(self):
        service = SchedulerService(gateway=_gateway())
        service.start()
        scheduler = service.scheduler
        service.start()
        try:
            assert service.scheduler is scheduler
        finally:
            service.stop()


class TestRunScanNow:
    """Consecutive scans tile the timeline."""

    @pytest.mark.asyncio
    async def test_windows_chain(self):
        gateway = _gateway()
        service = SchedulerService(gateway=gateway)
        first_at = datetime(2026, 10, 14, 9, 0, tzinfo=UTC)
        second_at = first_at + timedelta(minutes=5)

        first = await service.run_scan_now(now=first_at)
        second = await service.run_scan_now(now=second_at)

        assert gateway.run_scan.await_args_list[0].kwargs["previous_scan_at"] is None
        assert gateway.run_scan.await_args_list[1].kwargs["previous_scan_at"] == first_at
        assert second.window_start == first.window_end
        assert service.last_scan_at == second_at

    @pytest.mark.asyncio
    async def test_timer_job_swallows_errors(self):
        gateway = MagicMock()
        gateway.run_scan = AsyncMock(side_effect=RuntimeError("boom"))
        service = SchedulerService(gateway=gateway)

        await service._run_reminder_scan()

        assert service.last_scan_at is None

    @pytest.mark.asyncio
    async def test_cleanup_job_uses_retention(self):
        service = SchedulerService(gateway=_gateway())
        with patch(
            "lecturelet.services.scheduler.cleanup_inactive_tokens",
            new_callable=AsyncMock,
        ) as mock_cleanup:
            mock_cleanup.return_value = CleanupResult(success=True, deleted_count=4)
            result = await service._cleanup_device_tokens()

        mock_cleanup.assert_awaited_once_with(30)
        assert result.deleted_count == 4
