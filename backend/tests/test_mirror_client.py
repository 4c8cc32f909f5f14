"""Tests for the client-mode mirror service."""
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from zoneinfo import ZoneInfo

import pytest

from lecturelet.services.local_mirror import SyncTrigger
from lecturelet.services.mirror_client import MirrorClientService

UTC = ZoneInfo("UTC")

MY_COURSES = {
    "courses": [
        {
            "id": "c1",
            "course_name": "Linear Algebra",
            "days": ["Monday"],
            "start_time": "10:00 AM",
            "day_times": {"Monday": {"venue": "Lab"}},
        },
    ],
    "preferences": {"notifications_enabled": True, "reminder_minutes": 20, "notification_sound": "r3"},
}


def _http_client(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    client = AsyncMock()
    client.get.return_value = response
    client.__aenter__.return_value = client
    return client


@pytest.fixture
def configured(tmp_path):
    with patch.multiple(
        "lecturelet.services.mirror_client.settings",
        server_url="http://server.test/",
        client_user_id="u1",
        data_path=str(tmp_path),
        timezone="UTC",
    ):
        yield


class TestRefresh:
    @pytest.mark.asyncio
    async def test_loads_courses_and_preferences(self, configured):
        service = MirrorClientService()
        client = _http_client(body=MY_COURSES)

        with patch("lecturelet.services.mirror_client.httpx.AsyncClient", return_value=client):
            assert await service.refresh() is True

        url = client.get.await_args.args[0]
        assert url == "http://server.test/api/enrollments/my-courses"
        assert client.get.await_args.kwargs["headers"] == {"X-User-Id": "u1"}

        courses = await service.get_courses()
        assert [c.course_id for c in courses] == ["c1"]
        prefs = await service.get_preferences()
        assert (prefs.lead_minutes, prefs.sound) == (20, "r3")

    @pytest.mark.asyncio
    async def test_server_error_keeps_previous_state(self, configured):
        service = MirrorClientService()
        with patch("lecturelet.services.mirror_client.httpx.AsyncClient", return_value=_http_client(status_code=500)):
            assert await service.refresh() is False
        assert await service.get_courses() == []

    @pytest.mark.asyncio
    async def test_not_configured(self):
        service = MirrorClientService()
        with patch.multiple("lecturelet.services.mirror_client.settings", server_url=None, client_user_id=None):
            assert await service.refresh() is False


class TestScheduling:
    @pytest.mark.asyncio
    async def test_sync_after_refresh_uses_server_preferences(self, configured):
        service = MirrorClientService()
        with patch("lecturelet.services.mirror_client.httpx.AsyncClient", return_value=_http_client(body=MY_COURSES)):
            await service.refresh()

        # The queue arms real event-loop timers, so sync against a Monday at least a week ahead
        today = datetime.now(UTC).replace(hour=7, minute=0, second=0, microsecond=0)
        monday = today + timedelta(days=14 - today.weekday())
        result = await service.scheduler.sync(SyncTrigger.LOGIN, now=monday)

        assert result.scheduled == 1
        queued = await service.scheduler.queue.list_scheduled()
        assert queued[0].fire_at == monday.replace(hour=9, minute=40)
        assert queued[0].sound.channel_id == "lecturelet_r3_channel"
        await service.scheduler.cancel_all()

    @pytest.mark.asyncio
    async def test_zero_lead_time_from_server_disables_reminders(self, configured):
        body = {**MY_COURSES, "preferences": {"notifications_enabled": True, "reminder_minutes": 0}}
        service = MirrorClientService()
        with patch("lecturelet.services.mirror_client.httpx.AsyncClient", return_value=_http_client(body=body)):
            await service.refresh()

        assert (await service.get_preferences()).lead_minutes == 0
        result = await service.scheduler.sync(SyncTrigger.LOGIN, now=datetime.now(UTC))

        assert result.skipped_reason == "reminders_disabled"
        assert await service.scheduler.queue.list_scheduled() == []

    @pytest.mark.asyncio
    async def test_missing_lead_time_uses_default(self, configured):
        body = {**MY_COURSES, "preferences": {"notifications_enabled": True}}
        service = MirrorClientService()
        with patch("lecturelet.services.mirror_client.httpx.AsyncClient", return_value=_http_client(body=body)):
            await service.refresh()

        assert (await service.get_preferences()).lead_minutes == 15
