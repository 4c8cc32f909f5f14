"""Tests for the reminder rule and sound mapping."""
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from lecturelet.services.occurrences import ReminderOccurrence
from lecturelet.services.reminder_rule import ReminderStatus, fire_instant
from lecturelet.services.sounds import SoundPreference, resolve_sound

UTC = ZoneInfo("UTC")

SESSION = ReminderOccurrence(
    course_id="c1",
    course_name="Linear Algebra",
    session_start=datetime(2026, 10, 14, 10, 0, tzinfo=UTC),
)


class TestFireInstant:
    def test_wednesday_0950_is_expired(self):
        """Fire instant 09:45 is already behind 09:50."""
        decision = fire_instant(SESSION, 15, datetime(2026, 10, 14, 9, 50, tzinfo=UTC))

        assert decision.status == ReminderStatus.EXPIRED
        assert decision.fire_at is None

    def test_tuesday_0900_is_scheduled(self):
        decision = fire_instant(SESSION, 15, datetime(2026, 10, 13, 9, 0, tzinfo=UTC))

        assert decision.is_scheduled
        assert decision.fire_at == datetime(2026, 10, 14, 9, 45, tzinfo=UTC)

    def test_fire_instant_equal_to_now_is_expired(self):
        decision = fire_instant(SESSION, 15, datetime(2026, 10, 14, 9, 45, tzinfo=UTC))
        assert decision.status == ReminderStatus.EXPIRED

    @pytest.mark.parametrize("lead", [0, -5, None])
    def test_non_positive_lead_disables(self, lead):
        """Zero or negative lead means no reminders, not fire immediately."""
        decision = fire_instant(SESSION, lead, datetime(2026, 10, 13, 9, 0, tzinfo=UTC))
        assert decision.status == ReminderStatus.DISABLED

    @pytest.mark.parametrize("lead", [1, 15, 30, 60, 24 * 60])
    def test_expired_exactly_when_fire_instant_not_after_now(self, lead):
        fire_at = SESSION.session_start - timedelta(minutes=lead)
        for now in (fire_at - timedelta(seconds=1), fire_at, fire_at + timedelta(seconds=1)):
            decision = fire_instant(SESSION, lead, now)
            assert (decision.status == ReminderStatus.EXPIRED) == (fire_at <= now)


class TestResolveSound:
    def test_default(self):
        channel = resolve_sound("default")
        assert (channel.channel_id, channel.sound_file) == ("default", "default")

    def test_none_is_silent(self):
        channel = resolve_sound(SoundPreference.NONE)
        assert channel.channel_id == "default_silent"
        assert channel.is_silent

    @pytest.mark.parametrize("stored", ["r2", "R2", "r2.wav"])
    def test_custom_sound(self, stored):
        channel = resolve_sound(stored)
        assert channel.channel_id == "lecturelet_r2_channel"
        assert channel.sound_file == "r2.wav"

    @pytest.mark.parametrize("stored", [None, "", "trumpet"])
    def test_unknown_falls_back_to_default(self, stored):
        assert resolve_sound(stored) == resolve_sound(SoundPreference.DEFAULT)
