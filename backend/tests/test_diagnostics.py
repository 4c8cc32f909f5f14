"""Tests for notification diagnostics and enrollment lookups."""
from datetime import datetime

import pytest

from lecturelet.errors import CourseNotFound
from lecturelet.services.device_registry import DeviceRegistry
from lecturelet.services.diagnostics import diagnose_all_courses, diagnose_course
from lecturelet.services.enrollments import EnrollmentDirectory
from lecturelet.services.occurrences import Weekday

from .helpers import add_course, add_user, enroll

NOW = datetime(2026, 10, 14, 8, 0)


class TestDiagnoseCourse:
    """Per-enrollee eligibility breakdown."""

    @pytest.mark.asyncio
    async def test_stats_and_issues(self, db_session):
        await add_course(db_session, "c1", course_name="Physics")
        await add_user(db_session, "ready", full_name="Ready")
        await add_user(db_session, "muted", full_name="Muted", notifications_enabled=False)
        await add_user(db_session, "unpaid", full_name="Unpaid", payment_status=False)
        await add_user(db_session, "legacy", full_name="Legacy", push_token="ExponentPushToken[old]")
        for user_id in ("ready", "muted", "unpaid", "legacy"):
            await enroll(db_session, user_id, "c1")
        registry = DeviceRegistry(db_session)
        await registry.register("ready", "tok-ready", "ios")
        await registry.register("muted", "tok-muted", "ios")

        report = await diagnose_course(db_session, "c1", now=NOW)

        assert report.course_name == "Physics"
        assert report.stats["total"] == 4
        assert report.stats["would_receive_push"] == 1
        assert report.stats["no_active_access"] == 1
        assert report.stats["notifications_disabled"] == 1
        assert report.stats["no_device_tokens"] == 2
        assert report.stats["has_legacy_token"] == 1
        assert report.issues["needs_migration"] == ["Legacy"]
        assert report.issues["notifications_off"] == ["Muted"]
        assert sorted(report.issues["no_devices"]) == ["Legacy", "Unpaid"]

        by_id = {e.user_id: e for e in report.enrollees}
        assert by_id["ready"].would_receive_push is True
        assert by_id["ready"].blocking_issues == []

    @pytest.mark.asyncio
    async def test_unknown_course(self, db_session):
        with pytest.raises(CourseNotFound):
            await diagnose_course(db_session, "nope")

    @pytest.mark.asyncio
    async def test_all_courses(self, db_session):
        await add_course(db_session, "a")
        await add_course(db_session, "b")

        reports = await diagnose_all_courses(db_session, now=NOW)

        assert [r.course_id for r in reports] == ["a", "b"]
        assert all(r.total == 0 for r in reports)


class TestEnrollmentDirectory:
    @pytest.mark.asyncio
    async def test_courses_for_user(self, db_session):
        await add_user(db_session, "u1")
        await add_course(db_session, "c1", days=["Monday", "Wednesday"], day_times={"Monday": {"start_time": "8:00 AM"}})
        await add_course(db_session, "c2")
        await enroll(db_session, "u1", "c1")

        courses = await EnrollmentDirectory(db_session).courses_for_user("u1")

        assert [c.course_id for c in courses] == ["c1"]
        assert len(courses[0].days) == 2
        assert courses[0].session_for(Weekday.MONDAY)[0] == "8:00 AM"
        assert courses[0].session_for(Weekday.WEDNESDAY)[0] == "10:00 AM"

    @pytest.mark.asyncio
    async def test_reminder_candidates_groups_courses(self, db_session):
        await add_user(db_session, "u1")
        await add_user(db_session, "off", notifications_enabled=False)
        await add_course(db_session, "c1")
        await add_course(db_session, "c2")
        for course_id in ("c1", "c2"):
            await enroll(db_session, "u1", course_id)
            await enroll(db_session, "off", course_id)

        candidates = await EnrollmentDirectory(db_session).reminder_candidates(NOW)

        assert len(candidates) == 1
        student, courses = candidates[0]
        assert student.user_id == "u1"
        assert [c.course_id for c in courses] == ["c1", "c2"]
