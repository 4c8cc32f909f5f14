"""Tests for the HTTP API."""
from datetime import timedelta
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from lecturelet.database import get_db
from lecturelet.main import app
from lecturelet.routers.deps import get_gateway, get_scheduler
from lecturelet.services.dispatcher import DispatchGateway
from lecturelet.services.scheduler import SchedulerService

from .helpers import add_course, add_user, enroll

UTC = ZoneInfo("UTC")


@pytest_asyncio.fixture
async def client(session_factory, push_sender, sms_sender):
    """API client against a per-test database and in-memory transports."""
    gateway = DispatchGateway(
        session_factory=session_factory,
        push_sender=push_sender,
        sms_sender=sms_sender,
        tz=UTC,
        max_concurrent=1,
        scan_interval=timedelta(minutes=5),
    )
    scheduler = SchedulerService(gateway=gateway)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_scheduler] = lambda: scheduler

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def _as(user_id: str) -> dict:
    return {"X-User-Id": user_id}


class TestAuth:
    @pytest.mark.asyncio
    async def test_missing_identity_returns_401(self, client):
        response = await client.get("/api/devices")
        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"

    @pytest.mark.asyncio
    async def test_health_needs_no_identity(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestDeviceRoutes:
    """Registration, listing and removal."""

    @pytest.mark.asyncio
    async def test_register_and_list(self, client):
        response = await client.post(
            "/api/devices/register-device",
            json={"push_token": "tok-1", "platform": "android", "app_version": "3.0"},
            headers=_as("u1"),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["device"]["platform"] == "android"
        assert "destination_token" not in body["device"]

        listed = await client.get("/api/devices", headers=_as("u1"))
        assert [d["app_version"] for d in listed.json()] == ["3.0"]

        count = await client.get("/api/devices/count", headers=_as("u1"))
        assert count.json() == {"active": 1}

    @pytest.mark.asyncio
    async def test_expo_token_rejected(self, client):
        response = await client.post(
            "/api/devices/register-device",
            json={"push_token": "ExponentPushToken[abc]", "platform": "ios"},
            headers=_as("u1"),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_platform_rejected(self, client):
        response = await client.post(
            "/api/devices/register-device",
            json={"push_token": "tok", "platform": "windows"},
            headers=_as("u1"),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_claim_moves_device(self, client):
        payload = {"push_token": "shared", "platform": "ios"}
        await client.post("/api/devices/register-device", json=payload, headers=_as("u1"))
        await client.post("/api/devices/register-device", json=payload, headers=_as("u2"))

        assert (await client.get("/api/devices/count", headers=_as("u1"))).json() == {"active": 0}
        assert (await client.get("/api/devices/count", headers=_as("u2"))).json() == {"active": 1}

    @pytest.mark.asyncio
    async def test_unregister(self, client):
        await client.post(
            "/api/devices/register-device",
            json={"push_token": "tok-1", "platform": "ios"},
            headers=_as("u1"),
        )

        response = await client.delete("/api/devices/tok-1", headers=_as("u1"))
        assert response.status_code == 200
        assert (await client.get("/api/devices/count", headers=_as("u1"))).json() == {"active": 0}

        missing = await client.delete("/api/devices/unknown", headers=_as("u1"))
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_cannot_unregister_another_users_device(self, client):
        await client.post(
            "/api/devices/register-device",
            json={"push_token": "owned-tok", "platform": "ios"},
            headers=_as("owner"),
        )

        response = await client.delete("/api/devices/owned-tok", headers=_as("someone-else"))

        assert response.status_code == 404
        assert (await client.get("/api/devices/count", headers=_as("owner"))).json() == {"active": 1}

    @pytest.mark.asyncio
    async def test_unregister_all(self, client):
        for token in ("a", "b"):
            await client.post(
                "/api/devices/register-device",
                json={"push_token": token, "platform": "ios"},
                headers=_as("u1"),
            )

        response = await client.delete("/api/devices", headers=_as("u1"))

        assert response.json()["deactivated"] == 2


class TestNotificationRoutes:
    @pytest.mark.asyncio
    async def test_broadcast(self, client, db_session, android_transport):
        await add_course(db_session, "c1")
        await add_user(db_session, "student")
        await enroll(db_session, "student", "c1")
        await client.post(
            "/api/devices/register-device",
            json={"push_token": "tok", "platform": "android"},
            headers=_as("student"),
        )

        response = await client.post(
            "/api/notifications/broadcast",
            json={"course_id": "c1", "title": "Quiz", "message": "Quiz 1 posted", "type": "quiz"},
            headers=_as("lecturer"),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["in_app_count"] == 1
        assert body["push_sent"] == 1
        assert android_transport.tokens == ["tok"]

    @pytest.mark.asyncio
    async def test_broadcast_unknown_course(self, client):
        response = await client.post(
            "/api/notifications/broadcast",
            json={"course_id": "nope", "title": "T", "message": "M"},
            headers=_as("lecturer"),
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_sms_quota(self, client):
        response = await client.get("/api/notifications/sms/quota", headers=_as("u1"))
        assert response.json() == {"used": 0, "limit": 5, "remaining": 5}


class TestDiagnosticsRoutes:
    @pytest.mark.asyncio
    async def test_course_report(self, client, db_session):
        await add_course(db_session, "c1", course_name="Physics")
        await add_user(db_session, "u1", full_name="Ama")
        await enroll(db_session, "u1", "c1")

        response = await client.get("/api/diagnostics/courses/c1", headers=_as("admin"))

        assert response.status_code == 200
        body = response.json()
        assert body["stats"]["total"] == 1
        assert body["enrollees"][0]["blocking_issues"] == ["no_devices"]
        assert body["issues"]["no_devices"] == ["Ama"]

    @pytest.mark.asyncio
    async def test_unknown_course(self, client):
        response = await client.get("/api/diagnostics/courses/nope", headers=_as("admin"))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_all_courses(self, client, db_session):
        await add_course(db_session, "c1")
        response = await client.get("/api/diagnostics/courses", headers=_as("admin"))
        assert [r["course_id"] for r in response.json()] == ["c1"]


class TestEnrollmentRoutes:
    @pytest.mark.asyncio
    async def test_my_courses(self, client, db_session):
        await add_user(db_session, "u1", reminder_minutes=30, notification_sound="r2")
        await add_course(
            db_session, "c1",
            days=["Monday"],
            day_times={"Monday": {"start_time": "8:00 AM", "venue": "Lab"}},
        )
        await add_course(db_session, "c2")
        await enroll(db_session, "u1", "c1")

        response = await client.get("/api/enrollments/my-courses", headers=_as("u1"))

        assert response.status_code == 200
        body = response.json()
        assert [c["id"] for c in body["courses"]] == ["c1"]
        assert body["courses"][0]["day_times"]["Monday"]["venue"] == "Lab"
        assert body["preferences"] == {
            "notifications_enabled": True,
            "reminder_minutes": 30,
            "notification_sound": "r2",
        }

    @pytest.mark.asyncio
    async def test_unknown_user(self, client):
        response = await client.get("/api/enrollments/my-courses", headers=_as("ghost"))
        assert response.status_code == 404


class TestReminderRoutes:
    @pytest.mark.asyncio
    async def test_manual_scan(self, client):
        response = await client.post("/api/reminders/scan", headers=_as("admin"))

        assert response.status_code == 200
        body = response.json()
        assert body["users"] == 0
        assert body["sent"] == 0
