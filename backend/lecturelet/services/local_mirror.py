"""Local mirror scheduler - keeps a device's own notification timers in step with its courses.

Invariant: for every course the user is enrolled in, exactly one future
local reminder per upcoming session, at the user's current lead time and
sound. Identifiers are a deterministic function of (course, session start),
so re-running a sync for unchanged state reproduces the same identifier set
and overlapping triggers are harmless.

The durable record (``MirrorStore``) holds what this device believes it has
queued; ``validate`` compares it with what the queue actually still holds and
resyncs when the platform has dropped anything.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from .occurrences import CourseRecurrence, DEFAULT_HORIZON_DAYS, upcoming_occurrences
from .reminder_rule import fire_instant
from .sounds import SoundChannel, resolve_sound

logger = logging.getLogger(__name__)

NOTIFICATION_PREFIX = "local_reminder_"
LOCAL_REMINDER_TITLE = "Class Reminder"


def mirror_identifier(course_id: str, session_start: datetime) -> str:
    """Deterministic queue identifier for one course session."""
    epoch_ms = int(session_start.timestamp() * 1000)
    return f"{NOTIFICATION_PREFIX}{course_id}_{epoch_ms}"


def _course_prefix(course_id: str) -> str:
    return f"{NOTIFICATION_PREFIX}{course_id}_"


class SyncTrigger(str, Enum):
    APP_FOREGROUND = "app_foreground"
    LOGIN = "login"
    ENROLLMENT_CHANGE = "enrollment_change"
    PREFERENCE_CHANGE = "preference_change"
    LEAD_TIME_CHANGE = "lead_time_change"
    COURSE_UPDATE = "course_update"
    VALIDATION = "validation"


@dataclass
class MirrorPreferences:
    notifications_enabled: bool = True
    lead_minutes: int = 15
    sound: str = "default"


@dataclass
class ScheduledMirrorEntry:
    """Bookkeeping for one reminder handed to the device's queue."""
    identifier: str
    course_id: str
    session_start: datetime
    reminder_fire_at: datetime
    course_name: str = ""

    def to_dict(self) -> dict:
        return {
            "identifier": self.identifier,
            "course_id": self.course_id,
            "course_name": self.course_name,
            "session_start": self.session_start.isoformat(),
            "reminder_fire_at": self.reminder_fire_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduledMirrorEntry":
        return cls(
            identifier=data["identifier"],
            course_id=data["course_id"],
            course_name=data.get("course_name", ""),
            session_start=datetime.fromisoformat(data["session_start"]),
            reminder_fire_at=datetime.fromisoformat(data["reminder_fire_at"]),
        )


@dataclass
class QueuedNotification:
    identifier: str
    fire_at: datetime
    title: str
    body: str
    data: Dict[str, str] = field(default_factory=dict)
    sound: SoundChannel = field(default_factory=lambda: resolve_sound("default"))


@dataclass
class SyncResult:
    scheduled: int = 0
    cancelled: int = 0
    courses: int = 0
    skipped_reason: Optional[str] = None


class InMemoryNotificationQueue:
    """Device notification queue kept in process memory.

    Platform adapters subclass this and forward to the OS scheduler.
    """

    def __init__(self, permission_granted: bool = True):
        self._permission = permission_granted
        self._scheduled: Dict[str, QueuedNotification] = {}

    async def permission_granted(self) -> bool:
        return self._permission

    def set_permission(self, granted: bool):
        self._permission = granted

    async def list_scheduled(self) -> List[QueuedNotification]:
        return list(self._scheduled.values())

    async def schedule(self, notification: QueuedNotification) -> None:
        self._scheduled[notification.identifier] = notification

    async def cancel(self, identifier: str) -> None:
        self._scheduled.pop(identifier, None)

    def drop(self, identifier: str) -> None:
        """Forget a notification without being asked, as a platform may after an update."""
        self._scheduled.pop(identifier, None)


class AsyncioNotificationQueue(InMemoryNotificationQueue):
    """Queue whose entries fire on the running event loop."""

    def __init__(
        self,
        on_fire: Optional[Callable[[QueuedNotification], None]] = None,
        permission_granted: bool = True,
    ):
        super().__init__(permission_granted)
        self._on_fire = on_fire or self._log_notification
        self._handles: Dict[str, asyncio.TimerHandle] = {}

    @staticmethod
    def _log_notification(notification: QueuedNotification):
        logger.info(f"{notification.title}: {notification.body}")

    def _fire(self, identifier: str):
        notification = self._scheduled.pop(identifier, None)
        self._handles.pop(identifier, None)
        if notification is not None:
            self._on_fire(notification)

    async def schedule(self, notification: QueuedNotification) -> None:
        await self.cancel(notification.identifier)
        await super().schedule(notification)
        delay = max(0.0, (notification.fire_at - datetime.now(notification.fire_at.tzinfo)).total_seconds())
        loop = asyncio.get_running_loop()
        self._handles[notification.identifier] = loop.call_later(delay, self._fire, notification.identifier)

    async def cancel(self, identifier: str) -> None:
        handle = self._handles.pop(identifier, None)
        if handle is not None:
            handle.cancel()
        await super().cancel(identifier)


class MirrorStore:
    """Durable JSON record of scheduled reminders and the last sync time."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> Optional[dict]:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Unreadable reminder record at {self.path}: {e}")
            return None

    def _write(self, data: dict):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2))
        tmp.replace(self.path)

    def exists(self) -> bool:
        return self._read() is not None

    def load(self) -> Dict[str, ScheduledMirrorEntry]:
        data = self._read() or {}
        entries = {}
        for raw in data.get("entries", []):
            try:
                entry = ScheduledMirrorEntry.from_dict(raw)
            except (KeyError, ValueError):
                continue
            entries[entry.identifier] = entry
        return entries

    def save(self, entries: Dict[str, ScheduledMirrorEntry], last_sync: Optional[datetime] = None):
        data = self._read() or {}
        data["entries"] = [entry.to_dict() for entry in entries.values()]
        if last_sync is not None:
            data["last_sync"] = last_sync.isoformat()
        self._write(data)

    def clear(self):
        if self.path.exists():
            self.path.unlink()

    @property
    def last_sync(self) -> Optional[datetime]:
        data = self._read() or {}
        value = data.get("last_sync")
        return datetime.fromisoformat(value) if value else None


CourseFetcher = Callable[[], Awaitable[Sequence[CourseRecurrence]]]
PreferenceLoader = Callable[[], Awaitable[MirrorPreferences]]


class LocalMirrorScheduler:
    """Reconciles the device queue with the user's courses and preferences."""

    def __init__(
        self,
        queue: InMemoryNotificationQueue,
        store: MirrorStore,
        fetch_courses: CourseFetcher,
        load_preferences: PreferenceLoader,
        tz: tzinfo,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
    ):
        self.queue = queue
        self.store = store
        self.fetch_courses = fetch_courses
        self.load_preferences = load_preferences
        self.tz = tz
        self.horizon_days = horizon_days

    def _now(self, now: Optional[datetime]) -> datetime:
        now = now or datetime.now(self.tz)
        return now if now.tzinfo else now.replace(tzinfo=self.tz)

    async def _queued_reminders(self) -> List[QueuedNotification]:
        return [n for n in await self.queue.list_scheduled() if n.identifier.startswith(NOTIFICATION_PREFIX)]

    async def cancel_all(self) -> int:
        """Cancel every local reminder and forget the record. Completes before returning."""
        queued = await self._queued_reminders()
        for notification in queued:
            await self.queue.cancel(notification.identifier)
        self.store.clear()
        logger.info(f"Cancelled all reminder notifications ({len(queued)})")
        return len(queued)

    async def _cancel_course(self, course_id: str, entries: Dict[str, ScheduledMirrorEntry]) -> int:
        prefix = _course_prefix(course_id)
        cancelled = 0
        for notification in await self._queued_reminders():
            if notification.identifier.startswith(prefix) or notification.data.get("courseId") == course_id:
                await self.queue.cancel(notification.identifier)
                cancelled += 1
        for identifier in [i for i, e in entries.items() if e.course_id == course_id or i.startswith(prefix)]:
            entries.pop(identifier)
        return cancelled

    async def cancel_course(self, course_id: str) -> int:
        entries = self.store.load()
        cancelled = await self._cancel_course(course_id, entries)
        self.store.save(entries)
        return cancelled

    def _notification(
        self,
        course: CourseRecurrence,
        entry: ScheduledMirrorEntry,
        prefs: MirrorPreferences,
    ) -> QueuedNotification:
        index_text = ""
        if course.index_from and course.index_to:
            index_text = f" Index: {course.index_from} - {course.index_to}."
        elif course.index_from:
            index_text = f" Index: {course.index_from}."
        return QueuedNotification(
            identifier=entry.identifier,
            fire_at=entry.reminder_fire_at,
            title=LOCAL_REMINDER_TITLE,
            body=f"Your next class, {course.course_name}, starts in {prefs.lead_minutes} minutes.{index_text}",
            data={
                "type": "class_reminder",
                "courseId": course.course_id,
                "courseName": course.course_name,
                "source": "local",
                "classDate": entry.session_start.isoformat(),
            },
            sound=resolve_sound(prefs.sound),
        )

    async def _schedule_course(
        self,
        course: CourseRecurrence,
        prefs: MirrorPreferences,
        entries: Dict[str, ScheduledMirrorEntry],
        now: datetime,
    ) -> int:
        scheduled = 0
        for occurrence in upcoming_occurrences(course, now, self.horizon_days, self.tz):
            decision = fire_instant(occurrence, prefs.lead_minutes, now)
            if not decision.is_scheduled:
                continue
            entry = ScheduledMirrorEntry(
                identifier=mirror_identifier(course.course_id, occurrence.session_start),
                course_id=course.course_id,
                course_name=course.course_name,
                session_start=occurrence.session_start,
                reminder_fire_at=decision.fire_at,
            )
            await self.queue.cancel(entry.identifier)
            await self.queue.schedule(self._notification(course, entry, prefs))
            entries[entry.identifier] = entry
            scheduled += 1
        return scheduled

    async def _sweep(self, entries: Dict[str, ScheduledMirrorEntry], now: datetime) -> int:
        """Drop entries whose fire time has passed, from the record and the queue."""
        expired = [i for i, e in entries.items() if e.reminder_fire_at <= now]
        for identifier in expired:
            entries.pop(identifier)
            await self.queue.cancel(identifier)
        for notification in await self._queued_reminders():
            if notification.fire_at <= now:
                await self.queue.cancel(notification.identifier)
        return len(expired)

    async def sync(self, trigger: SyncTrigger = SyncTrigger.APP_FOREGROUND, now: Optional[datetime] = None) -> SyncResult:
        """Bring the queue in line with current courses and preferences."""
        now = self._now(now)
        prefs = await self.load_preferences()

        if not prefs.notifications_enabled:
            return SyncResult(cancelled=await self.cancel_all(), skipped_reason="notifications_disabled")

        if not await self.queue.permission_granted():
            logger.info("Notification permission not granted, skipping reminder sync")
            return SyncResult(skipped_reason="permission_denied")

        if prefs.lead_minutes <= 0:
            return SyncResult(cancelled=await self.cancel_all(), skipped_reason="reminders_disabled")

        result = SyncResult()
        if trigger == SyncTrigger.LEAD_TIME_CHANGE:
            logger.info(f"Reminder time changed to {prefs.lead_minutes} minutes, cancelling all existing reminders")
            result.cancelled += await self.cancel_all()

        courses = list(await self.fetch_courses())
        entries = self.store.load()

        # Courses the user is no longer enrolled in
        enrolled = {course.course_id for course in courses}
        for stale in {e.course_id for e in entries.values()} - enrolled:
            result.cancelled += await self._cancel_course(stale, entries)

        for course in courses:
            try:
                result.cancelled += await self._cancel_course(course.course_id, entries)
                result.scheduled += await self._schedule_course(course, prefs, entries, now)
                result.courses += 1
            except Exception as e:
                logger.error(f"Error scheduling reminders for course {course.course_id}: {e}")

        await self._sweep(entries, now)
        self.store.save(entries, last_sync=now)

        logger.info(
            f"Reminder sync ({trigger.value}) completed: {result.scheduled} scheduled across "
            f"{result.courses} courses with {prefs.lead_minutes} minute reminder"
        )
        return result

    async def validate(self, now: Optional[datetime] = None) -> int:
        """Resync if the queue lost any reminder the record expects.

        Returns:
            Number of missing reminders found
        """
        now = self._now(now)
        prefs = await self.load_preferences()
        if not prefs.notifications_enabled:
            return 0

        if not self.store.exists():
            await self.sync(SyncTrigger.VALIDATION, now)
            return 0

        expected = {i for i, e in self.store.load().items() if e.reminder_fire_at > now}
        queued = {n.identifier for n in await self._queued_reminders()}
        missing = expected - queued
        if missing:
            logger.info(f"Found {len(missing)} missing notifications, resyncing...")
            await self.sync(SyncTrigger.VALIDATION, now)
        return len(missing)

    async def handle_course_update(self, course_id: str, now: Optional[datetime] = None) -> SyncResult:
        """A course's schedule changed: drop its reminders and resync."""
        logger.info(f"Handling course update for course {course_id}")
        await self.cancel_course(course_id)
        return await self.sync(SyncTrigger.COURSE_UPDATE, now)

    def scheduled_identifiers(self) -> set:
        return set(self.store.load())
