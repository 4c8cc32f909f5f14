"""Dispatch gateway - server-side reminder scan and course broadcasts.

Scan policy (at-least-once with a durable dedup record):

- A (user, course, session) pair is due when its fire instant falls in
  ``(previous_scan_at, now]``. Consecutive windows tile the timeline, so every
  fire instant belongs to exactly one scan.
- Before any device is contacted a ``reminder_deliveries`` row is committed
  as ``pending`` with its attempt count bumped. After delivery it becomes
  ``sent`` if at least one device accepted the payload, otherwise ``failed``.
- Rows left ``pending`` (crash mid-delivery) or ``failed`` are retried on
  later scans while the session has not started and attempts remain. This
  can duplicate a reminder after a crash, but never silently drops one.
- Per-device failures never cause redelivery to the devices that succeeded:
  one success marks the pair sent.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..config import get_timezone, settings
from ..database import async_session
from ..errors import CourseNotFound
from ..models import Notification, ReminderDelivery
from ..models.reminder_delivery import STATUS_FAILED, STATUS_PENDING, STATUS_SENT
from ..utils.db_utils import retry_on_lock
from ..utils.timeutils import to_naive_utc
from .device_registry import DeviceRegistry
from .enrollments import EnrollmentDirectory, Student, recurrence_from_course
from .occurrences import ReminderOccurrence, next_occurrence, upcoming_occurrences
from .push_sender import BulkPushResult, PushSenderService, build_message, push_sender_service
from .reminder_rule import ReminderStatus, fire_instant
from .sms_sender import SmsRecipient, SmsSenderService, sms_sender_service, truncate_message

logger = logging.getLogger(__name__)

REMINDER_TYPE = "lecture_reminder"
REMINDER_TITLE = "Class Reminder"
SMS_ESCALATION_WINDOW = timedelta(minutes=30)

DedupKey = Tuple[str, str, datetime]


@dataclass
class ScanSummary:
    window_start: datetime
    window_end: datetime
    users: int = 0
    due: int = 0
    sent: int = 0
    failed: int = 0
    retried: int = 0
    skipped: int = 0
    errors: int = 0


@dataclass
class BroadcastResult:
    in_app_count: int = 0
    push_count: int = 0
    push_sent: int = 0
    push_failed: int = 0
    sms_sent: int = 0
    sms_refused: int = 0
    sms_failed: int = 0
    tokens_deactivated: List[str] = field(default_factory=list)


def format_session_time(value: datetime) -> str:
    """"9:05 AM" style clock time."""
    return value.strftime("%I:%M %p").lstrip("0")


def index_range_text(index_from: Optional[str], index_to: Optional[str]) -> str:
    if index_from and index_to:
        return f" Index: {index_from} - {index_to}."
    if index_from:
        return f" Index: {index_from}."
    return ""


def reminder_body(student: Student, occurrence: ReminderOccurrence, lead_minutes: int) -> str:
    venue = f" at {occurrence.venue}" if occurrence.venue else ""
    return (
        f"Hi {student.display_name}, your {occurrence.course_name} class starts in "
        f"{lead_minutes} minutes{venue}. Time: {format_session_time(occurrence.session_start)}"
        f"{index_range_text(occurrence.index_from, occurrence.index_to)}"
    )


def personalize(message: str, student_name: str) -> str:
    if student_name in message:
        return message
    return f"Hi {student_name}, {message}"


def with_course_name(message: str, course_name: str, course_code: Optional[str] = None) -> str:
    if course_name and course_name in message:
        return message
    if course_code and course_code in message:
        return message
    return f"{course_name}: {message}" if course_name else message


class DispatchGateway:
    """Finds due reminders and fans payloads out to every active device."""

    def __init__(
        self,
        session_factory=async_session,
        push_sender: PushSenderService = push_sender_service,
        sms_sender: SmsSenderService = sms_sender_service,
        tz: Optional[tzinfo] = None,
        horizon_days: Optional[int] = None,
        default_lead_minutes: Optional[int] = None,
        max_concurrent: Optional[int] = None,
        max_attempts: Optional[int] = None,
        scan_interval: Optional[timedelta] = None,
    ):
        self.session_factory = session_factory
        self.push_sender = push_sender
        self.sms_sender = sms_sender
        self.tz = tz or get_timezone()
        self.horizon_days = horizon_days or settings.reminder_horizon_days
        self.default_lead_minutes = (
            settings.default_reminder_minutes if default_lead_minutes is None else default_lead_minutes
        )
        self.max_concurrent = max_concurrent or settings.max_concurrent_users
        self.max_attempts = max_attempts or settings.reminder_max_attempts
        self.scan_interval = scan_interval or timedelta(minutes=settings.reminder_scan_interval_minutes)

    def lead_minutes_for(self, student: Student) -> int:
        if student.reminder_minutes is None:
            return self.default_lead_minutes
        return student.reminder_minutes

    # ------------------------------------------------------------------
    # Periodic scan
    # ------------------------------------------------------------------

    async def _retry_keys(self, now: datetime) -> Set[DedupKey]:
        """Pairs left pending or failed whose session is still ahead."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(ReminderDelivery.user_id, ReminderDelivery.course_id, ReminderDelivery.session_start)
                .where(
                    ReminderDelivery.status.in_([STATUS_PENDING, STATUS_FAILED]),
                    ReminderDelivery.attempts < self.max_attempts,
                    ReminderDelivery.session_start > to_naive_utc(now),
                )
            )
            return {(user_id, course_id, start) for user_id, course_id, start in result.all()}

    def due_occurrences(
        self,
        student: Student,
        courses,
        window_start: datetime,
        now: datetime,
        retry_keys: Set[DedupKey] = frozenset(),
    ) -> List[Tuple[ReminderOccurrence, bool]]:
        """Occurrences to remind a student about now, flagged when they are retries."""
        lead = self.lead_minutes_for(student)
        due = []
        for course in courses:
            for occurrence in upcoming_occurrences(course, now, self.horizon_days, self.tz):
                key = (student.user_id, occurrence.course_id, to_naive_utc(occurrence.session_start))
                decision = fire_instant(occurrence, lead, window_start)
                if decision.status == ReminderStatus.DISABLED:
                    return []
                if decision.is_scheduled and decision.fire_at <= now:
                    due.append((occurrence, False))
                elif key in retry_keys:
                    due.append((occurrence, True))
        return due

    async def _claim(self, session, student: Student, occurrence: ReminderOccurrence, fire_at, now) -> Optional[ReminderDelivery]:
        """Record an attempt before delivering. Returns None when the pair must be skipped."""
        session_start = to_naive_utc(occurrence.session_start)
        result = await session.execute(
            select(ReminderDelivery).where(
                ReminderDelivery.user_id == student.user_id,
                ReminderDelivery.course_id == occurrence.course_id,
                ReminderDelivery.session_start == session_start,
            )
        )
        delivery = result.scalar_one_or_none()

        if delivery is not None:
            if delivery.status == STATUS_SENT or delivery.attempts >= self.max_attempts:
                return None
        else:
            delivery = ReminderDelivery(
                user_id=student.user_id,
                course_id=occurrence.course_id,
                session_start=session_start,
                fire_at=to_naive_utc(fire_at),
                attempts=0,
            )
            session.add(delivery)

        delivery.status = STATUS_PENDING
        delivery.attempts = (delivery.attempts or 0) + 1
        delivery.last_attempt_at = to_naive_utc(now)
        try:
            await retry_on_lock(session.commit)
        except IntegrityError:
            # Another scan claimed the same pair first
            await session.rollback()
            return None
        return delivery

    async def deliver_reminder(self, student: Student, occurrence: ReminderOccurrence, now: datetime) -> Optional[bool]:
        """Deliver one reminder to all of a student's active devices.

        Returns:
            True if sent, False if every device failed, None if skipped as a duplicate
        """
        lead = self.lead_minutes_for(student)
        fire_at = occurrence.session_start - timedelta(minutes=lead)

        async with self.session_factory() as session:
            delivery = await self._claim(session, student, occurrence, fire_at, now)
            if delivery is None:
                return None

            registry = DeviceRegistry(session)
            devices = await registry.list_active(student.user_id)
            if not devices:
                logger.info(f"User {student.user_id} has no active devices, reminder for {occurrence.course_id} not delivered")
                delivery.status = STATUS_FAILED
                await retry_on_lock(session.commit)
                return False

            title = REMINDER_TITLE
            body = reminder_body(student, occurrence, lead)
            messages = [
                build_message(
                    device.destination_token,
                    device.platform,
                    title,
                    body,
                    data={
                        "type": REMINDER_TYPE,
                        "courseId": occurrence.course_id,
                        "courseName": occurrence.course_name,
                        "classDate": occurrence.session_start.isoformat(),
                    },
                    sound_preference=student.notification_sound,
                )
                for device in devices
            ]
            logger.info(
                f"Sending reminder for {occurrence.course_name} to user {student.user_id} "
                f"({len(messages)} device{'s' if len(messages) != 1 else ''})"
            )
            result = await self.push_sender.send_bulk(messages)

            for token in result.tokens_to_remove:
                await registry.deactivate(token, now)
            for delivered in result.results:
                if delivered.success:
                    await registry.touch(delivered.token, now)

            delivery.devices_sent = result.sent
            delivery.devices_failed = result.failed
            if result.sent > 0:
                delivery.status = STATUS_SENT
                delivery.sent_at = to_naive_utc(now)
                session.add(Notification(
                    user_id=student.user_id,
                    title=title,
                    message=body,
                    type=REMINDER_TYPE,
                    course_id=occurrence.course_id,
                ))
            else:
                delivery.status = STATUS_FAILED
            await retry_on_lock(session.commit)

        if result.sent == 0:
            logger.error(f"Failed to send reminder to any device for user {student.user_id}")
        return result.sent > 0

    async def run_scan(self, now: Optional[datetime] = None, previous_scan_at: Optional[datetime] = None) -> ScanSummary:
        """Run one scan over all eligible enrollments.

        Args:
            now: Scan instant (defaults to the current time)
            previous_scan_at: Upper bound of the previous scan's window;
                defaults to one scan interval ago

        Returns:
            Counts for the run
        """
        now = now or datetime.now(self.tz)
        if now.tzinfo is None:
            now = now.replace(tzinfo=self.tz)
        window_start = previous_scan_at or (now - self.scan_interval)
        if window_start.tzinfo is None:
            window_start = window_start.replace(tzinfo=self.tz)
        summary = ScanSummary(window_start=window_start, window_end=now)

        async with self.session_factory() as session:
            candidates = await EnrollmentDirectory(session).reminder_candidates(now)
        retry_keys = await self._retry_keys(now)
        summary.users = len(candidates)

        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def process_user(student: Student, courses):
            async with semaphore:
                try:
                    due = self.due_occurrences(student, courses, window_start, now, retry_keys)
                except Exception as e:
                    logger.error(f"Error computing reminders for user {student.user_id}: {e}")
                    summary.errors += 1
                    return
                for occurrence, is_retry in due:
                    summary.due += 1
                    if is_retry:
                        summary.retried += 1
                    try:
                        outcome = await self.deliver_reminder(student, occurrence, now)
                    except Exception as e:
                        logger.error(
                            f"Error delivering reminder for user {student.user_id}, "
                            f"course {occurrence.course_id}: {e}"
                        )
                        summary.errors += 1
                        continue
                    if outcome is None:
                        summary.skipped += 1
                    elif outcome:
                        summary.sent += 1
                    else:
                        summary.failed += 1

        await asyncio.gather(*[process_user(student, courses) for student, courses in candidates])

        logger.info(
            f"Reminder scan: {summary.users} users, {summary.due} due, {summary.sent} sent, "
            f"{summary.failed} failed, {summary.skipped} skipped, {summary.errors} errors"
        )
        return summary

    # ------------------------------------------------------------------
    # Broadcast
    # ------------------------------------------------------------------

    async def broadcast(
        self,
        course_id: str,
        title: str,
        message: str,
        type: str = "announcement",
        data: Optional[dict] = None,
        send_sms: bool = False,
        now: Optional[datetime] = None,
    ) -> BroadcastResult:
        """Notify every current enrollee of a course right away.

        Every enrollee gets an in-app record; pushes go only to enrollees with
        active access and notifications enabled. With ``send_sms`` and the
        next session less than 30 minutes away, eligible enrollees with a
        phone number also get a text, subject to the weekly quota.

        Raises:
            CourseNotFound: If the course store has no such course
        """
        now = now or datetime.now(self.tz)
        if now.tzinfo is None:
            now = now.replace(tzinfo=self.tz)
        result = BroadcastResult()

        async with self.session_factory() as session:
            directory = EnrollmentDirectory(session)
            course = await directory.get_course(course_id)
            if course is None:
                raise CourseNotFound(course_id)

            enrollees = await directory.enrollees(course_id, now)
            if not enrollees:
                return result

            course_message = with_course_name(message, course.course_name, course.course_code)
            registry = DeviceRegistry(session)
            push_messages = []
            sms_recipients = []
            escalate = send_sms and self._session_imminent(course, now)

            for student in enrollees:
                personalized = personalize(course_message, student.display_name)
                session.add(Notification(
                    user_id=student.user_id,
                    title=title,
                    message=personalized,
                    type=type,
                    course_id=course_id,
                ))
                result.in_app_count += 1

                if not student.eligible_for_push:
                    continue

                payload = {
                    **(data or {}),
                    "type": type,
                    "courseId": course_id,
                    "courseName": course.course_name,
                }
                for device in await registry.list_active(student.user_id):
                    push_messages.append(build_message(
                        device.destination_token,
                        device.platform,
                        title,
                        personalized,
                        data=payload,
                        sound_preference=student.notification_sound,
                    ))

                if escalate and student.phone_number:
                    sms_recipients.append(SmsRecipient(
                        user_id=student.user_id,
                        phone_number=student.phone_number,
                        message=truncate_message(
                            f"Hi {student.display_name}, URGENT: {course_message}",
                            self.sms_sender.config.max_length,
                        ),
                        type=type,
                        course_id=course_id,
                    ))

            await retry_on_lock(session.commit)
            result.push_count = len(push_messages)

            if push_messages:
                push_result = await self._send_push(push_messages)
                result.push_sent = push_result.sent
                result.push_failed = push_result.failed
                for token in push_result.tokens_to_remove:
                    await registry.deactivate(token, now)
                    result.tokens_deactivated.append(token)
                for delivered in push_result.results:
                    if delivered.success:
                        await registry.touch(delivered.token, now)
            else:
                logger.info(f"No push recipients for course {course_id} (no devices or notifications disabled)")

            if sms_recipients:
                sms_result = await self.sms_sender.send_bulk(session, sms_recipients, now=now)
                result.sms_sent = sms_result.sent
                result.sms_refused = sms_result.refused
                result.sms_failed = sms_result.failed

        logger.info(
            f"Enrolled users of course {course_id} notified: {result.in_app_count} in-app, "
            f"{result.push_count} push ({result.push_sent} ok, {result.push_failed} failed), "
            f"{result.sms_sent} sms"
        )
        return result

    async def _send_push(self, messages) -> BulkPushResult:
        try:
            return await self.push_sender.send_bulk(messages)
        except Exception as e:
            logger.error(f"Error sending push to enrolled users: {e}")
            return BulkPushResult(failed=len(messages))

    def _session_imminent(self, course, now: datetime) -> bool:
        upcoming = next_occurrence(recurrence_from_course(course), now, self.tz)
        if upcoming is None:
            return False
        return timedelta(0) < upcoming.session_start - now <= SMS_ESCALATION_WINDOW


# Global instance
dispatch_gateway = DispatchGateway()
