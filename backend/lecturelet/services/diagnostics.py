"""Notification diagnostics - why each enrollee of a course does or doesn't get pushes.

Read-only report for operators; the scheduling paths never consult it.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import CourseNotFound
from .device_registry import DeviceRegistry
from .enrollments import EnrollmentDirectory

logger = logging.getLogger(__name__)

ISSUE_NO_ACCESS = "no_access"
ISSUE_NOTIFICATIONS_OFF = "notifications_off"
ISSUE_NO_DEVICES = "no_devices"
ISSUE_NEEDS_MIGRATION = "needs_migration"


@dataclass
class EnrolleeDiagnosis:
    user_id: str
    full_name: str
    active_access: bool
    notifications_enabled: bool
    device_count: int
    has_legacy_token: bool

    @property
    def would_receive_push(self) -> bool:
        return self.active_access and self.notifications_enabled and self.device_count > 0

    @property
    def blocking_issues(self) -> List[str]:
        issues = []
        if not self.active_access:
            issues.append(ISSUE_NO_ACCESS)
        if not self.notifications_enabled:
            issues.append(ISSUE_NOTIFICATIONS_OFF)
        if self.device_count == 0:
            issues.append(ISSUE_NO_DEVICES)
            if self.has_legacy_token:
                issues.append(ISSUE_NEEDS_MIGRATION)
        return issues


@dataclass
class CourseDiagnostics:
    course_id: str
    course_name: str
    course_code: Optional[str] = None
    enrollees: List[EnrolleeDiagnosis] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.enrollees)

    def _count(self, predicate) -> int:
        return sum(1 for e in self.enrollees if predicate(e))

    @property
    def stats(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "has_active_access": self._count(lambda e: e.active_access),
            "no_active_access": self._count(lambda e: not e.active_access),
            "notifications_enabled": self._count(lambda e: e.notifications_enabled),
            "notifications_disabled": self._count(lambda e: not e.notifications_enabled),
            "has_device_tokens": self._count(lambda e: e.device_count > 0),
            "no_device_tokens": self._count(lambda e: e.device_count == 0),
            "has_legacy_token": self._count(lambda e: e.has_legacy_token),
            "would_receive_push": self._count(lambda e: e.would_receive_push),
            "would_not_receive_push": self._count(lambda e: not e.would_receive_push),
        }

    @property
    def issues(self) -> Dict[str, List[str]]:
        grouped = {
            ISSUE_NO_ACCESS: [],
            ISSUE_NOTIFICATIONS_OFF: [],
            ISSUE_NO_DEVICES: [],
            ISSUE_NEEDS_MIGRATION: [],
        }
        for enrollee in self.enrollees:
            for issue in enrollee.blocking_issues:
                grouped[issue].append(enrollee.full_name)
        return grouped


async def diagnose_course(
    session: AsyncSession,
    course_id: str,
    now: Optional[datetime] = None,
) -> CourseDiagnostics:
    """Build the eligibility report for one course.

    Raises:
        CourseNotFound: If the course does not exist
    """
    directory = EnrollmentDirectory(session)
    course = await directory.get_course(course_id)
    if course is None:
        raise CourseNotFound(course_id)

    registry = DeviceRegistry(session)
    report = CourseDiagnostics(
        course_id=course.id,
        course_name=course.course_name,
        course_code=course.course_code,
    )
    for student in await directory.enrollees(course_id, now):
        report.enrollees.append(EnrolleeDiagnosis(
            user_id=student.user_id,
            full_name=student.display_name,
            active_access=student.active_access,
            notifications_enabled=student.notifications_enabled,
            device_count=await registry.device_count(student.user_id),
            has_legacy_token=student.has_legacy_token,
        ))

    stats = report.stats
    logger.info(
        f"Diagnostics for {course.course_name}: {stats['would_receive_push']}/{stats['total']} "
        f"enrollees would receive push"
    )
    return report


async def diagnose_all_courses(session: AsyncSession, now: Optional[datetime] = None) -> List[CourseDiagnostics]:
    directory = EnrollmentDirectory(session)
    return [await diagnose_course(session, course_id, now) for course_id in await directory.list_course_ids()]
