"""Notification diagnostics endpoints."""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..errors import CourseNotFound
from ..schemas.diagnostics import CourseDiagnosticsResponse, EnrolleeDiagnosisResponse
from ..services.diagnostics import CourseDiagnostics, diagnose_all_courses, diagnose_course
from .deps import get_current_user_id

router = APIRouter(prefix="/api/diagnostics", tags=["diagnostics"], dependencies=[Depends(get_current_user_id)])


def _to_response(report: CourseDiagnostics) -> CourseDiagnosticsResponse:
    return CourseDiagnosticsResponse(
        course_id=report.course_id,
        course_name=report.course_name,
        course_code=report.course_code,
        stats=report.stats,
        issues=report.issues,
        enrollees=[
            EnrolleeDiagnosisResponse(
                user_id=e.user_id,
                full_name=e.full_name,
                active_access=e.active_access,
                notifications_enabled=e.notifications_enabled,
                device_count=e.device_count,
                has_legacy_token=e.has_legacy_token,
                would_receive_push=e.would_receive_push,
                blocking_issues=e.blocking_issues,
            )
            for e in report.enrollees
        ],
    )


@router.get("/courses", response_model=List[CourseDiagnosticsResponse])
async def diagnose_courses(db: AsyncSession = Depends(get_db)):
    """Eligibility report for every course."""
    return [_to_response(report) for report in await diagnose_all_courses(db)]


@router.get("/courses/{course_id}", response_model=CourseDiagnosticsResponse)
async def diagnose_one_course(course_id: str, db: AsyncSession = Depends(get_db)):
    """Why each enrollee of a course would or would not receive a push."""
    try:
        report = await diagnose_course(db, course_id)
    except CourseNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _to_response(report)
