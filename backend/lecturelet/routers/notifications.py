"""Broadcast and text-message quota endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..errors import CourseNotFound
from ..schemas.notification import BroadcastRequest, BroadcastResponse, SmsQuota
from ..services.dispatcher import DispatchGateway
from ..services.rate_limiter import SmsRateLimiter
from .deps import get_current_user_id, get_gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.post("/broadcast", response_model=BroadcastResponse)
async def broadcast(
    request: BroadcastRequest,
    user_id: str = Depends(get_current_user_id),
    gateway: DispatchGateway = Depends(get_gateway),
):
    """Notify every enrollee of a course (course updates, announcements)."""
    logger.info(f"Broadcast to course {request.course_id} requested by user {user_id}")
    try:
        result = await gateway.broadcast(
            request.course_id,
            request.title,
            request.message,
            type=request.type,
            data=request.data,
            send_sms=request.send_sms,
        )
    except CourseNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return BroadcastResponse(
        in_app_count=result.in_app_count,
        push_count=result.push_count,
        push_sent=result.push_sent,
        push_failed=result.push_failed,
        sms_sent=result.sms_sent,
        sms_refused=result.sms_refused,
        sms_failed=result.sms_failed,
        tokens_deactivated=len(result.tokens_deactivated),
    )


@router.get("/sms/quota", response_model=SmsQuota)
async def get_sms_quota(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Text messages sent to the caller this week."""
    limiter = SmsRateLimiter(db)
    used = await limiter.weekly_count(user_id)
    return SmsQuota(used=used, limit=limiter.limit, remaining=max(0, limiter.limit - used))
