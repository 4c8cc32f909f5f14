"""Weekly quota for the text-message channel.

Weeks start Monday 00:00 in the configured zone. Push volume is not
counted here.
"""
from datetime import datetime, timedelta, tzinfo
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_timezone, settings
from ..models.sms_log import SmsSendLog
from ..utils.timeutils import to_naive_utc


def start_of_week(now: datetime, tz: tzinfo) -> datetime:
    """Monday 00:00 of the week containing ``now``, as an aware datetime in ``tz``."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=tz)
    local = now.astimezone(tz)
    monday = local.date() - timedelta(days=local.weekday())
    return datetime(monday.year, monday.month, monday.day, tzinfo=tz)


class SmsRateLimiter:
    """Counts a user's SmsSendLog rows for the current week."""

    def __init__(
        self,
        session: AsyncSession,
        limit: Optional[int] = None,
        tz: Optional[tzinfo] = None,
    ):
        self.session = session
        self.limit = settings.sms_weekly_limit if limit is None else limit
        self.tz = tz or get_timezone()

    def _now(self, now: Optional[datetime]) -> datetime:
        return now or datetime.now(self.tz)

    async def weekly_count(self, user_id: str, now: Optional[datetime] = None) -> int:
        week_start = to_naive_utc(start_of_week(self._now(now), self.tz))
        result = await self.session.execute(
            select(func.count(SmsSendLog.id)).where(
                SmsSendLog.user_id == user_id,
                SmsSendLog.sent_at >= week_start,
            )
        )
        return result.scalar() or 0

    async def has_exceeded(
        self,
        user_id: str,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        limit = self.limit if limit is None else limit
        return await self.weekly_count(user_id, now) >= limit

    async def remaining(self, user_id: str, now: Optional[datetime] = None) -> int:
        return max(0, self.limit - await self.weekly_count(user_id, now))
