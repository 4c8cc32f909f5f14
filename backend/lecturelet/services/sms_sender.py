"""Text-message sender - rate-limited secondary notification channel."""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import SmsLimitExceeded
from ..models.sms_log import SmsSendLog
from ..utils.db_utils import retry_on_lock
from ..utils.timeutils import to_naive_utc, utcnow
from .rate_limiter import SmsRateLimiter

logger = logging.getLogger(__name__)

_PHONE_NOISE = re.compile(r"[\s\-()+]")


@dataclass
class SmsConfig:
    """Text-message provider configuration."""
    api_url: str = ""
    api_key: str = ""
    sender_id: str = "LectureLet"
    timeout_seconds: float = 30.0
    max_length: int = 160

    @classmethod
    def from_settings(cls, s=settings) -> "SmsConfig":
        return cls(
            api_url=s.sms_api_url,
            # Keys pasted into env files often carry stray whitespace
            api_key=re.sub(r"\s", "", s.sms_api_key or ""),
            sender_id=(s.sms_sender_id or "LectureLet").strip(),
            max_length=s.sms_max_length,
        )


@dataclass
class SmsRecipient:
    user_id: str
    phone_number: str
    message: str
    type: str = "announcement"
    course_id: Optional[str] = None


@dataclass
class SmsBulkResult:
    sent: int = 0
    failed: int = 0
    refused: int = 0
    errors: List[str] = field(default_factory=list)


def normalize_phone(phone_number: str) -> str:
    return _PHONE_NOISE.sub("", phone_number or "")


def truncate_message(message: str, max_length: int = 160) -> str:
    if len(message) <= max_length:
        return message
    return message[:max_length - 3] + "..."


class SmsSenderService:
    """Sends text messages, enforcing the weekly per-user quota first."""

    def __init__(self, config: Optional[SmsConfig] = None):
        self._config = config or SmsConfig()

    def configure(self, config: SmsConfig):
        self._config = config
        if not config.api_key:
            logger.warning("SMS API key not configured - text messages disabled")

    @property
    def config(self) -> SmsConfig:
        return self._config

    async def _post(self, phone_number: str, message: str) -> bool:
        """Call the provider. Returns True when it reports success."""
        if not self._config.api_key or not self._config.api_url:
            logger.warning("SMS not configured - missing API key or URL")
            return False

        payload = {
            "type": 1,
            "senderid": self._config.sender_id,
            "messages": [{"recipient": phone_number, "message": message}],
        }
        try:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                response = await client.post(
                    self._config.api_url,
                    json=payload,
                    headers={"X-API-VASKEY": self._config.api_key},
                )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"SMS sending failed: {e}")
            return False

        if data.get("status") == 1 or data.get("code") == "SMS01" or data.get("message") == "Success":
            return True
        logger.error(f"SMS provider rejected message: {data.get('message') or data.get('code')}")
        return False

    async def send(
        self,
        session: AsyncSession,
        user_id: str,
        phone_number: str,
        message: str,
        type: str = "announcement",
        course_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Send one text message to a user.

        Returns:
            True if the provider accepted the message (a log row is written)

        Raises:
            SmsLimitExceeded: If the weekly quota is used up. Nothing is sent
                or logged in that case.
        """
        limiter = SmsRateLimiter(session)
        count = await limiter.weekly_count(user_id, now)
        if count >= limiter.limit:
            logger.info(f"SMS refused for user {user_id}: weekly limit reached ({count}/{limiter.limit})")
            raise SmsLimitExceeded(user_id, count, limiter.limit)

        formatted = normalize_phone(phone_number)
        body = truncate_message(message, self._config.max_length)
        logger.info(f"Sending SMS to {formatted}...")

        if not await self._post(formatted, body):
            return False

        session.add(SmsSendLog(
            user_id=user_id,
            phone_number=formatted,
            message=body,
            type=type,
            course_id=course_id,
            sent_at=to_naive_utc(now) if now else utcnow(),
        ))
        await retry_on_lock(session.commit)
        return True

    async def send_bulk(
        self,
        session: AsyncSession,
        recipients: List[SmsRecipient],
        now: Optional[datetime] = None,
    ) -> SmsBulkResult:
        """Send to several users one after another, counting refusals separately."""
        result = SmsBulkResult()
        for recipient in recipients:
            try:
                ok = await self.send(
                    session,
                    recipient.user_id,
                    recipient.phone_number,
                    recipient.message,
                    type=recipient.type,
                    course_id=recipient.course_id,
                    now=now,
                )
            except SmsLimitExceeded as e:
                result.refused += 1
                result.errors.append(str(e))
                continue
            if ok:
                result.sent += 1
            else:
                result.failed += 1
        return result


# Global instance
sms_sender_service = SmsSenderService()
