"""Push notification sender - APNs for iOS, FCM for Android.

Deliveries go out in bounded chunks. Inside a chunk every destination is
attempted independently:

- a provider rejection of one destination (``TransportError``) is final for
  that destination and flags dead tokens for deactivation;
- a timeout is a plain failure, not retried within the same run;
- any other error is a transport-level failure and the affected messages are
  re-attempted up to ``chunk_attempts`` times before being counted as failed.

A failing chunk never stops the remaining chunks from being sent.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import httpx
from aioapns import APNs, NotificationRequest, PushType

from ..config import settings
from ..errors import TransportError
from .device_registry import short_token
from .sounds import SoundChannel, resolve_sound

logger = logging.getLogger(__name__)

FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"

# Provider error codes meaning the destination itself is dead
INVALID_TOKEN_CODES = frozenset({
    # FCM (admin SDK names and HTTP v1 names)
    "messaging/invalid-registration-token",
    "messaging/registration-token-not-registered",
    "messaging/invalid-argument",
    "messaging/mismatched-credential",
    "UNREGISTERED",
    "INVALID_ARGUMENT",
    "SENDER_ID_MISMATCH",
    # APNs
    "BadDeviceToken",
    "Unregistered",
    "DeviceTokenNotForTopic",
})


@dataclass
class PushConfig:
    """Transport configuration."""
    apns_key_path: str = ""  # Path to .p8 key file
    apns_key_id: str = ""
    apns_team_id: str = ""
    apns_bundle_id: str = ""
    apns_use_sandbox: bool = True
    fcm_project_id: str = ""
    fcm_access_token: str = ""
    chunk_size: int = 500
    timeout_seconds: float = 10.0
    chunk_attempts: int = 2

    @classmethod
    def from_settings(cls, s=settings) -> "PushConfig":
        return cls(
            apns_key_path=s.apns_key_path or "",
            apns_key_id=s.apns_key_id or "",
            apns_team_id=s.apns_team_id or "",
            apns_bundle_id=s.apns_bundle_id or "",
            apns_use_sandbox=s.apns_use_sandbox,
            fcm_project_id=s.fcm_project_id or "",
            fcm_access_token=s.fcm_access_token or "",
            chunk_size=s.push_chunk_size,
            timeout_seconds=s.push_timeout_seconds,
            chunk_attempts=s.push_chunk_attempts,
        )

    @property
    def apns_configured(self) -> bool:
        return all([self.apns_key_path, self.apns_key_id, self.apns_team_id, self.apns_bundle_id])

    @property
    def fcm_configured(self) -> bool:
        return bool(self.fcm_project_id and self.fcm_access_token)


@dataclass
class PushMessage:
    """One payload addressed to one destination token."""
    token: str
    platform: str
    title: str
    body: str
    data: Dict[str, str] = field(default_factory=dict)
    sound: SoundChannel = field(default_factory=lambda: resolve_sound("default"))
    badge: int = 1


@dataclass
class DeliveryResult:
    token: str
    success: bool
    error: Optional[str] = None
    invalid_token: bool = False


@dataclass
class BulkPushResult:
    sent: int = 0
    failed: int = 0
    results: List[DeliveryResult] = field(default_factory=list)
    errors: List[dict] = field(default_factory=list)

    @property
    def tokens_to_remove(self) -> List[str]:
        return [r.token for r in self.results if r.invalid_token]

    @property
    def success(self) -> bool:
        return self.failed == 0


def build_message(
    token: str,
    platform: str,
    title: str,
    body: str,
    data: Optional[dict] = None,
    sound_preference=None,
    badge: Optional[int] = None,
) -> PushMessage:
    """Assemble a push message with string-valued data and the resolved sound channel."""
    payload = {key: str(value) for key, value in (data or {}).items() if value is not None}
    payload.setdefault("type", "lecture_reminder")
    return PushMessage(
        token=token,
        platform=platform,
        title=title,
        body=body,
        data=payload,
        sound=resolve_sound(sound_preference),
        badge=1 if badge is None else badge,
    )


class ApnsTransport:
    """iOS delivery through aioapns."""

    platform = "ios"

    def __init__(self, config: PushConfig):
        self._config = config
        self._client: Optional[APNs] = None

    def _get_client(self) -> APNs:
        # Created lazily: aioapns needs a running event loop
        if self._client is None:
            self._client = APNs(
                key=self._config.apns_key_path,
                key_id=self._config.apns_key_id,
                team_id=self._config.apns_team_id,
                topic=self._config.apns_bundle_id,
                use_sandbox=self._config.apns_use_sandbox,
            )
            logger.info(f"APNs client configured (sandbox={self._config.apns_use_sandbox})")
        return self._client

    async def send(self, message: PushMessage) -> None:
        aps = {
            "alert": {"title": message.title, "body": message.body},
            "badge": message.badge,
        }
        if not message.sound.is_silent:
            aps["sound"] = message.sound.sound_file

        payload = {"aps": aps}
        payload.update(message.data)

        request = NotificationRequest(
            device_token=message.token,
            message=payload,
            push_type=PushType.ALERT,
        )
        response = await self._get_client().send_notification(request)
        if not response.is_successful:
            code = response.description
            raise TransportError(
                f"APNs rejected notification: {code}",
                code=code,
                invalid_token=code in INVALID_TOKEN_CODES,
            )


class FcmTransport:
    """Android delivery through the FCM HTTP v1 API."""

    platform = "android"

    def __init__(self, config: PushConfig, client: Optional[httpx.AsyncClient] = None):
        self._config = config
        self._client = client

    def _payload(self, message: PushMessage) -> dict:
        android_notification = {"channel_id": message.sound.channel_id}
        if not message.sound.is_silent:
            android_notification["sound"] = message.sound.sound_file

        aps = {"badge": message.badge}
        if not message.sound.is_silent:
            aps["sound"] = message.sound.sound_file

        return {
            "message": {
                "token": message.token,
                "notification": {"title": message.title, "body": message.body},
                "data": message.data,
                "android": {"priority": "high", "notification": android_notification},
                "apns": {"payload": {"aps": aps}},
            }
        }

    async def send(self, message: PushMessage) -> None:
        url = FCM_SEND_URL.format(project_id=self._config.fcm_project_id)
        headers = {"Authorization": f"Bearer {self._config.fcm_access_token}"}

        if self._client is not None:
            response = await self._client.post(url, json=self._payload(message), headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                response = await client.post(url, json=self._payload(message), headers=headers)

        if response.status_code == 200:
            return

        code = _fcm_error_code(response)
        if response.status_code >= 500 or response.status_code == 429:
            # Provider-side trouble, not about this destination
            response.raise_for_status()
        raise TransportError(
            f"FCM rejected notification ({response.status_code}): {code}",
            code=code,
            invalid_token=code in INVALID_TOKEN_CODES,
        )


def _fcm_error_code(response: httpx.Response) -> Optional[str]:
    try:
        error = response.json().get("error", {})
    except ValueError:
        return None
    for detail in error.get("details") or []:
        if detail.get("errorCode"):
            return detail["errorCode"]
    return error.get("status")


class PushSenderService:
    """Fans push messages out to the platform transports."""

    def __init__(self):
        self._config = PushConfig()
        self._transports: dict = {}

    def configure(self, config: PushConfig, transports: Optional[Sequence] = None):
        """Configure transports from config, or install explicit ones."""
        self._config = config
        self._transports = {}

        if transports is not None:
            for transport in transports:
                self._transports[transport.platform] = transport
            return

        if config.apns_configured:
            self._transports["ios"] = ApnsTransport(config)
        else:
            logger.warning("APNs not configured - iOS push notifications disabled")

        if config.fcm_configured:
            self._transports["android"] = FcmTransport(config)
        else:
            logger.warning("FCM not configured - Android push notifications disabled")

    @property
    def config(self) -> PushConfig:
        return self._config

    async def _deliver(self, message: PushMessage) -> DeliveryResult:
        """Send one message. Non-TransportError exceptions propagate as transport failures."""
        transport = self._transports.get(message.platform)
        if transport is None:
            return DeliveryResult(message.token, False, error=f"No transport for platform {message.platform}")

        try:
            await asyncio.wait_for(transport.send(message), timeout=self._config.timeout_seconds)
        except TransportError as e:
            logger.warning(f"Push rejected for {short_token(message.token)}: {e}")
            return DeliveryResult(message.token, False, error=str(e), invalid_token=e.invalid_token)
        except asyncio.TimeoutError:
            logger.warning(f"Push timed out for {short_token(message.token)}")
            return DeliveryResult(message.token, False, error="timeout")

        logger.debug(f"Push notification sent to {short_token(message.token)}")
        return DeliveryResult(message.token, True)

    async def _send_chunk(self, chunk: List[PushMessage], chunk_index: int, result: BulkPushResult):
        pending = list(range(len(chunk)))
        outcomes: Dict[int, DeliveryResult] = {}
        last_error: Optional[BaseException] = None

        for attempt in range(max(1, self._config.chunk_attempts)):
            if not pending:
                break
            responses = await asyncio.gather(
                *[self._deliver(chunk[i]) for i in pending],
                return_exceptions=True,
            )
            retry = []
            for i, response in zip(pending, responses):
                if isinstance(response, DeliveryResult):
                    outcomes[i] = response
                else:
                    last_error = response
                    retry.append(i)
            if retry:
                logger.error(
                    f"Push chunk {chunk_index}: transport error on {len(retry)} message(s) "
                    f"(attempt {attempt + 1}/{self._config.chunk_attempts}): {last_error}"
                )
            pending = retry

        for i in pending:
            outcomes[i] = DeliveryResult(chunk[i].token, False, error=str(last_error))
        if pending:
            result.errors.append({"chunk": chunk_index, "error": str(last_error)})

        for i in range(len(chunk)):
            outcome = outcomes[i]
            result.results.append(outcome)
            if outcome.success:
                result.sent += 1
            else:
                result.failed += 1

    async def send_bulk(self, messages: Sequence[PushMessage]) -> BulkPushResult:
        """Send many messages in bounded chunks.

        Returns:
            Aggregate counts and the per-destination results
        """
        result = BulkPushResult()
        if not messages:
            return result

        size = max(1, self._config.chunk_size)
        for chunk_index, start in enumerate(range(0, len(messages), size)):
            chunk = list(messages[start:start + size])
            try:
                await self._send_chunk(chunk, chunk_index, result)
            except Exception as e:
                logger.error(f"Error sending push chunk {chunk_index}: {e}")
                result.failed += len(chunk)
                result.errors.append({"chunk": chunk_index, "error": str(e)})

        logger.info(f"Push notifications sent: {result.sent} success, {result.failed} failed")
        return result


# Global instance
push_sender_service = PushSenderService()
