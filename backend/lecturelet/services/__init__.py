"""Services for reminder scheduling, delivery, and diagnostics."""
from .device_registry import DeviceRegistry
from .dispatcher import DispatchGateway
from .local_mirror import LocalMirrorScheduler
from .rate_limiter import SmsRateLimiter
from .scheduler import SchedulerService

__all__ = ["DeviceRegistry", "DispatchGateway", "LocalMirrorScheduler", "SmsRateLimiter", "SchedulerService"]
