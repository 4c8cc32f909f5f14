"""Reminder rule - when should a reminder for an occurrence fire."""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from .occurrences import ReminderOccurrence


class ReminderStatus(str, Enum):
    SCHEDULED = "scheduled"
    EXPIRED = "expired"
    DISABLED = "disabled"


@dataclass(frozen=True)
class ReminderDecision:
    status: ReminderStatus
    fire_at: Optional[datetime] = None

    @property
    def is_scheduled(self) -> bool:
        return self.status == ReminderStatus.SCHEDULED


def fire_instant(
    occurrence: ReminderOccurrence,
    lead_minutes: Optional[int],
    now: datetime,
) -> ReminderDecision:
    """Decide when to remind about an occurrence.

    A lead time of zero or less means the user wants no reminders. A fire
    instant at or before ``now`` is reported as expired, never returned, so
    callers cannot schedule into the past.
    """
    if lead_minutes is None or lead_minutes <= 0:
        return ReminderDecision(ReminderStatus.DISABLED)

    fire_at = occurrence.session_start - timedelta(minutes=lead_minutes)
    if fire_at <= now:
        return ReminderDecision(ReminderStatus.EXPIRED)
    return ReminderDecision(ReminderStatus.SCHEDULED, fire_at)
