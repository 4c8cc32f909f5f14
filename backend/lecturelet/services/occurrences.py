"""Occurrence calculator - turns a weekly course recurrence into concrete sessions.

Pure functions, no I/O. Course times are wall-clock strings in the school's
zone ("10:00 AM" or "14:30"); occurrences are aware datetimes in that zone.

A time string that cannot be parsed drops that day's session instead of
raising, so one badly entered course never blocks reminders for the rest.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 7

_TIME_12H = re.compile(r"(\d{1,2}):(\d{2})\s*(AM|PM)", re.IGNORECASE)
_TIME_24H = re.compile(r"(\d{1,2}):(\d{2})")


class Weekday(str, Enum):
    """Days a course can meet on, named as the course store names them."""

    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def of(cls, day: date) -> "Weekday":
        """Weekday of a calendar date."""
        return _WEEK[day.weekday()]

    @classmethod
    def parse(cls, name: str) -> Optional["Weekday"]:
        """Case-insensitive lookup; unknown names give None."""
        if not isinstance(name, str):
            return None
        return _BY_NAME.get(name.strip().lower())


_WEEK = list(Weekday)
_BY_NAME = {day.value.lower(): day for day in Weekday}


@dataclass(frozen=True)
class DayOverride:
    """Per-weekday replacement for a course's default time and venue."""

    start: Optional[str] = None
    end: Optional[str] = None
    venue: Optional[str] = None


@dataclass(frozen=True)
class CourseRecurrence:
    """Weekly schedule of one course, as supplied by the course store."""

    course_id: str
    course_name: str
    days: frozenset = frozenset()
    default_start: Optional[str] = None
    default_end: Optional[str] = None
    venue: Optional[str] = None
    per_day_override: Mapping[Weekday, DayOverride] = field(default_factory=dict)
    index_from: Optional[str] = None
    index_to: Optional[str] = None

    def session_for(self, weekday: Weekday) -> tuple[Optional[str], Optional[str], Optional[str]]:
        """Resolve (start, end, venue) for a weekday, falling back to the defaults."""
        override = self.per_day_override.get(weekday)
        if override is None:
            return self.default_start, self.default_end, self.venue
        return (
            override.start or self.default_start,
            override.end or self.default_end,
            override.venue or self.venue,
        )


@dataclass(frozen=True)
class ReminderOccurrence:
    """One concrete upcoming session of a course."""

    course_id: str
    course_name: str
    session_start: datetime
    session_end: Optional[datetime] = None
    venue: Optional[str] = None
    index_from: Optional[str] = None
    index_to: Optional[str] = None

    @property
    def weekday(self) -> Weekday:
        return Weekday.of(self.session_start.date())

    @property
    def epoch_ms(self) -> int:
        """Session start as milliseconds since the epoch, used in identifiers and dedup keys."""
        return int(self.session_start.timestamp() * 1000)


def parse_time(value: Optional[str]) -> Optional[time]:
    """Parse "10:00 AM" (12-hour) or "14:30" (24-hour) into a time.

    Returns None for anything else, including out-of-range hours or minutes.
    """
    if not value or not isinstance(value, str):
        return None

    match = _TIME_12H.search(value)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if not 1 <= hours <= 12 or minutes > 59:
            return None
        meridiem = match.group(3).upper()
        if meridiem == "PM" and hours != 12:
            hours += 12
        if meridiem == "AM" and hours == 12:
            hours = 0
        return time(hours, minutes)

    match = _TIME_24H.search(value)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            return None
        return time(hours, minutes)

    return None


def upcoming_occurrences(
    recurrence: CourseRecurrence,
    now: datetime,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    tz: Optional[tzinfo] = None,
) -> list[ReminderOccurrence]:
    """List the course's sessions that start after ``now`` within the horizon.

    Args:
        recurrence: The course's weekly schedule
        now: Reference instant. Naive values are read as wall-clock time in
            ``tz``, or as UTC when no zone is given
        horizon_days: Number of calendar days to look at, starting with today
        tz: Zone the course times are expressed in (defaults to ``now``'s zone)

    Returns:
        Occurrences in ascending order of start time
    """
    if not recurrence.days:
        return []

    zone = tz or now.tzinfo or timezone.utc
    if now.tzinfo is None:
        now = now.replace(tzinfo=zone)
    local_today = now.astimezone(zone).date()

    occurrences = []
    for offset in range(horizon_days):
        day = local_today + timedelta(days=offset)
        weekday = Weekday.of(day)
        if weekday not in recurrence.days:
            continue

        start_str, end_str, venue = recurrence.session_for(weekday)
        start_time = parse_time(start_str)
        if start_time is None:
            logger.debug(f"Skipping {recurrence.course_id} on {weekday.value}: unparseable start {start_str!r}")
            continue

        session_start = datetime.combine(day, start_time, tzinfo=zone)
        if session_start <= now:
            continue

        end_time = parse_time(end_str)
        session_end = datetime.combine(day, end_time, tzinfo=zone) if end_time else None

        occurrences.append(ReminderOccurrence(
            course_id=recurrence.course_id,
            course_name=recurrence.course_name,
            session_start=session_start,
            session_end=session_end,
            venue=venue,
            index_from=recurrence.index_from,
            index_to=recurrence.index_to,
        ))

    return occurrences


def next_occurrence(
    recurrence: CourseRecurrence,
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> Optional[ReminderOccurrence]:
    """The first session after ``now`` within a week, if any."""
    upcoming = upcoming_occurrences(recurrence, now, DEFAULT_HORIZON_DAYS, tz)
    return upcoming[0] if upcoming else None


def recurrence_from_mapping(data: Mapping) -> CourseRecurrence:
    """Build a CourseRecurrence from a course-store style mapping.

    Accepts both camelCase and snake_case keys. Unknown weekday names are
    ignored.
    """
    def pick(*keys):
        for key in keys:
            if data.get(key) is not None:
                return data[key]
        return None

    days = frozenset(
        day for day in (Weekday.parse(name) for name in (pick("days") or [])) if day is not None
    )

    overrides = {}
    for name, entry in (pick("day_times", "dayTimes", "per_day_override") or {}).items():
        weekday = Weekday.parse(name)
        if weekday is None or not isinstance(entry, Mapping):
            continue
        overrides[weekday] = DayOverride(
            start=entry.get("start_time") or entry.get("startTime") or entry.get("start"),
            end=entry.get("end_time") or entry.get("endTime") or entry.get("end"),
            venue=entry.get("venue"),
        )

    return CourseRecurrence(
        course_id=str(pick("course_id", "id", "_id")),
        course_name=pick("course_name", "courseName") or "",
        days=days,
        default_start=pick("default_start", "start_time", "startTime"),
        default_end=pick("default_end", "end_time", "endTime"),
        venue=pick("venue"),
        per_day_override=overrides,
        index_from=pick("index_from", "indexFrom"),
        index_to=pick("index_to", "indexTo"),
    )
