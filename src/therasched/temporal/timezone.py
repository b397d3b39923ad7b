# src/therasched/temporal/timezone.py
"""
@brief
Timezone-correct conversion between organization-local wall-clock time and UTC.

@details
Every other component consumes dates and times through this module.
Local calendar dates are `datetime.date` values and local times are
"HH:MM" strings; internally times are minute-of-day integers.

Offsets are resolved by `zoneinfo` at the instant being converted, never
as a fixed per-zone offset. Wall-clock times that fall into a DST gap or
overlap are interpreted with `fold=0`:
    - gap (spring-forward): the pre-transition offset is used;
    - overlap (fall-back): the first (earlier) occurrence is used.

Malformed input raises `TemporalInputError` here, before any other
component sees it.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from therasched.errors import TemporalInputError

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60
MAX_DATE_RANGE_DAYS = 366

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


class Weekday(str, Enum):
    """Day of week, named the way schedules and rule payloads spell it."""

    SUNDAY = "sunday"
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"

    @classmethod
    def from_date(cls, d: date) -> Weekday:
        # date.weekday(): Monday == 0
        return _PY_WEEKDAYS[d.weekday()]

    @classmethod
    def parse(cls, value: str | Weekday) -> Weekday:
        """Accept full names or three-letter prefixes in any case."""
        if isinstance(value, Weekday):
            return value
        if not isinstance(value, str) or len(value.strip()) < 3:
            raise TemporalInputError(
                message=f"Invalid day of week: {value!r}",
                source="timezone.Weekday.parse",
                suggested_action="Use a day name such as 'monday' or 'mon'.",
            )
        key = value.strip().lower()
        for day in cls:
            if day.value.startswith(key):
                return day
        raise TemporalInputError(
            message=f"Invalid day of week: {value!r}",
            source="timezone.Weekday.parse",
            suggested_action="Use a day name such as 'monday' or 'mon'.",
        )


_PY_WEEKDAYS = (
    Weekday.MONDAY,
    Weekday.TUESDAY,
    Weekday.WEDNESDAY,
    Weekday.THURSDAY,
    Weekday.FRIDAY,
    Weekday.SATURDAY,
    Weekday.SUNDAY,
)


class TimeOfDay(str, Enum):
    """Coarse time-of-day windows used for client preferences."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"

    @classmethod
    def of_minutes(cls, minutes: int) -> TimeOfDay:
        m = minutes % MINUTES_PER_DAY
        if m < 12 * 60:
            return cls.MORNING
        if m < 17 * 60:
            return cls.AFTERNOON
        return cls.EVENING


# ------------------------------
# Parsing
# ------------------------------
def parse_local_date(value: str | date) -> date:
    """
    @brief
    Parse a local calendar date.

    @details
    Accepts `date` instances and ISO strings "YYYY-MM-DD". A trailing
    time component ("2024-03-10T09:00") is ignored, only the calendar
    part is kept. `datetime` instances are rejected because they name
    an instant, not a local date.

    @raises
        TemporalInputError
            On any unparseable value.
    """
    if isinstance(value, datetime):
        raise TemporalInputError(
            message=f"Expected a local calendar date, got datetime {value.isoformat()}",
            source="timezone.parse_local_date",
            suggested_action="Pass a date or 'YYYY-MM-DD' string.",
        )
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise TemporalInputError(
            message=f"Invalid date type: {type(value).__name__}",
            source="timezone.parse_local_date",
            suggested_action="Pass a date or 'YYYY-MM-DD' string.",
        )
    raw = value.strip().split("T", 1)[0]
    try:
        return date.fromisoformat(raw)
    except ValueError as e:
        raise TemporalInputError(
            message=f"Invalid date format: {value!r}",
            source="timezone.parse_local_date",
            suggested_action="Use ISO format 'YYYY-MM-DD'.",
        ) from e


def time_to_minutes(value: str, *, allow_end_of_day: bool = False) -> int:
    """
    @brief
    Convert "HH:MM" (optionally "HH:MM:SS") into minutes after midnight.

    @details
    Seconds are accepted and truncated. "24:00" is accepted only when
    `allow_end_of_day` is set, for window ends that close at midnight.

    @raises
        TemporalInputError
            On malformed strings or out-of-range components.
    """
    if not isinstance(value, str):
        raise TemporalInputError(
            message=f"Invalid time type: {type(value).__name__}",
            source="timezone.time_to_minutes",
            suggested_action="Pass a 'HH:MM' string.",
        )
    match = _TIME_RE.match(value.strip())
    if match is None:
        raise TemporalInputError(
            message=f"Invalid time format: {value!r}",
            source="timezone.time_to_minutes",
            suggested_action="Use 24-hour 'HH:MM' format.",
        )
    hours, minutes = int(match.group(1)), int(match.group(2))
    seconds = int(match.group(3) or 0)

    if allow_end_of_day and hours == 24 and minutes == 0 and seconds == 0:
        return MINUTES_PER_DAY
    if hours > 23 or minutes > 59 or seconds > 59:
        raise TemporalInputError(
            message=f"Time out of range: {value!r}",
            source="timezone.time_to_minutes",
            suggested_action="Hours must be 00-23 and minutes 00-59.",
        )
    return hours * 60 + minutes


def parse_local_time(value: str) -> str:
    """Validate a local time string and return it normalized to "HH:MM"."""
    return minutes_to_time(time_to_minutes(value))


def minutes_to_time(minutes: int) -> str:
    """Format minutes after midnight as "HH:MM", wrapping past midnight."""
    m = int(minutes) % MINUTES_PER_DAY
    return f"{m // 60:02d}:{m % 60:02d}"


def add_minutes(local_time: str, minutes: int) -> str:
    """Add a duration to a wall-clock time, wrapping modulo one day."""
    return minutes_to_time(time_to_minutes(local_time) + int(minutes))


# ------------------------------
# Zones
# ------------------------------
def is_valid_timezone(name: str | None) -> bool:
    if not name or not isinstance(name, str):
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def resolve_timezone(name: str | None) -> ZoneInfo:
    """
    @brief
    Resolve an IANA zone name, falling back to UTC.

    @details
    Organizations with a missing or unknown timezone keep working in UTC;
    the fallback is logged so the misconfiguration stays visible.
    """
    if is_valid_timezone(name):
        return ZoneInfo(name)  # type: ignore[arg-type]
    logger.warning("Unknown timezone %r, falling back to UTC", name)
    return ZoneInfo("UTC")


# ------------------------------
# Conversions
# ------------------------------
def to_utc(local_date: str | date, local_time: str, tz: str | None) -> datetime:
    """
    @brief
    Convert a local wall-clock date and time into a UTC instant.

    @details
    The offset is the one in effect at that wall-clock time in `tz`.
    Non-existent and ambiguous times resolve with `fold=0`, see module doc.

    @returns
        Timezone-aware datetime in UTC.
    """
    # (1) Validate inputs at the boundary
    d = parse_local_date(local_date)
    minutes = time_to_minutes(local_time)
    zone = resolve_timezone(tz)

    # (2) Attach the zone and let zoneinfo pick the offset for this instant
    wall = datetime.combine(d, time(minutes // 60, minutes % 60), tzinfo=zone)
    return wall.replace(fold=0).astimezone(timezone.utc)


def to_local(instant: datetime | str, tz: str | None) -> tuple[date, str]:
    """
    @brief
    Convert an instant into (local date, "HH:MM") in `tz`.

    @details
    Naive datetimes are treated as UTC. ISO strings with "Z" or an
    explicit offset are accepted.
    """
    if isinstance(instant, str):
        raw = instant.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            instant = datetime.fromisoformat(raw)
        except ValueError as e:
            raise TemporalInputError(
                message=f"Invalid instant: {instant!r}",
                source="timezone.to_local",
                suggested_action="Use ISO-8601 with offset, e.g. '2024-03-10T14:00:00Z'.",
            ) from e
    if not isinstance(instant, datetime):
        raise TemporalInputError(
            message=f"Invalid instant type: {type(instant).__name__}",
            source="timezone.to_local",
            suggested_action="Pass a datetime or ISO-8601 string.",
        )
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)

    local = instant.astimezone(resolve_timezone(tz))
    return local.date(), f"{local.hour:02d}:{local.minute:02d}"


def day_of_week(local_date: str | date, tz: str | None) -> Weekday:
    """
    A local calendar date names the same weekday in every zone, so `tz`
    is only validated here.
    """
    resolve_timezone(tz)
    return Weekday.from_date(parse_local_date(local_date))


def add_days(local_date: str | date, n: int, tz: str | None) -> date:
    """
    Shift a local calendar date by `n` days.

    Calendar arithmetic on the date itself; adding 24h to an instant would
    land on the wrong wall-clock hour across a DST change.
    """
    resolve_timezone(tz)
    return parse_local_date(local_date) + timedelta(days=int(n))


def utc_range_covering_local_day(
    local_date: str | date, tz: str | None
) -> tuple[datetime, datetime]:
    """
    @brief
    Half-open UTC range [start, end) covering one local calendar day.

    @details
    Start is local midnight, end is the next local midnight. On DST
    transition days the range spans 23 or 25 hours.
    """
    d = parse_local_date(local_date)
    start = to_utc(d, "00:00", tz)
    end = to_utc(d + timedelta(days=1), "00:00", tz)
    return start, end


def week_dates(week_start: str | date) -> list[date]:
    """The seven local dates of the week beginning at `week_start`."""
    start = parse_local_date(week_start)
    return [start + timedelta(days=i) for i in range(7)]


def local_date_range(start: str | date, end: str | date) -> list[date]:
    """Inclusive list of local dates, limited to one year."""
    first = parse_local_date(start)
    last = parse_local_date(end)
    if last < first:
        raise TemporalInputError(
            message=f"Date range end {last} precedes start {first}",
            source="timezone.local_date_range",
            suggested_action="Swap the bounds or fix the end date.",
        )
    span = (last - first).days + 1
    if span > MAX_DATE_RANGE_DAYS:
        raise TemporalInputError(
            message=f"Date range of {span} days exceeds {MAX_DATE_RANGE_DAYS}",
            source="timezone.local_date_range",
            suggested_action="Request at most one year at a time.",
        )
    return [first + timedelta(days=i) for i in range(span)]


__all__ = [
    "MINUTES_PER_DAY",
    "Weekday",
    "TimeOfDay",
    "parse_local_date",
    "parse_local_time",
    "time_to_minutes",
    "minutes_to_time",
    "add_minutes",
    "is_valid_timezone",
    "resolve_timezone",
    "to_utc",
    "to_local",
    "day_of_week",
    "add_days",
    "utc_range_covering_local_day",
    "week_dates",
    "local_date_range",
]
