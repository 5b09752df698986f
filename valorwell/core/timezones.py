"""
Timezone helpers for appointment times.

Appointments are stored in UTC (timestamptz). Staff enter and read them in
their own IANA zone, so the API converts at the edges:

    start_at = combine_date_time_to_utc("2025-03-14", "09:00", "America/Chicago")
    local = split_utc_to_local(start_at, "America/Chicago")  # ("2025-03-14", "09:00")
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "America/New_York"

SUPPORTED_TIMEZONES = (
    "America/New_York",
    "America/Chicago",
    "America/Denver",
    "America/Phoenix",
    "America/Los_Angeles",
    "America/Anchorage",
    "Pacific/Honolulu",
)

_SHORT_OFFSET = re.compile(r"[+-]\d{2}$")
_ZERO_OFFSET = re.compile(r"[+-]00(:00)?$")
_DATE_FORMAT = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_FORMAT = re.compile(r"^\d{1,2}:\d{2}(:\d{2})?$")

DateTimeLike = Union[datetime, str]


def is_valid_timezone(tz_name: Optional[str]) -> bool:
    if not tz_name:
        return False
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def get_zone(tz_name: Optional[str]) -> ZoneInfo:
    """ZoneInfo for tz_name, falling back to DEFAULT_TIMEZONE when unset or unknown."""
    if is_valid_timezone(tz_name):
        return ZoneInfo(tz_name)  # type: ignore[arg-type]
    return ZoneInfo(DEFAULT_TIMEZONE)


def normalize_timestamp(timestamp: str) -> str:
    """
    Normalize a backend timestamp to ISO 8601.

    "2025-12-05 14:00:00+00" -> "2025-12-05T14:00:00Z"
    "2025-12-05 09:00:00+05" -> "2025-12-05T09:00:00+05:00"
    """
    if not timestamp:
        return timestamp

    normalized = timestamp.replace(" ", "T", 1)
    if "T" not in normalized:
        # date only, "-05" is the day
        return normalized
    match = _ZERO_OFFSET.search(normalized)
    if match:
        return normalized[: match.start()] + "Z"
    if _SHORT_OFFSET.search(normalized):
        return normalized + ":00"
    return normalized


def parse_utc_timestamp(value: DateTimeLike) -> datetime:
    """Parse a backend timestamp into an aware UTC datetime. Naive input is taken as UTC."""
    if isinstance(value, datetime):
        dt = value
    else:
        normalized = normalize_timestamp(value)
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        dt = datetime.fromisoformat(normalized)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_backend_timestamp(dt: datetime) -> str:
    return parse_utc_timestamp(dt).isoformat().replace("+00:00", "Z")


def combine_date_time_to_utc(date_str: str, time_str: str, tz_name: str) -> datetime:
    """
    Interpret a local date (YYYY-MM-DD) and time (HH:mm[:ss]) in tz_name and
    return the UTC instant.

    Raises ValueError on malformed input or an unknown zone.
    """
    if not date_str or not time_str:
        raise ValueError("Date and time are required")
    if not _DATE_FORMAT.match(date_str):
        raise ValueError(f"Invalid date format: {date_str}. Expected YYYY-MM-DD")
    if not _TIME_FORMAT.match(time_str):
        raise ValueError(f"Invalid time format: {time_str}. Expected HH:mm or HH:mm:ss")
    if not is_valid_timezone(tz_name):
        raise ValueError(f"Invalid timezone: {tz_name}")

    try:
        local_date = date.fromisoformat(date_str)
        parts = [int(p) for p in time_str.split(":")]
        local_time = time(parts[0], parts[1], parts[2] if len(parts) > 2 else 0)
    except ValueError as e:
        raise ValueError(f"Invalid date/time combination: {date_str} {time_str} in {tz_name}") from e

    local_dt = datetime.combine(local_date, local_time, tzinfo=ZoneInfo(tz_name))
    return local_dt.astimezone(timezone.utc)


def split_utc_to_local(value: DateTimeLike, tz_name: Optional[str] = None) -> tuple[str, str]:
    """(YYYY-MM-DD, HH:mm) of a UTC instant in tz_name, for pre-filling forms."""
    local = parse_utc_timestamp(value).astimezone(get_zone(tz_name))
    return local.strftime("%Y-%m-%d"), local.strftime("%H:%M")


def format_in_timezone(value: DateTimeLike, tz_name: Optional[str], fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
    return parse_utc_timestamp(value).astimezone(get_zone(tz_name)).strftime(fmt)


def format_local_time(value: DateTimeLike, tz_name: Optional[str]) -> str:
    """Display form used in appointment lists, e.g. "9:00 AM"."""
    local = parse_utc_timestamp(value).astimezone(get_zone(tz_name))
    return local.strftime("%I:%M %p").lstrip("0")


def calculate_end_time(start_at: DateTimeLike, duration_minutes: int) -> datetime:
    return parse_utc_timestamp(start_at) + timedelta(minutes=duration_minutes)


def now_in_timezone(tz_name: Optional[str]) -> datetime:
    return datetime.now(timezone.utc).astimezone(get_zone(tz_name))


def today_in_timezone(tz_name: Optional[str]) -> date:
    return now_in_timezone(tz_name).date()
