"""Timezone helpers shared by the slot engine and booking admission"""
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA timezone name, raising ValueError for unknown zones"""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name!r}") from e


def parse_calendar_date(value: str) -> date:
    """Parse a strict YYYY-MM-DD string"""
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ValueError("Invalid date. Expected YYYY-MM-DD.")
    return date.fromisoformat(value)


def parse_time_to_minutes(value: str) -> int:
    """'09:30' -> 570"""
    match = TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Invalid time of day: {value!r}. Expected HH:MM.")

    hours, minutes = int(match.group(1)), int(match.group(2))
    # 24:00 is accepted as end of day
    if minutes > 59 or hours > 24 or (hours == 24 and minutes != 0):
        raise ValueError(f"Invalid time of day: {value!r}.")
    return hours * 60 + minutes


def zoned_to_utc(local_date: date, minutes_since_midnight: int, tz: ZoneInfo) -> datetime:
    """Convert a wall-clock time on a local date to an aware UTC instant.

    Minutes past 24:00 roll over to the next day. Wall-clock times that fall
    in a DST gap are resolved with fold=0, as zoneinfo does; use
    wall_time_exists() to detect them. Raises ValueError when the instant
    falls outside the representable range.
    """
    day_offset, minutes = divmod(minutes_since_midnight, 24 * 60)
    try:
        wall_date = local_date + timedelta(days=day_offset)
        local = datetime.combine(wall_date, time(minutes // 60, minutes % 60), tzinfo=tz)
        return local.astimezone(timezone.utc)
    except OverflowError as e:
        raise ValueError(f"Date out of range: {local_date.isoformat()}") from e


def wall_time_exists(instant: datetime, local_date: date, minutes_since_midnight: int, tz: ZoneInfo) -> bool:
    """False when the wall-clock time was skipped by a DST transition"""
    day_offset, minutes = divmod(minutes_since_midnight, 24 * 60)
    local = instant.astimezone(tz)
    return (
        local.date() == local_date + timedelta(days=day_offset)
        and local.hour * 60 + local.minute == minutes
    )


def weekday_for_date(local_date: date) -> int:
    """Weekday index of a clinic-local calendar date (0=Monday, 6=Sunday)"""
    return local_date.weekday()


def to_utc(value: Union[datetime, str]) -> datetime:
    """Normalize an ISO string or datetime to an aware UTC datetime.

    Naive values are treated as UTC. Raises ValueError when unparseable or
    when the UTC instant is out of range (e.g. 0001-01-01T00:00:00+05:00).
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    elif not isinstance(value, datetime):
        raise ValueError(f"Not a datetime: {value!r}")

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    try:
        return value.astimezone(timezone.utc)
    except OverflowError as e:
        raise ValueError(f"Datetime out of range: {value!r}") from e


def local_date_key(instant: datetime, tz_name: str) -> str:
    """Clinic-local calendar date of an instant, as YYYY-MM-DD"""
    zone = get_zone(tz_name)
    utc = to_utc(instant)
    try:
        return utc.astimezone(zone).date().isoformat()
    except OverflowError as e:
        raise ValueError(f"Datetime out of range in {tz_name}: {utc!r}") from e


def format_local_time(instant: datetime, tz_name: str) -> str:
    """24h HH:MM label of an instant in the clinic timezone"""
    return to_utc(instant).astimezone(get_zone(tz_name)).strftime("%H:%M")


def isoformat_z(instant: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix"""
    utc = to_utc(instant)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
