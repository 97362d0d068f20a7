# ===== clinicbook/services/availability/slot_engine.py =====
"""
Slot engine - pure computation of bookable start times.

Given a clinic-local calendar date, the clinic's weekly operating hours,
the appointments that might conflict and the clinic's booking rules,
returns the ordered list of slots a patient may book for one service.
No I/O; identical inputs always produce identical output.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Union

from clinicbook.models.appointment import NON_BLOCKING_STATUSES
from clinicbook.utils.time_utils import (
    format_local_time,
    get_zone,
    isoformat_z,
    parse_calendar_date,
    parse_time_to_minutes,
    to_utc,
    utcnow,
    wall_time_exists,
    weekday_for_date,
    zoned_to_utc,
)


class SlotEngineError(ValueError):
    """Invalid slot engine input (never clamped)"""


@dataclass(frozen=True)
class BookingRules:
    lead_time_minutes: int = 60
    max_advance_days: int = 30
    slot_step_minutes: int = 15


DEFAULT_BOOKING_RULES = BookingRules()


@dataclass(frozen=True)
class HoursRow:
    day_of_week: int  # 0=Monday, 6=Sunday
    open_time: str
    close_time: str
    is_closed: bool = False


@dataclass(frozen=True)
class BusyInterval:
    start_time: Union[datetime, str]
    end_time: Union[datetime, str]
    status: Optional[str] = None


@dataclass(frozen=True)
class AvailableSlot:
    start_time: datetime
    end_time: datetime
    label: str

    def to_dict(self):
        return {
            "startTime": isoformat_z(self.start_time),
            "endTime": isoformat_z(self.end_time),
            "label": self.label,
        }


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    # Half-open intervals: touching endpoints do not overlap
    return a_start < b_end and b_start < a_end


def is_blocking_status(status: Optional[str]) -> bool:
    return (status or "").upper() not in NON_BLOCKING_STATUSES


def compute_slots(
        date: str,
        timezone: str,
        service_duration_minutes: int,
        operating_hours: Iterable,
        existing_appointments: Iterable = (),
        rules: Optional[BookingRules] = None,
        now: Optional[datetime] = None,
) -> List[AvailableSlot]:
    """
    Compute bookable slots for one service on one clinic-local date.

    Args:
        date: Clinic-local calendar date, strictly YYYY-MM-DD
        timezone: IANA timezone of the clinic
        service_duration_minutes: Slot width, positive integer
        operating_hours: Rows exposing day_of_week/open_time/close_time/is_closed
            (OperatingHours ORM rows or HoursRow)
        existing_appointments: Rows exposing start_time/end_time/status
        rules: Lead time, advance window and step; defaults apply when None
        now: Reference instant, defaults to the current time

    Returns:
        Slots in chronological order (possibly empty)

    Raises:
        SlotEngineError: malformed date, timezone or time strings,
            non-positive duration/step, or a day outside the datetime range
    """
    rules = rules or DEFAULT_BOOKING_RULES

    try:
        local_date = parse_calendar_date(date)
        zone = get_zone(timezone)
    except ValueError as e:
        raise SlotEngineError(str(e)) from e

    if not _is_positive_int(service_duration_minutes):
        raise SlotEngineError("service_duration_minutes must be a positive integer.")
    if not _is_positive_int(rules.slot_step_minutes):
        raise SlotEngineError("slot_step_minutes must be a positive integer.")

    weekday = weekday_for_date(local_date)
    hours = next(
        (row for row in operating_hours if row.day_of_week == weekday and not row.is_closed),
        None,
    )
    if hours is None:
        return []

    try:
        open_minutes = parse_time_to_minutes(hours.open_time)
        close_minutes = parse_time_to_minutes(hours.close_time)
    except ValueError as e:
        raise SlotEngineError(str(e)) from e

    if close_minutes <= open_minutes:
        return []

    latest_start_minutes = close_minutes - service_duration_minutes
    if latest_start_minutes < open_minutes:
        return []

    now = to_utc(now) if now is not None else utcnow()
    min_start = now + timedelta(minutes=rules.lead_time_minutes)
    max_start = now + timedelta(days=rules.max_advance_days)

    blocked = [
        (to_utc(appointment.start_time), to_utc(appointment.end_time))
        for appointment in existing_appointments
        if is_blocking_status(appointment.status)
    ]

    duration = timedelta(minutes=service_duration_minutes)
    try:
        close_time = zoned_to_utc(local_date, close_minutes, zone)
    except ValueError as e:
        raise SlotEngineError(str(e)) from e

    slots: List[AvailableSlot] = []
    seen_starts = set()
    for start_minutes in range(open_minutes, latest_start_minutes + 1, rules.slot_step_minutes):
        try:
            start_time = zoned_to_utc(local_date, start_minutes, zone)
        except ValueError as e:
            raise SlotEngineError(str(e)) from e

        # Skipped wall times (spring-forward gap) are not bookable
        if not wall_time_exists(start_time, local_date, start_minutes, zone):
            continue
        if start_time in seen_starts:
            continue
        seen_starts.add(start_time)

        # Elapsed time, also across a transition
        end_time = start_time + duration
        if end_time > close_time:
            continue

        if start_time < min_start:
            continue
        if start_time > max_start:
            continue
        if any(_overlaps(start_time, end_time, busy_start, busy_end) for busy_start, busy_end in blocked):
            continue

        slots.append(AvailableSlot(
            start_time=start_time,
            end_time=end_time,
            label=format_local_time(start_time, timezone),
        ))

    return slots
