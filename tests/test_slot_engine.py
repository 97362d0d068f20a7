"""Unit tests for the pure slot engine."""

from datetime import datetime, timezone

import pytest

from clinicbook.services.availability.availability_service import AvailabilityService
from clinicbook.services.availability.slot_engine import (
    BookingRules,
    BusyInterval,
    HoursRow,
    SlotEngineError,
    compute_slots,
)
from tests.conftest import MANILA, MONDAY_0900_MANILA

WEEKDAY_HOURS = [HoursRow(day, "09:00", "17:00") for day in range(5)] + [
    HoursRow(5, "00:00", "00:00", is_closed=True),
    HoursRow(6, "00:00", "00:00", is_closed=True),
]
RULES = BookingRules(lead_time_minutes=60, max_advance_days=30, slot_step_minutes=15)
# Sunday 2026-03-01 08:00 Manila, far enough before Monday that lead time never bites
SUNDAY_MORNING = datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc)


def labels(slots):
    return [slot.label for slot in slots]


class TestEndToEndScenario:
    """Manila clinic, Monday 09:00 local, 30 minute service."""

    def test_first_and_last_slot(self):
        """Lead time pushes the first slot to 10:00; the last starts at 16:30."""
        slots = compute_slots(
            date="2026-03-02",
            timezone=MANILA,
            service_duration_minutes=30,
            operating_hours=WEEKDAY_HOURS,
            rules=RULES,
            now=MONDAY_0900_MANILA,
        )

        assert slots[0].label == "10:00"
        assert slots[0].start_time == datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc)
        assert slots[-1].label == "16:30"
        assert slots[-1].end_time == datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        assert len(slots) == 27

    def test_slot_serialization(self):
        """Slots serialize as UTC instants with millisecond precision."""
        slots = compute_slots("2026-03-02", MANILA, 30, WEEKDAY_HOURS, rules=RULES, now=MONDAY_0900_MANILA)

        assert slots[0].to_dict() == {
            "startTime": "2026-03-02T02:00:00.000Z",
            "endTime": "2026-03-02T02:30:00.000Z",
            "label": "10:00",
        }


class TestDeterminism:
    def test_same_inputs_same_output(self):
        """Repeated calls return identical ordered lists."""
        busy = [BusyInterval("2026-03-02T03:00:00Z", "2026-03-02T03:30:00Z", "SCHEDULED")]
        first = compute_slots("2026-03-02", MANILA, 30, WEEKDAY_HOURS, busy, RULES, MONDAY_0900_MANILA)
        second = compute_slots("2026-03-02", MANILA, 30, WEEKDAY_HOURS, busy, RULES, MONDAY_0900_MANILA)

        assert first == second
        assert [s.start_time for s in first] == sorted(s.start_time for s in first)


class TestEmptyDays:
    def test_closed_weekday(self):
        """Saturday is marked closed."""
        assert compute_slots("2026-03-07", MANILA, 30, WEEKDAY_HOURS, rules=RULES, now=SUNDAY_MORNING) == []

    def test_weekday_without_row(self):
        """A weekday with no hours row has no slots."""
        monday_only = [HoursRow(0, "09:00", "17:00")]
        assert compute_slots("2026-03-03", MANILA, 30, monday_only, rules=RULES, now=SUNDAY_MORNING) == []

    def test_service_longer_than_opening(self):
        """A 30 minute service cannot fit into a 20 minute window."""
        short_day = [HoursRow(0, "09:00", "09:20")]
        assert compute_slots("2026-03-02", MANILA, 30, short_day, rules=RULES, now=SUNDAY_MORNING) == []

    def test_close_before_open(self):
        inverted = [HoursRow(0, "17:00", "09:00")]
        assert compute_slots("2026-03-02", MANILA, 30, inverted, rules=RULES, now=SUNDAY_MORNING) == []

    def test_exact_fit(self):
        """Opening exactly as long as the service yields one slot."""
        exact = [HoursRow(0, "09:00", "09:30")]
        slots = compute_slots("2026-03-02", MANILA, 30, exact, rules=RULES, now=SUNDAY_MORNING)
        assert labels(slots) == ["09:00"]


class TestOverlapExclusion:
    """Existing blocking appointment at 10:00-10:30 local."""

    busy = [BusyInterval(
        datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc),
        datetime(2026, 3, 2, 2, 30, tzinfo=timezone.utc),
        "SCHEDULED",
    )]

    def test_overlapping_candidates_excluded(self):
        slots = labels(compute_slots("2026-03-02", MANILA, 30, WEEKDAY_HOURS, self.busy, RULES, SUNDAY_MORNING))

        assert "10:00" not in slots
        assert "10:15" not in slots
        assert "09:45" not in slots

    def test_abutting_candidates_included(self):
        """Half-open intervals: touching endpoints do not conflict."""
        slots = labels(compute_slots("2026-03-02", MANILA, 30, WEEKDAY_HOURS, self.busy, RULES, SUNDAY_MORNING))

        assert "09:30" in slots
        assert "10:30" in slots

    def test_cancelled_and_no_show_do_not_block(self):
        freed = [
            BusyInterval("2026-03-02T02:00:00Z", "2026-03-02T02:30:00Z", "CANCELLED"),
            BusyInterval("2026-03-02T02:00:00Z", "2026-03-02T02:30:00Z", "no_show"),
        ]
        slots = labels(compute_slots("2026-03-02", MANILA, 30, WEEKDAY_HOURS, freed, RULES, SUNDAY_MORNING))

        assert "10:00" in slots


class TestBookingWindow:
    def test_lead_time_boundary(self):
        """With a one minute step, 09:59 is excluded and 10:00 is the first slot."""
        rules = BookingRules(lead_time_minutes=60, max_advance_days=30, slot_step_minutes=1)
        slots = compute_slots("2026-03-02", MANILA, 30, WEEKDAY_HOURS, rules=rules, now=MONDAY_0900_MANILA)

        assert "09:59" not in labels(slots)
        assert slots[0].label == "10:00"

    def test_advance_limit_boundary(self):
        """Exactly now + 30 days is still bookable, anything later is not."""
        slots = compute_slots("2026-04-01", MANILA, 30, WEEKDAY_HOURS, rules=RULES, now=MONDAY_0900_MANILA)

        assert labels(slots) == ["09:00"]

    def test_past_day_is_empty(self):
        slots = compute_slots("2026-02-27", MANILA, 30, WEEKDAY_HOURS, rules=RULES, now=MONDAY_0900_MANILA)
        assert slots == []


class TestInvalidInput:
    @pytest.mark.parametrize("bad_date", ["2026-3-2", "02/03/2026", "", "2026-02-30"])
    def test_malformed_date(self, bad_date):
        with pytest.raises(SlotEngineError):
            compute_slots(bad_date, MANILA, 30, WEEKDAY_HOURS, rules=RULES, now=SUNDAY_MORNING)

    @pytest.mark.parametrize("duration", [0, -15, 1.5])
    def test_non_positive_duration(self, duration):
        with pytest.raises(SlotEngineError):
            compute_slots("2026-03-02", MANILA, duration, WEEKDAY_HOURS, rules=RULES, now=SUNDAY_MORNING)

    def test_non_positive_step(self):
        rules = BookingRules(lead_time_minutes=60, max_advance_days=30, slot_step_minutes=0)
        with pytest.raises(SlotEngineError):
            compute_slots("2026-03-02", MANILA, 30, WEEKDAY_HOURS, rules=rules, now=SUNDAY_MORNING)

    def test_unknown_timezone(self):
        with pytest.raises(SlotEngineError):
            compute_slots("2026-03-02", "Mars/Olympus", 30, WEEKDAY_HOURS, rules=RULES, now=SUNDAY_MORNING)


NEW_YORK = "America/New_York"
DST_RULES = BookingRules(lead_time_minutes=0, max_advance_days=30, slot_step_minutes=30)


class TestDaylightSaving:
    def test_spring_forward_gap_is_skipped(self):
        """02:00-02:59 does not exist on 2026-03-08 in New York."""
        slots = compute_slots(
            "2026-03-08", NEW_YORK, 30, [HoursRow(6, "01:00", "04:00")],
            rules=DST_RULES, now=datetime(2026, 3, 1, tzinfo=timezone.utc),
        )

        assert labels(slots) == ["01:00", "01:30", "03:00", "03:30"]
        assert [slot.to_dict()["startTime"] for slot in slots] == [
            "2026-03-08T06:00:00.000Z",
            "2026-03-08T06:30:00.000Z",
            "2026-03-08T07:00:00.000Z",
            "2026-03-08T07:30:00.000Z",
        ]

    def test_slots_stay_ordered_and_sized_across_gap(self):
        slots = compute_slots(
            "2026-03-08", NEW_YORK, 30, [HoursRow(6, "01:00", "04:00")],
            rules=DST_RULES, now=datetime(2026, 3, 1, tzinfo=timezone.utc),
        )

        starts = [slot.start_time for slot in slots]
        assert starts == sorted(set(starts))
        assert all((slot.end_time - slot.start_time).total_seconds() == 30 * 60 for slot in slots)

    def test_fall_back_overlap_has_no_duplicates(self):
        """01:00-01:59 happens twice on 2026-11-01; the first occurrence is offered."""
        rules = BookingRules(lead_time_minutes=0, max_advance_days=30, slot_step_minutes=60)
        slots = compute_slots(
            "2026-11-01", NEW_YORK, 60, [HoursRow(6, "00:00", "03:00")],
            rules=rules, now=datetime(2026, 10, 25, tzinfo=timezone.utc),
        )

        assert labels(slots) == ["00:00", "01:00", "02:00"]
        assert [slot.to_dict()["startTime"] for slot in slots] == [
            "2026-11-01T04:00:00.000Z",
            "2026-11-01T05:00:00.000Z",
            "2026-11-01T07:00:00.000Z",
        ]
        assert slots[-1].to_dict()["endTime"] == "2026-11-01T08:00:00.000Z"


class TestCalendarEdges:
    @pytest.mark.parametrize("date", ["9999-12-31", "0001-01-01"])
    def test_day_bounds_outside_datetime_range(self, date):
        with pytest.raises(SlotEngineError):
            AvailabilityService.local_day_bounds(date, MANILA)

    def test_day_bounds(self):
        start, end = AvailabilityService.local_day_bounds("2026-03-02", MANILA)

        assert start == datetime(2026, 3, 1, 16, 0, tzinfo=timezone.utc)
        assert end == datetime(2026, 3, 2, 16, 0, tzinfo=timezone.utc)
