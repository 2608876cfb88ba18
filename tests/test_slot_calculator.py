"""
Tests for window normalization and the slot calculator.
"""

from datetime import time

import pendulum
import pytest

from slotresolver.domain.models import BusinessHours, BusyPeriod, TimeRange
from slotresolver.domain.slot_calculator import SlotCalculator
from slotresolver.domain.window import normalize_window_start

TZ = "Europe/Berlin"
HOURS = BusinessHours(timezone=TZ)


def at(text: str):
    return pendulum.parse(text, tz=TZ)


def busy(attendee: str, start: str, end: str) -> BusyPeriod:
    return BusyPeriod(attendee=attendee, start=at(start), end=at(end))


def starts(slots):
    return [slot.start.format("YYYY-MM-DD HH:mm") for slot in slots]


class TestNormalizeWindowStart:
    """Tests for normalize_window_start."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("2024-11-25 11:20:15", "2024-11-25 11:20:15"),  # mid-day passes through
            ("2024-11-25 16:59", "2024-11-25 16:59"),
            ("2024-11-26 07:15", "2024-11-26 09:00"),        # before opening
            ("2024-11-26 17:00", "2024-11-27 09:00"),        # at closing
            ("2024-11-22 18:30", "2024-11-25 09:00"),        # Friday evening
            ("2024-11-23 10:00", "2024-11-25 09:00"),        # Saturday
            ("2024-11-24 08:00", "2024-11-25 09:00"),        # Sunday morning
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_window_start(at(raw), HOURS) == at(expected)

    def test_result_is_always_business_time(self):
        current = at("2024-11-22 00:00")

        for _ in range(7 * 24 * 4):
            assert HOURS.contains(normalize_window_start(current, HOURS))
            current = current.add(minutes=15)

    def test_custom_business_hours(self):
        hours = BusinessHours(
            start_time=time(8, 0), end_time=time(12, 0), exclude_weekdays=(6,), timezone=TZ
        )

        # Saturday is a working day here, 12:30 is after closing
        assert normalize_window_start(at("2024-11-23 12:30"), hours) == at("2024-11-25 08:00")
        assert normalize_window_start(at("2024-11-23 07:00"), hours) == at("2024-11-23 08:00")

    def test_instant_in_another_offset_is_read_on_the_reference_clock(self):
        # 07:30 UTC is 08:30 in Berlin, 16:30 UTC is 17:30 in Berlin
        before_opening = normalize_window_start(pendulum.datetime(2024, 11, 25, 7, 30, tz="UTC"), HOURS)
        after_closing = normalize_window_start(pendulum.datetime(2024, 11, 25, 16, 30, tz="UTC"), HOURS)

        assert before_opening == at("2024-11-25 09:00")
        assert before_opening.timezone_name == TZ
        assert after_closing == at("2024-11-26 09:00")


class TestMergeTimeline:
    """Tests for SlotCalculator.merge_timeline."""

    def test_flattens_and_sorts_across_attendees(self):
        calculator = SlotCalculator(HOURS)

        timeline = calculator.merge_timeline([
            [busy("a@example.com", "2024-11-25 14:00", "2024-11-25 15:00")],
            [
                busy("b@example.com", "2024-11-25 10:00", "2024-11-25 12:00"),
                busy("b@example.com", "2024-11-25 10:00", "2024-11-25 11:00"),
            ],
        ])

        assert timeline == [
            TimeRange(at("2024-11-25 10:00"), at("2024-11-25 11:00")),
            TimeRange(at("2024-11-25 10:00"), at("2024-11-25 12:00")),
            TimeRange(at("2024-11-25 14:00"), at("2024-11-25 15:00")),
        ]

    def test_overlapping_periods_are_not_coalesced(self):
        calculator = SlotCalculator(HOURS)

        timeline = calculator.merge_timeline([
            [busy("a@example.com", "2024-11-25 10:00", "2024-11-25 12:00")],
            [busy("b@example.com", "2024-11-25 11:00", "2024-11-25 13:00")],
        ])

        assert len(timeline) == 2

    def test_discards_periods_with_missing_bounds(self):
        calculator = SlotCalculator(HOURS)

        timeline = calculator.merge_timeline([
            [
                BusyPeriod("a@example.com", None, at("2024-11-25 12:00")),
                BusyPeriod("a@example.com", at("2024-11-25 09:00"), None),
                busy("a@example.com", "2024-11-25 13:00", "2024-11-25 14:00"),
            ],
        ])

        assert timeline == [TimeRange(at("2024-11-25 13:00"), at("2024-11-25 14:00"))]

    def test_bounds_are_converted_to_the_reference_timezone(self):
        timeline = SlotCalculator(HOURS).merge_timeline([
            [
                BusyPeriod(
                    "a@example.com",
                    pendulum.datetime(2024, 11, 25, 9, 0, tz="UTC"),
                    pendulum.datetime(2024, 11, 25, 10, 0, tz="UTC"),
                )
            ],
        ])

        assert timeline == [TimeRange(at("2024-11-25 10:00"), at("2024-11-25 11:00"))]
        assert timeline[0].start.timezone_name == TZ
        assert timeline[0].end.hour == 11

    def test_no_busy_periods(self):
        assert SlotCalculator(HOURS).merge_timeline([[], []]) == []


class TestExtractGaps:
    """Tests for SlotCalculator.extract_gaps."""

    def _gaps(self, busy_ranges, window_start, window_end, duration=30):
        timeline = [TimeRange(at(s), at(e)) for s, e in busy_ranges]
        return SlotCalculator(HOURS).extract_gaps(
            sorted_busy=timeline,
            window_start=at(window_start),
            window_end=at(window_end),
            duration_minutes=duration,
        )

    def test_empty_timeline_yields_whole_window(self):
        gaps = self._gaps([], "2024-11-25 09:00", "2024-11-25 17:00")

        assert gaps == [TimeRange(at("2024-11-25 09:00"), at("2024-11-25 17:00"))]

    def test_overlapping_busy_periods_are_absorbed(self):
        gaps = self._gaps(
            [
                ("2024-11-25 10:00", "2024-11-25 12:00"),
                ("2024-11-25 10:30", "2024-11-25 11:00"),
                ("2024-11-25 11:30", "2024-11-25 13:00"),
            ],
            "2024-11-25 09:00",
            "2024-11-25 17:00",
        )

        assert gaps == [
            TimeRange(at("2024-11-25 09:00"), at("2024-11-25 10:00")),
            TimeRange(at("2024-11-25 13:00"), at("2024-11-25 17:00")),
        ]

    def test_short_gap_is_dropped(self):
        busy_ranges = [
            ("2024-11-25 09:00", "2024-11-25 09:45"),
            ("2024-11-25 10:00", "2024-11-25 17:00"),
        ]

        assert self._gaps(busy_ranges, "2024-11-25 09:00", "2024-11-25 17:00", duration=30) == []
        assert self._gaps(busy_ranges, "2024-11-25 09:00", "2024-11-25 17:00", duration=15) == [
            TimeRange(at("2024-11-25 09:45"), at("2024-11-25 10:00"))
        ]

    def test_gap_is_clipped_to_window_end(self):
        gaps = self._gaps(
            [("2024-11-25 14:00", "2024-11-25 15:00")],
            "2024-11-25 09:00",
            "2024-11-25 12:00",
        )

        assert gaps == [TimeRange(at("2024-11-25 09:00"), at("2024-11-25 12:00"))]

    def test_busy_period_before_window_moves_cursor(self):
        gaps = self._gaps(
            [("2024-11-25 08:00", "2024-11-25 10:00")],
            "2024-11-25 09:00",
            "2024-11-25 17:00",
        )

        assert gaps == [TimeRange(at("2024-11-25 10:00"), at("2024-11-25 17:00"))]

    def test_gap_starting_outside_business_hours_is_dropped(self):
        # Free from Friday 18:00 until Monday noon, but the gap starts after closing
        gaps = self._gaps(
            [("2024-11-22 16:00", "2024-11-22 18:00")],
            "2024-11-22 16:00",
            "2024-11-25 12:00",
        )

        assert gaps == []


class TestSplitGaps:
    """Tests for SlotCalculator.split_gaps."""

    def test_slots_are_staggered_by_thirty_minutes(self):
        gaps = [TimeRange(at("2024-11-25 10:00"), at("2024-11-25 11:30"))]

        slots = SlotCalculator(HOURS).split_gaps(gaps, duration_minutes=60)

        assert starts(slots) == ["2024-11-25 10:00", "2024-11-25 10:30"]
        assert all(slot.time_range.duration_minutes() == 60 for slot in slots)

    def test_step_does_not_depend_on_duration(self):
        gaps = [TimeRange(at("2024-11-25 09:00"), at("2024-11-25 10:00"))]

        slots = SlotCalculator(HOURS).split_gaps(gaps, duration_minutes=15)

        assert starts(slots) == ["2024-11-25 09:00", "2024-11-25 09:30"]

    def test_starts_outside_business_hours_are_skipped(self):
        gaps = [TimeRange(at("2024-11-25 16:00"), at("2024-11-26 10:00"))]

        slots = SlotCalculator(HOURS).split_gaps(gaps, duration_minutes=30)

        assert starts(slots) == [
            "2024-11-25 16:00",
            "2024-11-25 16:30",
            "2024-11-26 09:00",
            "2024-11-26 09:30",
        ]

    def test_slot_may_end_after_closing(self):
        gaps = [TimeRange(at("2024-11-25 16:00"), at("2024-11-25 18:00"))]

        slots = SlotCalculator(HOURS).split_gaps(gaps, duration_minutes=60)

        assert starts(slots) == ["2024-11-25 16:00", "2024-11-25 16:30"]
        assert slots[-1].end == at("2024-11-25 17:30")

    def test_participants_are_attached(self):
        gaps = [TimeRange(at("2024-11-25 09:00"), at("2024-11-25 09:30"))]

        slots = SlotCalculator(HOURS).split_gaps(gaps, 30, participants=["a@example.com"])

        assert slots[0].participants == ["a@example.com"]


class TestFindAvailableSlots:
    """End-to-end tests of the pure pipeline."""

    def test_free_business_day(self):
        """A free weekday offers every half hour from 09:00 to 16:30."""
        slots = SlotCalculator(HOURS).find_available_slots(
            window_start=at("2024-11-25 09:00"),
            window_end=at("2024-11-25 17:00"),
            busy_periods=[[], []],
            duration_minutes=30,
        )

        assert len(slots) == 16
        assert slots[0].start == at("2024-11-25 09:00")
        assert slots[-1].start == at("2024-11-25 16:30")
        assert all(slot.end <= at("2024-11-25 17:00") for slot in slots)

    def test_single_busy_hour(self):
        slots = SlotCalculator(HOURS).find_available_slots(
            window_start=at("2024-11-25 09:00"),
            window_end=at("2024-11-25 17:00"),
            busy_periods=[[busy("a@example.com", "2024-11-25 10:00", "2024-11-25 11:00")]],
            duration_minutes=30,
        )

        slot_starts = starts(slots)
        assert slot_starts[:3] == ["2024-11-25 09:00", "2024-11-25 09:30", "2024-11-25 11:00"]
        assert slot_starts[-1] == "2024-11-25 16:30"
        assert "2024-11-25 10:00" not in slot_starts
        assert "2024-11-25 10:30" not in slot_starts
        assert len(slots) == 14

    def test_invariants_over_a_week(self):
        busy_periods = [
            [
                busy("a@example.com", "2024-11-25 09:30", "2024-11-25 10:15"),
                busy("a@example.com", "2024-11-26 13:00", "2024-11-26 15:00"),
                busy("a@example.com", "2024-11-28 00:00", "2024-11-28 12:00"),
            ],
            [
                busy("b@example.com", "2024-11-25 10:00", "2024-11-25 11:40"),
                busy("b@example.com", "2024-11-27 09:00", "2024-11-27 16:45"),
                BusyPeriod("b@example.com", None, at("2024-11-29 12:00")),
            ],
        ]
        window_start = at("2024-11-25 09:00")
        window_end = at("2024-12-02 09:00")
        calculator = SlotCalculator(HOURS)

        slots = calculator.find_available_slots(window_start, window_end, busy_periods, 45)
        again = calculator.find_available_slots(window_start, window_end, busy_periods, 45)

        assert slots
        assert [s.time_range for s in slots] == [s.time_range for s in again]

        busy_ranges = calculator.merge_timeline(busy_periods)
        for slot in slots:
            assert slot.time_range.duration_minutes() == 45
            assert HOURS.contains(slot.start)
            assert not any(slot.time_range.overlaps(b) for b in busy_ranges)

        assert [s.start for s in slots] == sorted(s.start for s in slots)

    def test_fetch_order_does_not_change_result(self):
        a = [busy("a@example.com", "2024-11-25 10:00", "2024-11-25 11:00")]
        b = [busy("b@example.com", "2024-11-25 10:30", "2024-11-25 12:00")]
        calculator = SlotCalculator(HOURS)

        first = calculator.find_available_slots(at("2024-11-25 09:00"), at("2024-11-25 17:00"), [a, b], 30)
        second = calculator.find_available_slots(at("2024-11-25 09:00"), at("2024-11-25 17:00"), [b, a], 30)

        assert [s.time_range for s in first] == [s.time_range for s in second]

    def test_utc_busy_periods_keep_slots_in_business_hours(self):
        """A fetcher reporting UTC instants must not shift slots out of Berlin hours."""
        utc_busy = BusyPeriod(
            "a@example.com",
            pendulum.datetime(2024, 11, 25, 7, 0, tz="UTC"),
            pendulum.datetime(2024, 11, 25, 9, 0, tz="UTC"),
        )

        slots = SlotCalculator(HOURS).find_available_slots(
            window_start=at("2024-11-25 09:00"),
            window_end=at("2024-11-25 18:00"),
            busy_periods=[[utc_busy]],
            duration_minutes=30,
        )

        assert starts(slots)[0] == "2024-11-25 10:00"
        assert starts(slots)[-1] == "2024-11-25 16:30"
        assert len(slots) == 14
        assert all(slot.start.timezone_name == TZ for slot in slots)
