"""
Core business logic for calculating offerable meeting slots.

Pure domain logic without any external dependencies (no API calls, no
database, no I/O). The calendar data has already been fetched by the time
anything in here runs.
"""

import logging
from typing import Iterable, List, Sequence

from pendulum import DateTime

from .models import BusinessHours, BusyPeriod, TimeRange, TimeSlot
from .window import DEFAULT_BUSINESS_HOURS

logger = logging.getLogger(__name__)

SLOT_STEP_MINUTES = 30


class SlotCalculator:
    """
    Calculates offerable meeting slots from busy periods.

    Algorithm:
    1. Flatten every attendee's busy periods into one sorted timeline
    2. Walk the timeline with a busy-until cursor to find common free gaps
    3. Keep gaps that are long enough and start in business hours
    4. Split each gap into duration-long slots staggered by 30 minutes
    """

    def __init__(self, business_hours: BusinessHours = DEFAULT_BUSINESS_HOURS):
        self.business_hours = business_hours

    def find_available_slots(
        self,
        window_start: DateTime,
        window_end: DateTime,
        busy_periods: Sequence[Sequence[BusyPeriod]],
        duration_minutes: int,
        participants: Sequence[str] = ()
    ) -> List[TimeSlot]:
        """
        Find all offerable slots for the attendees.

        Args:
            window_start: Normalized start of the search window
            window_end: End of the search window
            busy_periods: One list of busy periods per attendee
            duration_minutes: Requested meeting length
            participants: Attendees the slots are offered to

        Returns:
            List of TimeSlot objects ordered by start time
        """
        timeline = self.merge_timeline(busy_periods)

        gaps = self.extract_gaps(
            sorted_busy=timeline,
            window_start=self.business_hours.localize(window_start),
            window_end=self.business_hours.localize(window_end),
            duration_minutes=duration_minutes
        )

        return self.split_gaps(
            gaps=gaps,
            duration_minutes=duration_minutes,
            participants=participants
        )

    def merge_timeline(
        self,
        busy_periods: Iterable[Iterable[BusyPeriod]]
    ) -> List[TimeRange]:
        """
        Flatten all attendees' busy periods into one list sorted by start.

        Bounds are converted into the business-hours timezone, so a fetcher
        may report instants with any UTC offset.

        Overlapping periods are not coalesced; ``extract_gaps`` absorbs
        them with its cursor.
        """
        timeline: List[TimeRange] = []

        for attendee_periods in busy_periods:
            for period in attendee_periods:
                time_range = period.as_time_range()
                if time_range is None:
                    logger.debug(
                        "Discarding busy period without usable bounds for %s: %s - %s",
                        period.attendee, period.start, period.end
                    )
                    continue
                timeline.append(
                    TimeRange(
                        start=self.business_hours.localize(time_range.start),
                        end=self.business_hours.localize(time_range.end)
                    )
                )

        timeline.sort(key=lambda r: (r.start, r.end))
        return timeline

    def extract_gaps(
        self,
        sorted_busy: Sequence[TimeRange],
        window_start: DateTime,
        window_end: DateTime,
        duration_minutes: int
    ) -> List[TimeRange]:
        """
        Find free gaps between busy ranges inside the window.

        A gap is kept only if it is at least ``duration_minutes`` long and
        its start lies in business hours. A long gap starting at Friday 18:00
        is therefore dropped even though it reaches into Monday.

        Example:
        Window: 09:00 - 17:00
        Busy: [10:00-11:00, 10:30-12:00, 14:00-15:00]
        Result: [09:00-10:00, 12:00-14:00, 15:00-17:00]
        """
        gaps: List[TimeRange] = []
        cursor = window_start

        for busy in sorted_busy:
            if cursor < busy.start:
                gap_end = min(busy.start, window_end)
                if gap_end > cursor:
                    self._accept_gap(gaps, TimeRange(start=cursor, end=gap_end), duration_minutes)

            # Move cursor to end of busy period
            cursor = max(cursor, busy.end)

        # Remaining free time after last busy period
        if cursor < window_end:
            self._accept_gap(gaps, TimeRange(start=cursor, end=window_end), duration_minutes)

        return gaps

    def _accept_gap(
        self,
        gaps: List[TimeRange],
        candidate: TimeRange,
        duration_minutes: int
    ) -> None:
        if candidate.duration_minutes() < duration_minutes:
            return
        if not self.business_hours.contains(candidate.start):
            return
        gaps.append(candidate)

    def split_gaps(
        self,
        gaps: Iterable[TimeRange],
        duration_minutes: int,
        participants: Sequence[str] = ()
    ) -> List[TimeSlot]:
        """
        Split gaps into overlapping slots of exactly ``duration_minutes``.

        Slot starts advance in fixed 30 minute steps from the gap start,
        whatever the requested duration. Starts outside business hours are
        skipped.

        Example:
        Gap: 09:00 - 10:30, duration 60
        Result: [09:00-10:00, 09:30-10:30]
        """
        slots: List[TimeSlot] = []

        for gap in gaps:
            current_start = gap.start
            while current_start.add(minutes=duration_minutes) <= gap.end:
                if self.business_hours.contains(current_start):
                    slots.append(
                        TimeSlot(
                            time_range=TimeRange(
                                start=current_start,
                                end=current_start.add(minutes=duration_minutes)
                            ),
                            participants=list(participants)
                        )
                    )
                current_start = current_start.add(minutes=SLOT_STEP_MINUTES)

        return slots
