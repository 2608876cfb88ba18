"""
Domain models for availability requests, busy periods and offered slots.
"""

from dataclasses import dataclass, field
from datetime import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pendulum
from pendulum import DateTime

from .exceptions import InputValidationError, ValidationReason

UNKNOWN_ATTENDEE = "unknown"


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must not be after end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Start time {self.start} must not be after end time {self.end}")

    def duration_minutes(self) -> float:
        """Return the duration in minutes."""
        return (self.end - self.start).total_seconds() / 60

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and self.end > other.start

    def to_dict(self) -> Dict[str, str]:
        return {
            "start": self.start.to_iso8601_string(),
            "end": self.end.to_iso8601_string(),
        }

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


def _local_timezone_name() -> str:
    return pendulum.local_timezone().name


@dataclass(frozen=True)
class BusinessHours:
    """
    Weekly business hours on a single reference clock.

    Every instant is converted into ``timezone`` before its wall clock is
    read, whatever offset it arrived with.
    """
    start_time: time = time(9, 0)
    end_time: time = time(17, 0)
    exclude_weekdays: Tuple[int, ...] = (5, 6)  # 0=Monday, 6=Sunday
    timezone: str = field(default_factory=_local_timezone_name)

    def localize(self, dt: DateTime) -> DateTime:
        """Return ``dt`` expressed in the reference timezone."""
        return dt.in_timezone(self.timezone)

    def now(self) -> DateTime:
        return pendulum.now(self.timezone)

    def is_business_day(self, dt: DateTime) -> bool:
        """Check if a given datetime falls on a business day."""
        return self.localize(dt).weekday() not in self.exclude_weekdays

    def contains(self, dt: DateTime) -> bool:
        """Check if an instant lies on a business day inside [start_time, end_time)."""
        if not self.is_business_day(dt):
            return False

        local = self.localize(dt)
        minute_of_day = local.hour * 60 + local.minute
        opens = self.start_time.hour * 60 + self.start_time.minute
        closes = self.end_time.hour * 60 + self.end_time.minute

        return opens <= minute_of_day < closes

    def opening_on(self, dt: DateTime) -> DateTime:
        """Return the opening instant on the local calendar day of ``dt``."""
        return self.localize(dt).set(
            hour=self.start_time.hour,
            minute=self.start_time.minute,
            second=0,
            microsecond=0
        )


@dataclass(frozen=True)
class BusyPeriod:
    """
    A busy interval reported by a calendar provider for one attendee.

    Providers may omit either bound. Such entries carry no information and
    ``as_time_range`` returns None for them.
    """
    attendee: str
    start: Optional[DateTime]
    end: Optional[DateTime]

    def as_time_range(self) -> Optional[TimeRange]:
        if self.start is None or self.end is None:
            return None
        if self.start > self.end:
            return None
        return TimeRange(start=self.start, end=self.end)


@dataclass
class TimeSlot:
    """
    Represents an offered meeting slot.
    """
    time_range: TimeRange
    participants: List[str]  # Email addresses of participants

    @property
    def start(self) -> DateTime:
        return self.time_range.start

    @property
    def end(self) -> DateTime:
        return self.time_range.end


def is_valid_attendee(identifier: Optional[str]) -> bool:
    """An attendee must be a non-empty address containing '@'."""
    if not identifier:
        return False
    if identifier == UNKNOWN_ATTENDEE:
        return False
    return "@" in identifier


@dataclass(frozen=True)
class ValidatedRequest:
    """An availability request that passed validation."""
    attendees: Tuple[str, ...]
    invalid_attendees: Tuple[str, ...]
    duration_minutes: int
    window_start: DateTime
    window_end: DateTime


@dataclass
class AvailabilityRequest:
    """
    Raw availability request as received from the caller.

    ``window_start`` defaults to the current time and ``window_end`` to
    ``window_start`` plus the default window length.
    """
    attendees: Sequence[Optional[str]]
    duration_minutes: Optional[int]
    window_start: Optional[DateTime] = None
    window_end: Optional[DateTime] = None

    def validate(self, now: DateTime, default_window_days: int = 7) -> ValidatedRequest:
        """
        Check the request and drop attendee entries that are not addresses.

        Args:
            now: Current instant in the reference clock
            default_window_days: Window length used when no end is given

        Returns:
            ValidatedRequest with de-duplicated, valid attendees

        Raises:
            InputValidationError: If the request cannot be processed
        """
        if not self.attendees:
            raise InputValidationError(
                ValidationReason.NO_ATTENDEES,
                "At least one attendee is required"
            )

        if self.duration_minutes is None or self.duration_minutes <= 0:
            raise InputValidationError(
                ValidationReason.INVALID_DURATION,
                f"Duration must be a positive number of minutes, got {self.duration_minutes!r}"
            )

        valid: List[str] = []
        seen = set()
        invalid: List[str] = []
        for raw in self.attendees:
            identifier = raw.strip() if isinstance(raw, str) else raw
            if is_valid_attendee(identifier):
                # Addresses compare case-insensitively; the first spelling wins
                if identifier.lower() not in seen:
                    seen.add(identifier.lower())
                    valid.append(identifier)
            else:
                invalid.append("" if raw is None else str(raw))

        if not valid:
            raise InputValidationError(
                ValidationReason.NO_VALID_ATTENDEES,
                "No valid attendee email addresses provided",
                invalid_attendees=invalid
            )

        window_start = self.window_start or now
        window_end = self.window_end or window_start.add(days=default_window_days)

        if window_end <= window_start:
            raise InputValidationError(
                ValidationReason.INVALID_WINDOW,
                f"Window end {window_end} must be after window start {window_start}",
                invalid_attendees=invalid
            )

        return ValidatedRequest(
            attendees=tuple(valid),
            invalid_attendees=tuple(invalid),
            duration_minutes=self.duration_minutes,
            window_start=window_start,
            window_end=window_end,
        )


@dataclass
class AvailabilityResult:
    """Successful outcome of an availability search; ``slots`` may be empty."""
    slots: List[TimeSlot]
    attendees: List[str]
    invalid_attendees: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "available_slots": [slot.time_range.to_dict() for slot in self.slots],
            "attendees": list(self.attendees),
            "invalid_attendees": list(self.invalid_attendees),
        }
