"""
Application service for resolving shared meeting availability.

The service validates the request, fetches busy periods for every attendee
concurrently via a calendar client adapter and delegates the slot computation
to the domain-level ``SlotCalculator``. The calendar dependency is a simple
protocol so the Graph adapter, the mock client or a test stub can be plugged in.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Protocol, Sequence

from pendulum import DateTime

from ..domain.exceptions import ProviderFetchError
from ..domain.models import (
    AvailabilityRequest,
    AvailabilityResult,
    BusyPeriod,
    TimeSlot,
    ValidatedRequest,
)
from ..domain.slot_calculator import SlotCalculator
from ..domain.window import normalize_window_start

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0


class BusyIntervalFetcher(Protocol):
    """Protocol describing the calendar client behaviour needed by the service."""

    async def fetch_busy(
        self,
        attendee: str,
        window_start: DateTime,
        window_end: DateTime,
    ) -> List[BusyPeriod]:
        """Return busy periods for one attendee; an empty list if there are none."""


class AvailabilityService:
    """
    Orchestrates validation, busy-period retrieval and slot calculation.

    Each call is independent; the service keeps no state between requests.
    """

    def __init__(
        self,
        fetcher: BusyIntervalFetcher,
        slot_calculator: Optional[SlotCalculator] = None,
        *,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        default_window_days: int = 7,
        clock: Optional[Callable[[], DateTime]] = None,
    ) -> None:
        self._fetcher = fetcher
        self._slot_calculator = slot_calculator or SlotCalculator()
        self._fetch_timeout = fetch_timeout
        self._default_window_days = default_window_days
        self._clock = clock or self._slot_calculator.business_hours.now

    async def resolve(self, request: AvailabilityRequest) -> AvailabilityResult:
        """
        Validate the request, fetch busy data and compute offerable slots.

        Raises:
            InputValidationError: Before any fetch, if the request is unusable
            ProviderFetchError: If busy data for any attendee cannot be fetched
        """
        validated = request.validate(
            now=self._clock(),
            default_window_days=self._default_window_days,
        )

        if validated.invalid_attendees:
            logger.info(
                "Ignoring invalid attendee entries: %s",
                ", ".join(repr(a) for a in validated.invalid_attendees),
            )

        window_start = normalize_window_start(
            validated.window_start,
            self._slot_calculator.business_hours,
        )

        logger.debug(
            "Resolving availability for %d attendee(s), %d min, window %s - %s",
            len(validated.attendees),
            validated.duration_minutes,
            window_start,
            validated.window_end,
        )

        busy_periods = await self.fetch_busy_periods(
            attendees=validated.attendees,
            window_start=window_start,
            window_end=validated.window_end,
        )

        slots = self.calculate_slots(
            validated=validated,
            window_start=window_start,
            busy_periods=busy_periods,
        )

        logger.info("Found %d offerable slot(s)", len(slots))

        return AvailabilityResult(
            slots=slots,
            attendees=list(validated.attendees),
            invalid_attendees=list(validated.invalid_attendees),
        )

    async def fetch_busy_periods(
        self,
        *,
        attendees: Sequence[str],
        window_start: DateTime,
        window_end: DateTime,
    ) -> List[List[BusyPeriod]]:
        """
        Fetch busy periods for all attendees in parallel.

        All fetches are allowed to settle; the first failure in attendee
        order is then raised so no partial availability is ever computed.
        """
        tasks = [
            self._fetch_one(attendee, window_start, window_end)
            for attendee in attendees
        ]

        results = await asyncio.gather(*tasks, return_exceptions=True)

        busy_periods: List[List[BusyPeriod]] = []
        for attendee, result in zip(attendees, results):
            if isinstance(result, BaseException):
                logger.error("Busy-time fetch failed for %s: %s", attendee, result)
                if isinstance(result, ProviderFetchError):
                    raise result
                raise ProviderFetchError(attendee, str(result) or type(result).__name__) from result
            busy_periods.append(list(result))

        return busy_periods

    async def _fetch_one(
        self,
        attendee: str,
        window_start: DateTime,
        window_end: DateTime,
    ) -> List[BusyPeriod]:
        try:
            return await asyncio.wait_for(
                self._fetcher.fetch_busy(attendee, window_start, window_end),
                timeout=self._fetch_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderFetchError(
                attendee,
                f"timed out after {self._fetch_timeout:g}s",
            ) from exc

    def calculate_slots(
        self,
        *,
        validated: ValidatedRequest,
        window_start: DateTime,
        busy_periods: Sequence[Sequence[BusyPeriod]],
    ) -> List[TimeSlot]:
        """Calculate offerable slots from already fetched busy data."""
        return self._slot_calculator.find_available_slots(
            window_start=window_start,
            window_end=validated.window_end,
            busy_periods=busy_periods,
            duration_minutes=validated.duration_minutes,
            participants=validated.attendees,
        )
