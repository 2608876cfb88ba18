"""
Mock calendar client for running without Microsoft authentication.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.exceptions import ProviderFetchError
from ..domain.models import BusyPeriod

logger = logging.getLogger(__name__)


class MockCalendarClient:
    """
    Busy-interval fetcher serving events from memory or a JSON file.

    Each event is a mapping with ``calendarId``, ``start`` and ``end``; the
    bounds are ISO 8601 strings and may be missing. Attendees listed in
    ``failing_attendees`` raise ProviderFetchError to simulate an
    inaccessible calendar.
    """

    def __init__(
        self,
        events: Optional[List[Dict[str, Any]]] = None,
        timezone: str = "UTC",
        config=None,
        failing_attendees: Iterable[str] = ()
    ):
        """
        Initialize the mock client.

        Args:
            events: Calendar events to serve
            timezone: IANA timezone used for event times without offset
            config: Optional AppConfig for calendar_id mapping
            failing_attendees: Attendees whose fetch should fail
        """
        self.calendar_events = list(events or [])
        self.timezone = timezone
        self.config = config
        self.failing_attendees = {a.lower() for a in failing_attendees}

    @classmethod
    def from_json_file(cls, data_file: Path, **kwargs) -> "MockCalendarClient":
        """Load mock calendar events from a JSON file containing a list of events."""
        with open(data_file, "r", encoding="utf-8") as f:
            events = json.load(f)

        if not isinstance(events, list):
            raise ValueError(f"Mock data in {data_file} must be a list of events")

        return cls(events=events, **kwargs)

    def _get_calendar_id_for_email(self, email: str) -> str:
        """Map email to calendar_id using config."""
        if self.config:
            colleague = self.config.find_colleague_by_email(email)
            if colleague and colleague.calendar_id:
                return colleague.calendar_id

        return email

    def _parse(self, value: Optional[str]) -> Optional[DateTime]:
        if not value:
            return None
        dt = pendulum.parse(value, tz=self.timezone)
        if not isinstance(dt, DateTime):
            raise ValueError(f"Not a datetime: {value}")
        return dt.in_timezone(self.timezone)

    async def fetch_busy(
        self,
        attendee: str,
        window_start: DateTime,
        window_end: DateTime
    ) -> List[BusyPeriod]:
        """
        Return the events of one attendee that overlap the window.

        Events with a missing bound are passed on as they are.
        """
        if attendee.lower() in self.failing_attendees:
            raise ProviderFetchError(attendee, "No access to calendar")

        calendar_id = self._get_calendar_id_for_email(attendee)
        busy_periods: List[BusyPeriod] = []

        for event in self.calendar_events:
            if event.get("calendarId", "").lower() != calendar_id.lower():
                continue

            try:
                start = self._parse(event.get("start"))
                end = self._parse(event.get("end"))
            except ValueError as e:
                logger.warning("Skipping invalid mock event %r: %s", event, e)
                continue

            if start is not None and end is not None:
                if not (start < window_end and end > window_start):
                    continue

            busy_periods.append(BusyPeriod(attendee=attendee, start=start, end=end))

        return busy_periods
