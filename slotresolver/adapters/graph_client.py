"""
Microsoft Graph API client for fetching free/busy data.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import ProviderFetchError
from ..domain.models import BusyPeriod

logger = logging.getLogger(__name__)

BUSY_STATUSES = {"busy", "tentative", "oof", "workingelsewhere"}

SCHEDULE_ERROR_MESSAGES = {
    "notFound": "Calendar not found",
    "forbidden": "No access to calendar",
}


class GraphCalendarClient:
    """
    Busy-interval fetcher backed by the Microsoft Graph getSchedule endpoint.

    One request is issued per attendee. The blocking HTTP call runs in a
    worker thread so several attendees can be fetched concurrently.
    """

    GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"

    def __init__(self, access_token: str, timezone: str, request_timeout: float = 30):
        """
        Initialize the Graph API client.

        Args:
            access_token: Valid Microsoft Graph access token
            timezone: IANA timezone all returned instants are converted to
            request_timeout: Socket timeout for each HTTP request in seconds
        """
        self.timezone = timezone
        self.request_timeout = request_timeout
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json"
        }

    async def fetch_busy(
        self,
        attendee: str,
        window_start: DateTime,
        window_end: DateTime
    ) -> List[BusyPeriod]:
        return await asyncio.to_thread(self.get_schedule, attendee, window_start, window_end)

    def get_schedule(
        self,
        attendee: str,
        window_start: DateTime,
        window_end: DateTime
    ) -> List[BusyPeriod]:
        """
        Get busy periods of one attendee.

        Raises:
            ProviderFetchError: If the API call fails or the calendar is not accessible
        """
        url = f"{self.GRAPH_API_ENDPOINT}/me/calendar/getSchedule"

        payload = {
            "schedules": [attendee],
            "startTime": {
                "dateTime": window_start.in_timezone(self.timezone).to_iso8601_string(),
                "timeZone": self.timezone
            },
            "endTime": {
                "dateTime": window_end.in_timezone(self.timezone).to_iso8601_string(),
                "timeZone": self.timezone
            },
            "availabilityViewInterval": 30
        }

        try:
            response = requests.post(
                url,
                headers={**self.headers, "Prefer": f'outlook.timezone="{self.timezone}"'},
                json=payload,
                timeout=self.request_timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise ProviderFetchError(attendee, f"Failed to fetch schedule from Microsoft Graph: {e}") from e
        except ValueError as e:
            raise ProviderFetchError(attendee, f"Malformed response from Microsoft Graph: {e}") from e

        return self._parse_schedule_response(attendee, data)

    def _parse_schedule_response(
        self,
        attendee: str,
        response_data: Dict[str, Any]
    ) -> List[BusyPeriod]:
        """
        Parse the getSchedule API response into busy periods.

        Response format:
        {
            "value": [
                {
                    "scheduleId": "user@example.com",
                    "scheduleItems": [
                        {
                            "status": "busy",
                            "start": {"dateTime": "...", "timeZone": "..."},
                            "end": {"dateTime": "...", "timeZone": "..."}
                        }
                    ],
                    "error": {"responseCode": "notFound", "message": "..."}
                }
            ]
        }
        """
        busy_periods: List[BusyPeriod] = []

        for schedule in response_data.get("value", []):
            error = schedule.get("error")
            if error:
                reason = error.get("responseCode") or error.get("reason") or "Unknown error"
                raise ProviderFetchError(
                    attendee,
                    SCHEDULE_ERROR_MESSAGES.get(reason, error.get("message") or reason)
                )

            for item in schedule.get("scheduleItems", []):
                status = (item.get("status") or "").lower()
                if status not in BUSY_STATUSES:
                    continue

                busy_periods.append(
                    BusyPeriod(
                        attendee=attendee,
                        start=self._parse_bound(item.get("start")),
                        end=self._parse_bound(item.get("end"))
                    )
                )

        return busy_periods

    def _parse_bound(self, bound: Optional[Dict[str, Any]]) -> Optional[DateTime]:
        """
        Parse a Graph dateTimeTimeZone object into the reference timezone.

        Missing or unparsable values yield None.
        """
        if not bound or not bound.get("dateTime"):
            return None

        # The Prefer header makes Graph report times in our timezone
        try:
            dt = pendulum.parse(bound["dateTime"], tz=self.timezone)
        except ValueError as e:
            logger.warning("Could not parse schedule item time %r: %s", bound, e)
            return None

        if not isinstance(dt, DateTime):
            logger.warning("Schedule item time is not a datetime: %r", bound)
            return None

        return dt.in_timezone(self.timezone)

    def test_connection(self) -> Dict[str, Any]:
        """
        Test the connection and authentication by fetching the user profile.

        Raises:
            ProviderFetchError: If the connection test fails
        """
        url = f"{self.GRAPH_API_ENDPOINT}/me"

        try:
            response = requests.get(url, headers=self.headers, timeout=self.request_timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            raise ProviderFetchError("me", f"Connection test failed: {e}") from e
