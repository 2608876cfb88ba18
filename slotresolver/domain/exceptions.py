"""
Domain-specific exception hierarchy for the slot resolver.
"""

from enum import Enum
from typing import Sequence


class SlotResolverError(Exception):
    """Base class for all application-level errors."""


class ValidationReason(str, Enum):
    """Why an availability request was rejected."""
    NO_ATTENDEES = "no_attendees"
    NO_VALID_ATTENDEES = "no_valid_attendees"
    INVALID_DURATION = "invalid_duration"
    INVALID_WINDOW = "invalid_window"


class InputValidationError(SlotResolverError):
    """Raised when a request is rejected before any calendar is queried."""

    def __init__(
        self,
        reason: ValidationReason,
        message: str,
        invalid_attendees: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.invalid_attendees = list(invalid_attendees)


class ProviderFetchError(SlotResolverError):
    """Raised when busy times for an attendee cannot be fetched."""

    def __init__(self, attendee: str, message: str) -> None:
        super().__init__(f"{attendee}: {message}")
        self.attendee = attendee


class AuthenticationError(SlotResolverError):
    """Raised when authentication or token handling fails."""


class ConfigurationError(SlotResolverError):
    """Raised when the configuration file is missing or invalid."""
