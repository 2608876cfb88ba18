"""
Domain layer - Pure business logic without external dependencies.
"""

from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    InputValidationError,
    ProviderFetchError,
    SlotResolverError,
    ValidationReason,
)
from .models import (
    AvailabilityRequest,
    AvailabilityResult,
    BusinessHours,
    BusyPeriod,
    TimeRange,
    TimeSlot,
    ValidatedRequest,
)
from .slot_calculator import SlotCalculator
from .window import normalize_window_start

__all__ = [
    "AuthenticationError",
    "AvailabilityRequest",
    "AvailabilityResult",
    "BusinessHours",
    "BusyPeriod",
    "ConfigurationError",
    "InputValidationError",
    "ProviderFetchError",
    "SlotCalculator",
    "SlotResolverError",
    "TimeRange",
    "TimeSlot",
    "ValidatedRequest",
    "ValidationReason",
    "normalize_window_start",
]
