"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability import AvailabilityService, BusyIntervalFetcher

__all__ = ["AvailabilityService", "BusyIntervalFetcher"]
