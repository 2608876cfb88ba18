"""
slotresolver - find common meeting slots across attendees' calendars.
"""

__version__ = "0.1.0"
