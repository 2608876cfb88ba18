"""
Normalization of a raw search window start to a business-hour instant.
"""

from pendulum import DateTime

from .models import BusinessHours

DEFAULT_BUSINESS_HOURS = BusinessHours()


def normalize_window_start(
    raw_start: DateTime,
    business_hours: BusinessHours = DEFAULT_BUSINESS_HOURS
) -> DateTime:
    """
    Advance ``raw_start`` to the next business-hour instant.

    The result is expressed in the business-hours timezone.

    - after closing: next calendar day at opening time
    - before opening: same day at opening time
    - during business hours: unchanged
    - then skip excluded weekdays, resetting to opening time

    Example (Mon-Fri 09:00-17:00):
    Fri 18:30 -> Mon 09:00
    Tue 07:15 -> Tue 09:00
    Wed 11:20 -> Wed 11:20
    """
    start = business_hours.localize(raw_start)
    minute_of_day = start.hour * 60 + start.minute
    closes = business_hours.end_time.hour * 60 + business_hours.end_time.minute
    opens = business_hours.start_time.hour * 60 + business_hours.start_time.minute

    if minute_of_day >= closes:
        start = business_hours.opening_on(start.add(days=1))
    elif minute_of_day < opens:
        start = business_hours.opening_on(start)

    while not business_hours.is_business_day(start):
        start = business_hours.opening_on(start.add(days=1))

    return start
