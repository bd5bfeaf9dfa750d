"""Recurrence expansion: scheduling selections to concrete trip dates."""

import calendar
import datetime as dt
import logging
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union

from pydantic import TypeAdapter, ValidationError

from ridefare.errors import InvalidInput
from ridefare.models import (
    RecurrencePattern,
    RecurrenceResult,
    ScheduledTrip,
    SpecificDates,
    Weekdays,
    Weekends,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], dt.date]
PatternInput = Union[SpecificDates, Weekdays, Weekends, Mapping[str, Any]]

_pattern_adapter = TypeAdapter(RecurrencePattern)

# date.weekday(): Monday is 0, Sunday is 6
WEEKDAY_NUMBERS = frozenset(range(0, 5))
WEEKEND_NUMBERS = frozenset({5, 6})


def coerce_pattern(pattern: PatternInput):
    """Validate a mapping into one of the recurrence pattern variants."""
    if isinstance(pattern, (SpecificDates, Weekdays, Weekends)):
        return pattern
    try:
        return _pattern_adapter.validate_python(pattern)
    except ValidationError as e:
        raise InvalidInput(f"Invalid recurrence pattern: {e.errors()[0]['msg']}") from e


def parse_month(month: str) -> Tuple[int, int]:
    """Split a YYYY-MM identifier into (year, month)."""
    try:
        year_str, month_str = month.split("-")
        year, month_number = int(year_str), int(month_str)
    except (AttributeError, ValueError) as e:
        raise InvalidInput(f"Month must be formatted YYYY-MM, got {month!r}") from e
    if not 1 <= month_number <= 12 or not dt.MINYEAR <= year <= dt.MAXYEAR:
        raise InvalidInput(f"Month out of range: {month!r}")
    return year, month_number


def dates_in_month(year: int, month: int, weekdays: frozenset) -> List[dt.date]:
    """All dates of the month whose weekday() is in `weekdays`, ascending."""
    _, days = calendar.monthrange(year, month)
    return [
        dt.date(year, month, day)
        for day in range(1, days + 1)
        if dt.date(year, month, day).weekday() in weekdays
    ]


def count_in_month(year: int, month: int, weekdays: frozenset) -> int:
    """
    Count matching dates with calendar arithmetic.

    Every weekday occurs four times in the first 28 days; the remaining
    days of the month each add one occurrence of their weekday.
    """
    first_weekday, days = calendar.monthrange(year, month)
    count = 4 * len(weekdays)
    for offset in range(28, days):
        if (first_weekday + offset) % 7 in weekdays:
            count += 1
    return count


class RecurrenceExpander:
    """
    Expands recurrence patterns into trip dates.

    The expander never reads the system clock directly. `clock` returns
    "today" and is only consulted for `upcoming` and for month patterns
    that leave the month out.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or dt.date.today

    def _resolve_month(self, pattern) -> Tuple[int, int]:
        if pattern.month is None:
            today = self.clock()
            return today.year, today.month
        return parse_month(pattern.month)

    def expand_dates(self, pattern: PatternInput) -> List[dt.date]:
        pattern = coerce_pattern(pattern)
        if isinstance(pattern, SpecificDates):
            return sorted(set(pattern.dates))
        year, month = self._resolve_month(pattern)
        if isinstance(pattern, Weekdays):
            return dates_in_month(year, month, WEEKDAY_NUMBERS)
        return dates_in_month(year, month, WEEKEND_NUMBERS)

    def expand(self, pattern: PatternInput) -> RecurrenceResult:
        """Expand a pattern into its ordered, de-duplicated trip dates."""
        dates = self.expand_dates(pattern)
        return RecurrenceResult(dates=dates, count=len(dates))

    def count(self, pattern: PatternInput) -> int:
        """Number of trips the pattern produces, without building the list."""
        pattern = coerce_pattern(pattern)
        if isinstance(pattern, SpecificDates):
            return len(set(pattern.dates))
        year, month = self._resolve_month(pattern)
        if isinstance(pattern, Weekdays):
            return count_in_month(year, month, WEEKDAY_NUMBERS)
        return count_in_month(year, month, WEEKEND_NUMBERS)

    def upcoming(self, pattern: PatternInput) -> List[dt.date]:
        """Expanded dates falling on or after today."""
        today = self.clock()
        return [d for d in self.expand_dates(pattern) if d >= today]

    def schedule(
        self, pattern: PatternInput, trip_time: Optional[dt.time] = None
    ) -> List[ScheduledTrip]:
        """
        Combine every expanded date with the trip time and number the series.

        Args:
            pattern: Recurrence pattern or mapping
            trip_time: Time of day; defaults to the pattern's own time

        Raises:
            InvalidInput: no time of day is available
        """
        pattern = coerce_pattern(pattern)
        trip_time = trip_time or pattern.time
        if trip_time is None:
            raise InvalidInput("A trip time is required to schedule a recurring series")

        dates = self.expand_dates(pattern)
        total = len(dates)
        trips = [
            ScheduledTrip(
                series_trip_number=index + 1,
                scheduled_datetime=dt.datetime.combine(trip_date, trip_time),
                total_trips_in_series=total,
                remaining_trips_in_series=total - index,
            )
            for index, trip_date in enumerate(dates)
        ]
        logger.debug("Scheduled %d trips for %s pattern", total, pattern.type)
        return trips


def return_leg_time(
    outbound: dt.datetime, trip_minutes: int = 30, wait_minutes: int = 30
) -> dt.datetime:
    """Departure of a round trip's return leg: outbound + trip duration + wait."""
    if trip_minutes < 0 or wait_minutes < 0:
        raise InvalidInput("Trip and wait durations cannot be negative")
    return outbound + dt.timedelta(minutes=trip_minutes + wait_minutes)


_default_expander: Optional[RecurrenceExpander] = None


def get_recurrence_expander() -> RecurrenceExpander:
    """Get the default expander, which reads today from the system date."""
    global _default_expander
    if _default_expander is None:
        _default_expander = RecurrenceExpander()
    return _default_expander
