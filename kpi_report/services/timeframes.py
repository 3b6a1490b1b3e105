"""
Time-window resolution for the KPI Report analytics engine.

Converts the named timeframe tokens used across the dashboard into concrete
DateRange bounds relative to an explicit "now". The module never reads the
system clock; callers (the API clock dependency, tests) supply `now`.

Two vocabularies are supported:

Regional vocabulary (RegionalTimeframe), used by the regional, insights and
meeting-agenda views:
    - all: unbounded
    - lastWeek: [now - 7 days, now]
    - thisMonth: [first instant of the current month, now]
    - lastMonth: the full previous calendar month
    - thisQuarter: [first instant of the current quarter, now]
    - lastQuarter: the full previous calendar quarter
    - lastYear: the full previous calendar year

Simple vocabulary (SimpleTimeframe), used by the agent KPI table:
    - week / month / quarter / ytd: start boundary only, open-ended
    - all: unbounded

Calendar periods end at the last representable instant before the next
period starts, so a timestamp at 23:59:59 on the last day is inside.

Unknown tokens raise InvalidTimeframeError.

Usage:
    from kpi_report.services.timeframes import resolve_timeframe

    window = resolve_timeframe("lastQuarter", now=datetime(2026, 5, 10))
    window.contains(datetime(2026, 2, 14))  # True
"""

from datetime import datetime, timedelta
from typing import List, Tuple, Union

from dateutil.relativedelta import relativedelta

from kpi_report.models import DateRange, RegionalTimeframe, SimpleTimeframe


# =============================================================================
# Constants
# =============================================================================

# Label format for calendar-month periods ("Oct 2026")
PERIOD_LABEL_FORMAT = "%b %Y"

_ONE_TICK = timedelta(microseconds=1)


class InvalidTimeframeError(ValueError):
    """Raised when a timeframe token is not part of the supported vocabulary."""


# =============================================================================
# Calendar Helpers
# =============================================================================


def start_of_month(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def start_of_quarter(moment: datetime) -> datetime:
    quarter_month = ((moment.month - 1) // 3) * 3 + 1
    return start_of_month(moment).replace(month=quarter_month)


def start_of_year(moment: datetime) -> datetime:
    return start_of_month(moment).replace(month=1)


def _closed_period(start: datetime, length: relativedelta) -> DateRange:
    """A full calendar period [start, next_start - 1 microsecond]."""
    return DateRange(start=start, end=start + length - _ONE_TICK)


# =============================================================================
# Resolvers
# =============================================================================


def resolve_timeframe(
    token: Union[str, RegionalTimeframe],
    now: datetime,
) -> DateRange:
    """
    Resolve a regional-vocabulary token into a DateRange.

    Args:
        token: One of lastWeek, thisMonth, lastMonth, thisQuarter,
            lastQuarter, lastYear, all (string or RegionalTimeframe).
        now: Reference instant.

    Returns:
        DateRange: Inclusive bounds; both None for 'all'.

    Raises:
        InvalidTimeframeError: If the token is not recognized.
    """
    try:
        timeframe = RegionalTimeframe(token)
    except ValueError:
        raise InvalidTimeframeError(f"Unknown timeframe: {token!r}") from None

    if timeframe == RegionalTimeframe.ALL:
        return DateRange()

    if timeframe == RegionalTimeframe.LAST_WEEK:
        return DateRange(start=now - timedelta(days=7), end=now)

    if timeframe == RegionalTimeframe.THIS_MONTH:
        return DateRange(start=start_of_month(now), end=now)

    if timeframe == RegionalTimeframe.LAST_MONTH:
        previous = start_of_month(now) - relativedelta(months=1)
        return _closed_period(previous, relativedelta(months=1))

    if timeframe == RegionalTimeframe.THIS_QUARTER:
        return DateRange(start=start_of_quarter(now), end=now)

    if timeframe == RegionalTimeframe.LAST_QUARTER:
        previous = start_of_quarter(now) - relativedelta(months=3)
        return _closed_period(previous, relativedelta(months=3))

    # LAST_YEAR
    previous = start_of_year(now) - relativedelta(years=1)
    return _closed_period(previous, relativedelta(years=1))


def resolve_simple_timeframe(
    token: Union[str, SimpleTimeframe],
    now: datetime,
) -> DateRange:
    """
    Resolve a simple-vocabulary token (week|month|quarter|ytd|all).

    Only the start boundary is set; the window is open-ended toward the
    future.

    Raises:
        InvalidTimeframeError: If the token is not recognized.
    """
    try:
        timeframe = SimpleTimeframe(token)
    except ValueError:
        raise InvalidTimeframeError(f"Unknown timeframe: {token!r}") from None

    if timeframe == SimpleTimeframe.ALL:
        return DateRange()
    if timeframe == SimpleTimeframe.WEEK:
        return DateRange(start=now - timedelta(days=7))
    if timeframe == SimpleTimeframe.MONTH:
        return DateRange(start=start_of_month(now))
    if timeframe == SimpleTimeframe.QUARTER:
        return DateRange(start=start_of_quarter(now))
    return DateRange(start=start_of_year(now))


def trailing_month_ranges(
    now: datetime,
    periods: int,
) -> List[Tuple[str, DateRange]]:
    """
    Return the `periods` calendar months ending with the month of `now`.

    Each entry is (label, range) with the label formatted "%b %Y"; the list
    is ordered oldest first. Every range covers its whole month, including
    the current one.
    """
    if periods < 1:
        raise ValueError(f"periods must be >= 1, got {periods}")

    current = start_of_month(now)
    ranges: List[Tuple[str, DateRange]] = []
    for offset in range(periods - 1, -1, -1):
        month_start = current - relativedelta(months=offset)
        ranges.append((
            month_start.strftime(PERIOD_LABEL_FORMAT),
            _closed_period(month_start, relativedelta(months=1)),
        ))
    return ranges
