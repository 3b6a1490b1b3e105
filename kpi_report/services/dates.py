"""
Date/time normalization for export cells.

Export cells arrive either as spreadsheet serial numbers (days since
1899-12-30, the fraction carrying the time of day) or as free-form calendar
strings. Both are normalized into a ParsedDateTime that also carries the
weekday and time-of-day bucket the insights views group by.

Parsing rules:
    1. Blank cells -> None.
    2. Purely numeric values with 1000 < v < 100000 -> spreadsheet serial,
       rounded to the nearest second.
    3. Any other purely numeric value -> None (row counters, ids).
    4. Otherwise pandas.to_datetime(errors='coerce'); timezone-aware values
       are converted to UTC and made naive. NaT -> None.

Weekdays are Sunday-first (0 = Sunday ... 6 = Saturday).
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Tuple

import pandas as pd

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SPREADSHEET_EPOCH = datetime(1899, 12, 30)
SERIAL_MIN_EXCLUSIVE = 1000
SERIAL_MAX_EXCLUSIVE = 100000

DAY_NAMES: List[str] = [
    'Sunday',
    'Monday',
    'Tuesday',
    'Wednesday',
    'Thursday',
    'Friday',
    'Saturday',
]

# (label, start hour inclusive, end hour exclusive); Night wraps midnight
TIME_SLOTS: List[Tuple[str, int, int]] = [
    ('Early Morning (6-9am)', 6, 9),
    ('Morning (9am-12pm)', 9, 12),
    ('Afternoon (12-3pm)', 12, 15),
    ('Late Afternoon (3-6pm)', 15, 18),
    ('Evening (6-9pm)', 18, 21),
    ('Night (9pm-6am)', 21, 6),
]

_NUMERIC_RE = re.compile(r'^\d+(\.\d+)?$')

# Relative words pandas would resolve against the wall clock
_RELATIVE_WORDS = {'now', 'today', 'tomorrow', 'yesterday'}


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ParsedDateTime:
    """
    A normalized timestamp with its derived calendar facets.

    Attributes:
        moment: The naive datetime.
        date: Calendar date of `moment`.
        weekday: 0 = Sunday ... 6 = Saturday.
        dayName: English weekday name.
        hour: 0-23.
        minute: 0-59.
        timeSlot: Time-of-day bucket label from TIME_SLOTS.
    """
    moment: datetime
    date: date
    weekday: int
    dayName: str
    hour: int
    minute: int
    timeSlot: str

    @property
    def has_time(self) -> bool:
        return (self.hour, self.minute, self.moment.second) != (0, 0, 0)

    @classmethod
    def from_datetime(cls, moment: datetime) -> 'ParsedDateTime':
        weekday = (moment.weekday() + 1) % 7
        return cls(
            moment=moment,
            date=moment.date(),
            weekday=weekday,
            dayName=DAY_NAMES[weekday],
            hour=moment.hour,
            minute=moment.minute,
            timeSlot=get_time_slot(moment.hour),
        )


# =============================================================================
# Parsing
# =============================================================================


def get_time_slot(hour: int) -> str:
    for name, start, end in TIME_SLOTS:
        if start < end:
            if start <= hour < end:
                return name
        elif hour >= start or hour < end:
            return name
    return 'Unknown'


def _from_serial(serial: float) -> datetime:
    return SPREADSHEET_EPOCH + timedelta(seconds=round(serial * 86400))


def _from_calendar_text(text: str) -> Optional[datetime]:
    if text.lower() in _RELATIVE_WORDS:
        return None
    try:
        stamp = pd.to_datetime(text, errors='coerce')
    except (ValueError, TypeError, OverflowError):
        return None
    if stamp is None or pd.isna(stamp):
        return None
    if stamp.tzinfo is not None:
        stamp = stamp.tz_convert('UTC').tz_localize(None)
    return stamp.to_pydatetime()


def parse_datetime_value(value: Optional[str]) -> Optional[datetime]:
    """Parse a cell into a naive datetime, or None when it is not a date."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    if _NUMERIC_RE.match(text):
        serial = float(text)
        if SERIAL_MIN_EXCLUSIVE < serial < SERIAL_MAX_EXCLUSIVE:
            return _from_serial(serial)
        return None

    return _from_calendar_text(text)


def parse_date_time(value: Optional[str]) -> Optional[ParsedDateTime]:
    """
    Normalize a raw cell into a ParsedDateTime.

    Examples:
        >>> parse_date_time('45000.5').moment
        datetime.datetime(2023, 3, 15, 12, 0)
        >>> parse_date_time('2024-03-15 14:30').timeSlot
        'Afternoon (12-3pm)'
        >>> parse_date_time('42') is None
        True
    """
    moment = parse_datetime_value(value)
    if moment is None:
        return None
    return ParsedDateTime.from_datetime(moment)


def has_time_of_day(values: Iterable[Optional[ParsedDateTime]]) -> bool:
    """True when any parsed value carries a time other than exactly midnight."""
    return any(value is not None and value.has_time for value in values)
