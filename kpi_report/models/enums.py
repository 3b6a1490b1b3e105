"""
Enumeration definitions for the KPI Report backend.

All enums inherit from both `str` and `Enum` to ensure JSON serialization
compatibility with Pydantic models, so API responses carry the plain token
values the dashboard already uses ('lastWeek', 'tp', 'high', ...).
"""

from enum import Enum


class RegionalTimeframe(str, Enum):
    """
    Named timeframe tokens for the regional, insights and agenda views.

    Resolution is always relative to an injected "now":
    - lastWeek: now - 7 days .. now (not calendar-week aligned)
    - thisMonth / thisQuarter: period start .. now
    - lastMonth / lastQuarter / lastYear: the full previous calendar period
    - all: unbounded
    """
    LAST_WEEK = "lastWeek"
    THIS_MONTH = "thisMonth"
    LAST_MONTH = "lastMonth"
    THIS_QUARTER = "thisQuarter"
    LAST_QUARTER = "lastQuarter"
    LAST_YEAR = "lastYear"
    ALL = "all"


class SimpleTimeframe(str, Enum):
    """
    Start-boundary-only timeframe vocabulary (open-ended to now).

    Used by the agent KPI table path.
    """
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YTD = "ytd"
    ALL = "all"


class MetricFamily(str, Enum):
    """
    Numerator/denominator pairs a dimension rollup can be ranked by.

    - tp: T>P, passthroughs / trips
    - pq: P>Q, quotes / passthroughs
    - hotPass: hot-pass rate, hotPasses / passthroughs
    """
    TP = "tp"
    PQ = "pq"
    HOT_PASS = "hotPass"


class Priority(str, Enum):
    """Recommendation priority, ordered high > medium > low."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SegmentType(str, Enum):
    """
    Two-valued client segmentations derived from a trip column.

    - repeat: Repeat vs New client
    - b2b: B2B vs B2C
    """
    REPEAT = "repeat"
    B2B = "b2b"


class SegmentLabel(str, Enum):
    """Bucket keys produced by the client-segment rollups."""
    REPEAT = "Repeat"
    NEW = "New"
    B2B = "B2B"
    B2C = "B2C"


class LineKind(str, Enum):
    """
    Line classes of an AI narrative response.

    - heading: line wrapped in ** **
    - bullet: line starting with '- '
    - paragraph: any other non-blank line
    - blank: empty or whitespace-only line
    """
    HEADING = "heading"
    BULLET = "bullet"
    PARAGRAPH = "paragraph"
    BLANK = "blank"


class RegressionType(str, Enum):
    """Trend-line model: y = a + bx or y = a * e^(bx)."""
    LINEAR = "linear"
    LOG_LINEAR = "log-linear"


class DataKind(str, Enum):
    """The six export batches that make up RawParsedData."""
    TRIPS = "trips"
    QUOTES = "quotes"
    PASSTHROUGHS = "passthroughs"
    HOT_PASS = "hotPass"
    BOOKINGS = "bookings"
    NON_CONVERTED = "nonConverted"


class RecordMetric(str, Enum):
    """
    Personal-best metrics tracked per agent.

    Volume metrics (trips, quotes, passthroughs) are tracked for every
    period; rate metrics (tq, tp, pq) only for months and quarters.
    """
    TRIPS = "trips"
    QUOTES = "quotes"
    PASSTHROUGHS = "passthroughs"
    TQ = "tq"
    TP = "tp"
    PQ = "pq"


class RecordPeriod(str, Enum):
    """Calendar buckets for personal bests; weeks start on Monday."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
