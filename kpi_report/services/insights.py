"""
Timing and lead-quality insights for the AI narrative.

Builds the InsightsData structure the prompt assembler embeds:
    - passthroughs by day of week (count, share, average per calendar day)
    - passthroughs by time-of-day slot (only when timestamps carry a time)
    - top non-validated lead reasons for the department
    - non-validated counts per agent with each agent's top reasons

Timeframe handling: date-dependent views (day, time slot) only see rows
whose date parses and falls inside the window. Counts that do not need a
date (reasons, totals) use every row when the window is unbounded.
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Union

from kpi_report.models import (
    AgentNonValidated,
    DateRange,
    DayAnalysis,
    InsightsData,
    NonValidatedReason,
    RawParsedData,
    RegionalTimeframe,
    Row,
    TimeAnalysis,
)
from kpi_report.services.aggregator import rate, row_in_window
from kpi_report.services.columns import (
    HOT_PASS_DATE_PATTERNS,
    BOOKING_DATE_PATTERNS,
    NON_CONVERTED_DATE_PATTERNS,
    NON_VALIDATED_OWNER_PATTERNS,
    PASSTHROUGH_EVENT_DATE_PATTERNS,
    REASON_PATTERNS,
    RowBatch,
    forward_fill_owners,
    is_numeric_text,
)
from kpi_report.services.dates import DAY_NAMES, TIME_SLOTS, has_time_of_day, parse_date_time
from kpi_report.services.timeframes import resolve_timeframe

logger = logging.getLogger(__name__)


TOP_REASONS_LIMIT = 10
TOP_AGENT_REASONS_LIMIT = 3


# =============================================================================
# Helpers
# =============================================================================


def windowed_rows(batch: RowBatch, window: DateRange) -> List[Row]:
    """Rows of a batch in the window; every row when the window is unbounded."""
    if window.is_unbounded:
        return batch.rows
    return [row for row in batch.rows if row_in_window(batch, row, window)]


def clean_reason(value: Optional[str]) -> Optional[str]:
    """Trimmed reason, or None for blank, purely numeric or 1-char values."""
    reason = (value or '').strip()
    if not reason or is_numeric_text(reason) or len(reason) <= 1:
        return None
    return reason


def _passthrough_dates(batch: RowBatch, window: DateRange):
    if batch.date_column is None:
        return []
    parsed = []
    for row in batch.rows:
        value = parse_date_time(row.get(batch.date_column))
        if value is not None and window.contains(value.moment):
            parsed.append(value)
    return parsed


# =============================================================================
# Passthrough Timing
# =============================================================================


def analyze_passthroughs_by_day(
    batch: RowBatch,
    window: Optional[DateRange] = None,
) -> List[DayAnalysis]:
    """
    Passthrough counts per weekday, busiest first.

    avgPerDay divides a weekday's count by the number of distinct calendar
    dates on that weekday. Empty when no passthrough date parses.
    """
    parsed = _passthrough_dates(batch, window or DateRange())
    if not parsed:
        return []

    counts: Counter = Counter(value.dayName for value in parsed)
    dates: Dict[str, set] = {}
    for value in parsed:
        dates.setdefault(value.dayName, set()).add(value.date)
    total = len(parsed)

    days = [
        DayAnalysis(
            day=day,
            count=counts.get(day, 0),
            percentage=rate(counts.get(day, 0), total),
            avgPerDay=counts.get(day, 0) / len(dates[day]) if day in dates else 0.0,
        )
        for day in DAY_NAMES
    ]
    return sorted(days, key=lambda d: d.count, reverse=True)


def analyze_passthroughs_by_time(
    batch: RowBatch,
    window: Optional[DateRange] = None,
) -> List[TimeAnalysis]:
    """
    Passthrough counts per time-of-day slot, busiest first.

    Empty when every timestamp is exactly midnight (date-only exports).
    """
    parsed = _passthrough_dates(batch, window or DateRange())
    if not parsed or not has_time_of_day(parsed):
        return []

    counts: Counter = Counter(value.timeSlot for value in parsed)
    total = len(parsed)
    slots = [
        TimeAnalysis(
            timeSlot=name,
            count=counts.get(name, 0),
            percentage=rate(counts.get(name, 0), total),
        )
        for name, _, _ in TIME_SLOTS
    ]
    return sorted(slots, key=lambda s: s.count, reverse=True)


# =============================================================================
# Non-Validated Leads
# =============================================================================


def _reason_breakdown(counts: Counter, limit: int) -> List[NonValidatedReason]:
    total = sum(counts.values())
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [
        NonValidatedReason(reason=reason, count=count, percentage=rate(count, total))
        for reason, count in ranked[:limit]
    ]


def analyze_non_validated_reasons(
    batch: RowBatch,
    window: Optional[DateRange] = None,
) -> List[NonValidatedReason]:
    """Top 10 non-validated reasons with their share of all counted reasons."""
    reason_column = batch.require(REASON_PATTERNS, 'reason')
    if reason_column is None:
        return []

    counts: Counter = Counter()
    for row in windowed_rows(batch, window or DateRange()):
        reason = clean_reason(row.get(reason_column))
        if reason is not None:
            counts[reason] += 1
    return _reason_breakdown(counts, TOP_REASONS_LIMIT)


def analyze_non_validated_by_agent(
    batch: RowBatch,
    window: Optional[DateRange] = None,
) -> List[AgentNonValidated]:
    """
    Non-validated reason counts per agent, most first.

    Owners are forward-filled over the whole batch before the window is
    applied, so continuation rows keep their owner.
    """
    window = window or DateRange()
    owner_column = batch.column(NON_VALIDATED_OWNER_PATTERNS)
    reason_column = batch.column(REASON_PATTERNS)
    if owner_column is None or reason_column is None:
        return []

    by_agent: Dict[str, Counter] = {}
    owners = forward_fill_owners(batch.rows, owner_column)
    for row, owner in zip(batch.rows, owners):
        if owner is None:
            continue
        if not window.is_unbounded and not row_in_window(batch, row, window):
            continue
        reason = clean_reason(row.get(reason_column))
        if reason is not None:
            by_agent.setdefault(owner, Counter())[reason] += 1

    agents = [
        AgentNonValidated(
            agentName=agent,
            total=sum(counts.values()),
            topReasons=_reason_breakdown(counts, TOP_AGENT_REASONS_LIMIT),
        )
        for agent, counts in by_agent.items()
    ]
    return sorted(agents, key=lambda a: a.total, reverse=True)


# =============================================================================
# Insights Assembly
# =============================================================================


def generate_insights_data(
    raw: RawParsedData,
    timeframe: Union[str, RegionalTimeframe],
    now: datetime,
) -> InsightsData:
    """
    Compute every insight the narrative prompt needs for one timeframe.

    Raises:
        InvalidTimeframeError: If the token is not recognized.
    """
    window = resolve_timeframe(timeframe, now)
    passthroughs = RowBatch(
        raw.passthroughs, date_patterns=PASSTHROUGH_EVENT_DATE_PATTERNS, name='passthroughs',
    )
    non_converted = RowBatch(
        raw.nonConverted, date_patterns=NON_CONVERTED_DATE_PATTERNS, name='nonConverted',
    )
    bookings = RowBatch(raw.bookings, date_patterns=BOOKING_DATE_PATTERNS, name='bookings')
    hot_pass = RowBatch(raw.hotPass, date_patterns=HOT_PASS_DATE_PATTERNS, name='hotPass')

    by_day = analyze_passthroughs_by_day(passthroughs, window)
    by_time = analyze_passthroughs_by_time(passthroughs, window)
    reasons = analyze_non_validated_reasons(non_converted, window)
    agents = analyze_non_validated_by_agent(non_converted, window)
    booking_rows = windowed_rows(bookings, window)

    insights = InsightsData(
        timeframe=RegionalTimeframe(timeframe).value,
        passthroughsByDay=by_day,
        passthroughsByTime=by_time,
        bestPassthroughDay=by_day[0].day if by_day else None,
        bestPassthroughTime=by_time[0].timeSlot if by_time else None,
        topNonValidatedReasons=reasons,
        agentNonValidated=agents,
        hasTimeData=bool(by_time),
        hasNonValidatedReasons=bool(reasons),
        hasBookingData=bool(booking_rows),
        totalPassthroughs=len(windowed_rows(passthroughs, window)),
        totalNonValidated=len(windowed_rows(non_converted, window)),
        totalBookings=len(booking_rows),
        totalHotPass=len(windowed_rows(hot_pass, window)),
    )
    logger.info(
        f"Insights ({insights.timeframe}): {insights.totalPassthroughs} passthroughs, "
        f"{len(reasons)} reasons, time data: {insights.hasTimeData}"
    )
    return insights
