"""
Personal-best tracking per agent.

Each run folds an agent time series into the saved records and reports
which bests changed.

Volume records (trips, quotes, passthroughs) exist per day, Monday-based
week, calendar month and calendar quarter. A period's total replaces the
saved record when:
    - there is no record yet, or
    - the record covers the same period (newer exports are more complete,
      so the new total wins even when it is lower), or
    - the total is greater than the record.
Zero totals never set a record.

Rate records (T>Q, T>P, P>Q) exist per month and quarter only and are only
taken from periods that have ended before `now`'s date, so a half-finished
month cannot set a best. Rates outside (0, 200] are ignored.

An update is reported only when the stored value actually changes.
"""

import logging
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from kpi_report.models import (
    AgentRecords,
    AgentTimeSeries,
    AllRecords,
    RecordEntry,
    RecordMetric,
    RecordPeriod,
    RecordsAnalysis,
    RecordUpdate,
    TimeSeriesData,
)
from kpi_report.services.aggregator import rate

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

VOLUME_METRICS: Tuple[RecordMetric, ...] = (
    RecordMetric.TRIPS, RecordMetric.QUOTES, RecordMetric.PASSTHROUGHS,
)
RATE_METRICS: Tuple[RecordMetric, ...] = (RecordMetric.TQ, RecordMetric.TP, RecordMetric.PQ)

VOLUME_PERIODS: Tuple[RecordPeriod, ...] = (
    RecordPeriod.DAY, RecordPeriod.WEEK, RecordPeriod.MONTH, RecordPeriod.QUARTER,
)
RATE_PERIODS: Tuple[RecordPeriod, ...] = (RecordPeriod.MONTH, RecordPeriod.QUARTER)

# rate metric -> (numerator, denominator) daily fields
RATE_FIELDS: Dict[RecordMetric, Tuple[str, str]] = {
    RecordMetric.TQ: ('quotes', 'trips'),
    RecordMetric.TP: ('passthroughs', 'trips'),
    RecordMetric.PQ: ('quotes', 'passthroughs'),
}

MAX_RECORD_RATE = 200.0


# =============================================================================
# Periods
# =============================================================================


def period_bounds(day: date, period: RecordPeriod) -> Tuple[date, date]:
    """Inclusive first and last day of the period containing `day`."""
    if period == RecordPeriod.DAY:
        return day, day
    if period == RecordPeriod.WEEK:
        start = day - timedelta(days=day.weekday())
        return start, start + timedelta(days=6)
    if period == RecordPeriod.MONTH:
        start = day.replace(day=1)
        return start, start + relativedelta(months=1) - timedelta(days=1)
    start = day.replace(month=((day.month - 1) // 3) * 3 + 1, day=1)
    return start, start + relativedelta(months=3) - timedelta(days=1)


def aggregate_periods(agent: AgentTimeSeries, period: RecordPeriod) -> List[Tuple[date, date, Counter]]:
    """Sum an agent's daily counts per period, in chronological order."""
    periods: Dict[Tuple[date, date], Counter] = {}
    for day in agent.dailyMetrics:
        try:
            moment = date.fromisoformat(day.date)
        except ValueError:
            logger.warning(f"Skipping undated record row for {agent.agentName}: {day.date!r}")
            continue
        counts = periods.setdefault(period_bounds(moment, period), Counter())
        counts['trips'] += day.trips
        counts['quotes'] += day.quotes
        counts['passthroughs'] += day.passthroughs
    return [(start, end, counts) for (start, end), counts in sorted(periods.items())]


# =============================================================================
# Record Checks
# =============================================================================


def candidate_entry(
    current: Optional[RecordEntry],
    value: float,
    start: date,
    end: date,
    now: datetime,
) -> Optional[RecordEntry]:
    """The entry that should replace `current`, or None when it stands."""
    period_start, period_end = start.isoformat(), end.isoformat()
    if current is not None:
        same_period = current.periodStart == period_start and current.periodEnd == period_end
        if not same_period and value <= current.value:
            return None
        if current.value == value:
            return None
    return RecordEntry(value=value, periodStart=period_start, periodEnd=period_end, setAt=now)


def _apply(
    records: AgentRecords,
    metric: RecordMetric,
    period: RecordPeriod,
    value: float,
    start: date,
    end: date,
    now: datetime,
    updates: List[RecordUpdate],
) -> None:
    slots = getattr(records, metric.value)
    current = getattr(slots, period.value)
    entry = candidate_entry(current, value, start, end, now)
    if entry is None:
        return
    setattr(slots, period.value, entry)
    updates.append(RecordUpdate(
        agentName=records.agentName,
        metric=metric,
        period=period,
        previousValue=current.value if current is not None else None,
        newValue=value,
        periodStart=entry.periodStart,
        periodEnd=entry.periodEnd,
        timestamp=now,
    ))


def update_agent_records(
    records: AgentRecords,
    agent: AgentTimeSeries,
    now: datetime,
) -> List[RecordUpdate]:
    """Fold one agent's series into their records in place."""
    updates: List[RecordUpdate] = []
    by_period = {period: aggregate_periods(agent, period) for period in VOLUME_PERIODS}

    for metric in VOLUME_METRICS:
        for period in VOLUME_PERIODS:
            for start, end, counts in by_period[period]:
                value = counts[metric.value]
                if value <= 0:
                    continue
                _apply(records, metric, period, value, start, end, now, updates)

    today = now.date()
    for metric in RATE_METRICS:
        numerator, denominator = RATE_FIELDS[metric]
        for period in RATE_PERIODS:
            for start, end, counts in by_period[period]:
                if today <= end:
                    continue
                value = rate(counts[numerator], counts[denominator])
                if value <= 0 or value > MAX_RECORD_RATE:
                    continue
                _apply(records, metric, period, value, start, end, now, updates)

    return updates


# =============================================================================
# Public API
# =============================================================================


def analyze_and_update_records(
    series: TimeSeriesData,
    existing: AllRecords,
    now: datetime,
) -> RecordsAnalysis:
    """
    Fold a time series into saved records.

    The existing records are not modified; the returned analysis carries an
    updated copy stamped with `now` plus every record that changed, in
    agent, metric, period and chronological order.
    """
    records = existing.model_copy(deep=True)
    records.lastUpdated = now
    updates: List[RecordUpdate] = []

    for agent in series.agents:
        agent_records = records.agents.get(agent.agentName)
        if agent_records is None:
            agent_records = AgentRecords(agentName=agent.agentName)
            records.agents[agent.agentName] = agent_records
        updates.extend(update_agent_records(agent_records, agent, now))

    logger.info(f"Records: {len(series.agents)} agents checked, {len(updates)} new bests")
    return RecordsAnalysis(records=records, updates=updates)
