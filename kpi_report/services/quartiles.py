"""
Hot-pass quartile comparison.

Agents are ranked on their hot-pass rate over a date range and the top and
bottom quarters are compared day by day on T>Q, answering "do the agents
who pass the best leads also quote faster?".

    1. Sum each agent's daily counts over the selected dates.
    2. Keep agents with at least min_passthroughs passthroughs.
    3. Rank by hotPasses / passthroughs, descending (stable on name order).
    4. q = max(1, n // 4); top = first q, bottom = last q.
    5. Per date, pool quotes / trips over each quartile's agents that had
       trips that day.

Fewer than four qualifying agents yields no analysis.
"""

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence

from kpi_report.models import (
    AggregateBucket,
    DailyAgentMetrics,
    MetricFamily,
    QuartileAgent,
    QuartileAnalysis,
    QuartileDailyPoint,
    TimeSeriesData,
)
from kpi_report.services.aggregator import (
    HOT_PASSES,
    PASSTHROUGHS,
    QUOTES,
    TRIPS,
    qualifying_buckets,
    rate,
)

logger = logging.getLogger(__name__)

QUARTILE_MIN_AGENTS = 4
DEFAULT_MIN_PASSTHROUGHS = 10


def select_dates(dates: Sequence[str], start: Optional[str], end: Optional[str]) -> List[str]:
    """ISO dates within the inclusive [start, end] bounds (None = open)."""
    return [
        day for day in dates
        if (start is None or day >= start) and (end is None or day <= end)
    ]


def _quartile_agent(bucket: AggregateBucket, bookings: int) -> QuartileAgent:
    return QuartileAgent(
        agentName=bucket.key,
        aggregateHotPassRate=bucket.rate,
        totalTrips=bucket.trips,
        totalPassthroughs=bucket.passthroughs,
        totalQuotes=bucket.quotes,
        totalHotPasses=bucket.hotPasses,
        totalBookings=bookings,
    )


def _daily_point(
    day: str,
    top: Sequence[Dict[str, DailyAgentMetrics]],
    bottom: Sequence[Dict[str, DailyAgentMetrics]],
) -> QuartileDailyPoint:
    def pooled(group):
        active = [series[day] for series in group if day in series and series[day].trips > 0]
        trips = sum(m.trips for m in active)
        quotes = sum(m.quotes for m in active)
        return rate(quotes, trips), len(active)

    top_tq, top_count = pooled(top)
    bottom_tq, bottom_count = pooled(bottom)
    return QuartileDailyPoint(
        date=day,
        topQuartileAvgTQ=top_tq,
        bottomQuartileAvgTQ=bottom_tq,
        topQuartileAgentCount=top_count,
        bottomQuartileAgentCount=bottom_count,
    )


def calculate_quartile_analysis(
    series: TimeSeriesData,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    min_passthroughs: int = DEFAULT_MIN_PASSTHROUGHS,
) -> Optional[QuartileAnalysis]:
    """
    Compare the top and bottom hot-pass quartiles on daily T>Q.

    Args:
        series: Output of build_agent_time_series.
        start_date: First ISO date to include, or None.
        end_date: Last ISO date to include, or None.
        min_passthroughs: Passthrough volume an agent needs to be ranked.

    Returns:
        QuartileAnalysis, or None when fewer than four agents qualify.
    """
    dates = select_dates(series.dates, start_date, end_date)
    selected = set(dates)

    tallies: Dict[str, Counter] = {}
    bookings: Dict[str, int] = {}
    by_date: Dict[str, Dict[str, DailyAgentMetrics]] = {}
    for agent in series.agents:
        counts: Counter = Counter()
        booked = 0
        for day in agent.dailyMetrics:
            if day.date not in selected:
                continue
            counts[TRIPS] += day.trips
            counts[PASSTHROUGHS] += day.passthroughs
            counts[QUOTES] += day.quotes
            counts[HOT_PASSES] += day.hotPasses
            booked += day.bookings
        tallies[agent.agentName] = counts
        bookings[agent.agentName] = booked
        by_date[agent.agentName] = {day.date: day for day in agent.dailyMetrics}

    ranked = qualifying_buckets(tallies, MetricFamily.HOT_PASS, min_passthroughs)
    if len(ranked) < QUARTILE_MIN_AGENTS:
        logger.info(
            f"Quartile analysis skipped: {len(ranked)} agents with "
            f">= {min_passthroughs} passthroughs (need {QUARTILE_MIN_AGENTS})"
        )
        return None

    size = max(1, len(ranked) // 4)
    top = ranked[:size]
    bottom = ranked[-size:]
    top_series = [by_date[bucket.key] for bucket in top]
    bottom_series = [by_date[bucket.key] for bucket in bottom]

    return QuartileAnalysis(
        topQuartileAgents=[_quartile_agent(b, bookings[b.key]) for b in top],
        bottomQuartileAgents=[_quartile_agent(b, bookings[b.key]) for b in bottom],
        dailyComparison=[_daily_point(day, top_series, bottom_series) for day in dates],
        startDate=dates[0] if dates else "",
        endDate=dates[-1] if dates else "",
        minPassthroughs=min_passthroughs,
    )
