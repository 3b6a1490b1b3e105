"""
Per-agent KPI table and group comparisons.

calculate_agent_metrics counts each agent's activity in every batch
(trips, quotes, passthroughs, hot passes, bookings, non-validated leads)
within a simple-vocabulary timeframe and derives the funnel rates:

    quotesFromTrips        (T>Q) = quotes / trips
    passthroughsFromTrips  (T>P) = passthroughs / trips
    quotesFromPassthroughs (P>Q) = quotes / passthroughs
    hotPassRate                  = hotPasses / passthroughs
    nonConvertedRate             = nonConvertedLeads / trips
    repeatTpRate / b2bTpRate     = segment passthroughs / segment trips

Owners are forward-filled per batch. The same agent may be spelled with
different case across exports, so names are merged case-insensitively
(the first spelling seen is kept, trips batch first).

compare_groups rolls agent rows up into department, senior, non-senior and
per-team summaries; roster membership is matched trimmed and
case-insensitively.
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Union

from kpi_report.models import (
    AgentMetrics,
    DateRange,
    GroupComparison,
    GroupSummary,
    RawParsedData,
    Row,
    SimpleTimeframe,
    Team,
)
from kpi_report.services.aggregator import rate, row_in_window
from kpi_report.services.columns import (
    B2B_PATTERNS,
    BOOKING_DATE_PATTERNS,
    HOT_PASS_DATE_PATTERNS,
    NON_CONVERTED_DATE_PATTERNS,
    NON_VALIDATED_OWNER_PATTERNS,
    PASSTHROUGH_DATE_PATTERNS,
    PASSTHROUGH_EVENT_DATE_PATTERNS,
    QUOTE_DATE_PATTERNS,
    REASON_PATTERNS,
    REPEAT_PATTERNS,
    TRIP_DATE_PATTERNS,
    RowBatch,
    has_value,
    is_b2b_value,
    is_repeat_value,
)
from kpi_report.services.timeframes import resolve_simple_timeframe

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    return name.strip().lower()


def count_by_owner(
    batch: RowBatch,
    window: DateRange,
    owner_column: Optional[str] = None,
    predicate: Optional[Callable[[Row], bool]] = None,
) -> Counter:
    """Windowed rows per forward-filled owner, optionally filtered."""
    counts: Counter = Counter()
    for row, owner in zip(batch.rows, batch.owners(owner_column)):
        if owner is None or not row_in_window(batch, row, window):
            continue
        if predicate is not None and not predicate(row):
            continue
        counts[owner] += 1
    return counts


class _AgentLedger:
    """Accumulates per-agent counters under case-insensitive names."""

    def __init__(self):
        self.names: Dict[str, str] = {}
        self.counts: Dict[str, Counter] = {}

    def add(self, field: str, per_owner: Counter) -> None:
        for owner, count in per_owner.items():
            key = normalize_name(owner)
            if key not in self.names:
                self.names[key] = owner.strip()
                self.counts[key] = Counter()
            self.counts[key][field] += count


def calculate_agent_metrics(
    raw: RawParsedData,
    timeframe: Union[str, SimpleTimeframe],
    now: datetime,
) -> List[AgentMetrics]:
    """
    Build the agent KPI table for a simple-vocabulary timeframe.

    Returns:
        One AgentMetrics per agent seen in any batch, sorted by name.

    Raises:
        InvalidTimeframeError: If the token is not recognized.
    """
    window = resolve_simple_timeframe(timeframe, now)
    ledger = _AgentLedger()

    trips = RowBatch(raw.trips, date_patterns=TRIP_DATE_PATTERNS, name='trips')
    if trips.require_agent() is not None:
        ledger.add('trips', count_by_owner(trips, window))

        passthrough_column = trips.column(PASSTHROUGH_DATE_PATTERNS)
        for field, patterns, matches in (
            ('repeat', REPEAT_PATTERNS, is_repeat_value),
            ('b2b', B2B_PATTERNS, is_b2b_value),
        ):
            segment_column = trips.column(patterns)
            if segment_column is None:
                continue
            ledger.add(f"{field}Trips", count_by_owner(
                trips, window,
                predicate=lambda row, c=segment_column, m=matches: m(row.get(c)),
            ))
            if passthrough_column is not None:
                ledger.add(f"{field}Passthroughs", count_by_owner(
                    trips, window,
                    predicate=lambda row, c=segment_column, m=matches: (
                        m(row.get(c)) and has_value(row.get(passthrough_column))
                    ),
                ))

    for field, rows, patterns, name in (
        ('quotes', raw.quotes, QUOTE_DATE_PATTERNS, 'quotes'),
        ('passthroughs', raw.passthroughs, PASSTHROUGH_EVENT_DATE_PATTERNS, 'passthroughs'),
        ('hotPasses', raw.hotPass, HOT_PASS_DATE_PATTERNS, 'hotPass'),
        ('bookings', raw.bookings, BOOKING_DATE_PATTERNS, 'bookings'),
    ):
        batch = RowBatch(rows, date_patterns=patterns, name=name)
        if batch.require_agent() is not None:
            ledger.add(field, count_by_owner(batch, window))

    non_converted = RowBatch(
        raw.nonConverted, date_patterns=NON_CONVERTED_DATE_PATTERNS, name='nonConverted',
    )
    owner_column = non_converted.column(NON_VALIDATED_OWNER_PATTERNS)
    reason_column = non_converted.column(REASON_PATTERNS)
    if owner_column is not None and reason_column is not None:
        ledger.add('nonConvertedLeads', count_by_owner(
            non_converted, window, owner_column,
            predicate=lambda row: has_value(row.get(reason_column)),
        ))

    metrics = []
    for key, counts in ledger.counts.items():
        trip_count = counts['trips']
        passthroughs = counts['passthroughs']
        metrics.append(AgentMetrics(
            agentName=ledger.names[key],
            trips=trip_count,
            quotes=counts['quotes'],
            passthroughs=passthroughs,
            hotPasses=counts['hotPasses'],
            bookings=counts['bookings'],
            nonConvertedLeads=counts['nonConvertedLeads'],
            quotesFromTrips=rate(counts['quotes'], trip_count),
            passthroughsFromTrips=rate(passthroughs, trip_count),
            quotesFromPassthroughs=rate(counts['quotes'], passthroughs),
            hotPassRate=rate(counts['hotPasses'], passthroughs),
            nonConvertedRate=rate(counts['nonConvertedLeads'], trip_count),
            repeatTrips=counts['repeatTrips'],
            repeatPassthroughs=counts['repeatPassthroughs'],
            repeatTpRate=rate(counts['repeatPassthroughs'], counts['repeatTrips']),
            b2bTrips=counts['b2bTrips'],
            b2bPassthroughs=counts['b2bPassthroughs'],
            b2bTpRate=rate(counts['b2bPassthroughs'], counts['b2bTrips']),
        ))

    metrics.sort(key=lambda m: normalize_name(m.agentName))
    logger.info(f"Agent metrics ({SimpleTimeframe(timeframe).value}): {len(metrics)} agents")
    return metrics


# =============================================================================
# Group Comparison
# =============================================================================


def summarize_group(name: str, members: Sequence[AgentMetrics]) -> GroupSummary:
    trips = sum(m.trips for m in members)
    quotes = sum(m.quotes for m in members)
    passthroughs = sum(m.passthroughs for m in members)
    hot_passes = sum(m.hotPasses for m in members)
    return GroupSummary(
        name=name,
        agentCount=len(members),
        agents=[m.agentName for m in members],
        trips=trips,
        quotes=quotes,
        passthroughs=passthroughs,
        hotPasses=hot_passes,
        tqRate=rate(quotes, trips),
        tpRate=rate(passthroughs, trips),
        pqRate=rate(quotes, passthroughs),
        hotPassRate=rate(hot_passes, passthroughs),
    )


def compare_groups(
    metrics: Sequence[AgentMetrics],
    seniors: Sequence[str] = (),
    teams: Sequence[Team] = (),
) -> GroupComparison:
    """Department, senior, non-senior and per-team rollups of agent metrics."""
    senior_names = {normalize_name(name) for name in seniors if name.strip()}
    senior_rows = [m for m in metrics if normalize_name(m.agentName) in senior_names]
    other_rows = [m for m in metrics if normalize_name(m.agentName) not in senior_names]

    team_summaries = []
    for team in teams:
        roster = {normalize_name(name) for name in team.agentNames if name.strip()}
        members = [m for m in metrics if normalize_name(m.agentName) in roster]
        team_summaries.append(summarize_group(team.name, members))

    return GroupComparison(
        department=summarize_group('Department', list(metrics)),
        seniors=summarize_group('Seniors', senior_rows),
        nonSeniors=summarize_group('Non-Seniors', other_rows),
        teams=team_summaries,
    )
