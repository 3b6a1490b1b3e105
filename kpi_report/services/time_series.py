"""
Per-agent daily time series.

Every dated event in the export batches (a trip created, a quote sent, a
passthrough, a hot pass, a booking, a non-validated lead) becomes one
(agent, date, field) observation. The observations are counted with a
pandas groupby and re-indexed over every agent x date pair, so each agent
carries one zero-filled row per date that appears anywhere in the data.

Group series (department, seniors, non-seniors) pool the member agents'
counts per date before taking rates, the same pooling the regional rollups
use for their baselines.

Rows are dropped when their batch has no date column, when the date cell
does not parse, or when the date falls outside the resolved window. Agent
names merge case-insensitively; the first spelling seen wins, trips batch
first.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from kpi_report.models import (
    AgentTimeSeries,
    DailyAgentMetrics,
    DailyRatioPoint,
    DateRange,
    RawParsedData,
    Row,
    SegmentType,
    SimpleTimeframe,
    TimeSeriesData,
)
from kpi_report.services.agent_metrics import normalize_name
from kpi_report.services.aggregator import rate
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
from kpi_report.services.dates import parse_datetime_value
from kpi_report.services.timeframes import resolve_simple_timeframe

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DAILY_FIELDS: Tuple[str, ...] = (
    'trips', 'quotes', 'passthroughs', 'hotPasses', 'bookings', 'nonConverted',
)

ISO_DATE_FORMAT = '%Y-%m-%d'


# =============================================================================
# Event Extraction
# =============================================================================


def dated_owner_events(
    batch: RowBatch,
    window: DateRange,
    owner_column: Optional[str] = None,
    predicate: Optional[Callable[[Row], bool]] = None,
) -> Iterator[Tuple[str, str]]:
    """Yield (owner, ISO date) for every dated, windowed row with an owner."""
    if batch.date_column is None:
        return
    for row, owner in zip(batch.rows, batch.owners(owner_column)):
        if owner is None:
            continue
        moment = parse_datetime_value(row.get(batch.date_column))
        if moment is None or not window.contains(moment):
            continue
        if predicate is not None and not predicate(row):
            continue
        yield owner, moment.strftime(ISO_DATE_FORMAT)


def collect_agent_events(raw: RawParsedData, window: DateRange) -> Tuple[pd.DataFrame, Dict[str, str]]:
    """
    Gather every dated agent event of every batch.

    Returns:
        (events, names): a DataFrame with columns agent (normalized name),
        date and field, plus the normalized -> display name mapping.
    """
    names: Dict[str, str] = {}
    records: List[Dict[str, str]] = []

    def add(field: str, events: Iterator[Tuple[str, str]]) -> None:
        for owner, day in events:
            key = normalize_name(owner)
            names.setdefault(key, owner.strip())
            records.append({'agent': key, 'date': day, 'field': field})

    for field, rows, patterns, name in (
        ('trips', raw.trips, TRIP_DATE_PATTERNS, 'trips'),
        ('quotes', raw.quotes, QUOTE_DATE_PATTERNS, 'quotes'),
        ('passthroughs', raw.passthroughs, PASSTHROUGH_EVENT_DATE_PATTERNS, 'passthroughs'),
        ('hotPasses', raw.hotPass, HOT_PASS_DATE_PATTERNS, 'hotPass'),
        ('bookings', raw.bookings, BOOKING_DATE_PATTERNS, 'bookings'),
    ):
        batch = RowBatch(rows, date_patterns=patterns, name=name)
        if batch.require_agent() is not None:
            add(field, dated_owner_events(batch, window))

    non_converted = RowBatch(
        raw.nonConverted, date_patterns=NON_CONVERTED_DATE_PATTERNS, name='nonConverted',
    )
    owner_column = non_converted.column(NON_VALIDATED_OWNER_PATTERNS)
    reason_column = non_converted.column(REASON_PATTERNS)
    if owner_column is not None and reason_column is not None:
        add('nonConverted', dated_owner_events(
            non_converted, window, owner_column,
            predicate=lambda row: has_value(row.get(reason_column)),
        ))

    events = pd.DataFrame(records, columns=['agent', 'date', 'field'])
    return events, names


def daily_counts(events: pd.DataFrame, agents: Sequence[str], dates: Sequence[str]) -> pd.DataFrame:
    """Event counts indexed by (agent, date), one column per daily field."""
    index = pd.MultiIndex.from_product([list(agents), list(dates)], names=['agent', 'date'])
    if events.empty:
        return pd.DataFrame(0, index=index, columns=list(DAILY_FIELDS))
    counts = (
        events.groupby(['agent', 'date', 'field']).size()
        .unstack('field', fill_value=0)
        .reindex(columns=list(DAILY_FIELDS), fill_value=0)
    )
    return counts.reindex(index, fill_value=0).astype(int)


# =============================================================================
# Ratio Points
# =============================================================================


def ratio_point(day: str, counts: Mapping[str, int]) -> DailyRatioPoint:
    trips = int(counts.get('trips', 0))
    quotes = int(counts.get('quotes', 0))
    passthroughs = int(counts.get('passthroughs', 0))
    return DailyRatioPoint(
        date=day,
        tq=rate(quotes, trips),
        tp=rate(passthroughs, trips),
        pq=rate(quotes, passthroughs),
        hp=rate(int(counts.get('hotPasses', 0)), passthroughs),
        nc=rate(int(counts.get('nonConverted', 0)), trips),
        trips=trips,
        quotes=quotes,
        passthroughs=passthroughs,
        bookings=int(counts.get('bookings', 0)),
    )


def group_daily(counts: pd.DataFrame, members: Sequence[str], dates: Sequence[str]) -> List[DailyRatioPoint]:
    """Pooled per-date ratio points over a set of agents (zeros when empty)."""
    selected = counts[counts.index.get_level_values('agent').isin(list(members))]
    pooled = selected.groupby(level='date').sum().reindex(list(dates), fill_value=0)
    return [ratio_point(day, pooled.loc[day]) for day in dates]


# =============================================================================
# Public API
# =============================================================================


def build_agent_time_series(
    raw: RawParsedData,
    timeframe: Union[str, SimpleTimeframe],
    now: datetime,
    seniors: Sequence[str] = (),
) -> TimeSeriesData:
    """
    Build the per-agent daily series for a simple-vocabulary timeframe.

    Args:
        raw: Export batches.
        timeframe: week | month | quarter | ytd | all.
        now: Anchor for the window.
        seniors: Senior roster, matched trimmed and case-insensitively.

    Returns:
        TimeSeriesData with agents sorted by name and dates ascending.

    Raises:
        InvalidTimeframeError: If the token is not recognized.
    """
    window = resolve_simple_timeframe(timeframe, now)
    token = SimpleTimeframe(timeframe).value
    events, names = collect_agent_events(raw, window)

    if events.empty:
        logger.info(f"Time series ({token}): no dated agent events")
        return TimeSeriesData(timeframe=token)

    dates = sorted(events['date'].unique())
    agent_keys = sorted(names)
    counts = daily_counts(events, agent_keys, dates)

    agents = []
    for key in agent_keys:
        frame = counts.loc[key]
        agents.append(AgentTimeSeries(
            agentName=names[key],
            dailyMetrics=[
                DailyAgentMetrics(date=day, **{
                    field: int(frame.at[day, field]) for field in DAILY_FIELDS
                })
                for day in dates
            ],
        ))

    senior_keys = {normalize_name(name) for name in seniors if name.strip()}
    senior_members = [key for key in agent_keys if key in senior_keys]
    other_members = [key for key in agent_keys if key not in senior_keys]

    logger.info(
        f"Time series ({token}): {len(agents)} agents over {len(dates)} dates "
        f"({dates[0]} to {dates[-1]})"
    )
    return TimeSeriesData(
        timeframe=token,
        startDate=dates[0],
        endDate=dates[-1],
        dates=dates,
        agents=agents,
        departmentDaily=group_daily(counts, agent_keys, dates),
        seniorDaily=group_daily(counts, senior_members, dates),
        nonSeniorDaily=group_daily(counts, other_members, dates),
    )


def calculate_segment_daily_averages(
    raw: RawParsedData,
    segment: Union[str, SegmentType],
    timeframe: Union[str, SimpleTimeframe],
    now: datetime,
) -> List[DailyRatioPoint]:
    """
    Daily T>P of one client segment (repeat or B2B trips).

    Only dates with at least one segment trip are returned, ascending. The
    trips batch carries no quote or hot-pass events, so those rates are 0.

    Raises:
        InvalidTimeframeError: If the token is not recognized.
    """
    segment = SegmentType(segment)
    window = resolve_simple_timeframe(timeframe, now)
    trips = RowBatch(raw.trips, date_patterns=TRIP_DATE_PATTERNS, name='trips')
    if segment == SegmentType.REPEAT:
        segment_column, matches = trips.column(REPEAT_PATTERNS), is_repeat_value
    else:
        segment_column, matches = trips.column(B2B_PATTERNS), is_b2b_value
    if segment_column is None or trips.date_column is None:
        logger.warning(f"Segment daily ({segment.value}): segment or date column missing")
        return []

    passthrough_column = trips.column(PASSTHROUGH_DATE_PATTERNS)
    records = []
    for row in trips.rows:
        if not matches(row.get(segment_column)):
            continue
        moment = parse_datetime_value(row.get(trips.date_column))
        if moment is None or not window.contains(moment):
            continue
        records.append({
            'date': moment.strftime(ISO_DATE_FORMAT),
            'passthroughs': int(
                passthrough_column is not None and has_value(row.get(passthrough_column))
            ),
        })

    if not records:
        return []
    daily = (
        pd.DataFrame(records)
        .groupby('date')['passthroughs']
        .agg(trips='size', passthroughs='sum')
        .sort_index()
    )
    return [
        ratio_point(day, {'trips': row.trips, 'passthroughs': row.passthroughs})
        for day, row in daily.iterrows()
    ]
