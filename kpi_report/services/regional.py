"""
Regional, agent, segment and period rollups of the KPI Report engine.

Each analysis here is a parametrization of the generic aggregator in
kpi_report.services.aggregator: a key extractor, companion predicates, a
sample threshold and a resolved time window.

Analyses:
    - analyze_regional_performance: department T>P, P>Q and hot-pass rates by
      region/destination (threshold: min_region_sample)
    - analyze_agent_regional_deviations: each agent's region rates against
      the department's, with per-agent recommendations
      (threshold: min_agent_region_sample)
    - analyze_segment_performance: Repeat/New or B2B/B2C T>P rollup,
      optionally for one agent (threshold: min_segment_sample)
    - analyze_period_trends: the region rollup for each trailing calendar
      month, with a department trend line
    - extract_programs / extract_program_destinations / filter_by_program:
      program (product line) discovery and scoping

Counting rules:
    - trips are rows of the trips batch, windowed by trip creation date
    - a trip is a passthrough when its passthrough-to-sales date is non-blank
    - quotes and hot passes are rows of their own batches, windowed by their
      own date column and keyed by their own region column

Missing columns never raise; results carry dataAvailable=False.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Union

from kpi_report.core.config import Settings, get_settings
from kpi_report.models import (
    AgentRegionalAnalysis,
    AggregateBucket,
    DateRange,
    DepartmentRegionalPerformance,
    MetricFamily,
    PeriodSummary,
    PeriodTrendAnalysis,
    RawParsedData,
    RegionalTimeframe,
    RegionDeviation,
    Row,
    SegmentLabel,
    SegmentPerformance,
    SegmentType,
    TrendPoint,
)
from kpi_report.services.aggregator import (
    HOT_PASSES,
    PASSTHROUGHS,
    QUOTES,
    TRIPS,
    Tallies,
    baseline_rate,
    cell_key,
    companion_present,
    empty_breakdown,
    merge_tallies,
    qualifying_buckets,
    rank_buckets,
    sum_tallies,
    tally_rows,
)
from kpi_report.services.columns import (
    B2B_PATTERNS,
    HOT_PASS_DATE_PATTERNS,
    PASSTHROUGH_DATE_PATTERNS,
    PROGRAM_PATTERNS,
    QUOTE_DATE_PATTERNS,
    REGION_PATTERNS,
    REPEAT_PATTERNS,
    TRIP_DATE_PATTERNS,
    RowBatch,
    is_b2b_value,
    is_meaningful_key,
    is_repeat_value,
)
from kpi_report.services.recommendations import score_agent
from kpi_report.services.regression import best_regression
from kpi_report.services.timeframes import resolve_timeframe, trailing_month_ranges

logger = logging.getLogger(__name__)


# =============================================================================
# Batch Helpers
# =============================================================================


def trips_batch(raw: RawParsedData) -> RowBatch:
    return RowBatch(raw.trips, date_patterns=TRIP_DATE_PATTERNS, name='trips')


def quotes_batch(raw: RawParsedData) -> RowBatch:
    return RowBatch(raw.quotes, date_patterns=QUOTE_DATE_PATTERNS, name='quotes')


def hot_pass_batch(raw: RawParsedData) -> RowBatch:
    return RowBatch(raw.hotPass, date_patterns=HOT_PASS_DATE_PATTERNS, name='hotPass')


def trip_region_tallies(trips: RowBatch, window: DateRange) -> Tallies:
    """Trips and passthroughs per region of the trips batch."""
    region_column = trips.column(REGION_PATTERNS)
    if region_column is None:
        return {}
    return tally_rows(
        trips,
        cell_key(region_column),
        window,
        count_as=TRIPS,
        flags={PASSTHROUGHS: companion_present(trips.column(PASSTHROUGH_DATE_PATTERNS))},
    )


def region_tallies(
    trips: RowBatch,
    quotes: RowBatch,
    hot_pass: RowBatch,
    window: DateRange,
) -> Tallies:
    """Trips, passthroughs, quotes and hot passes per region."""
    tallies = trip_region_tallies(trips, window)
    if not tallies:
        return {}
    for batch, field in ((quotes, QUOTES), (hot_pass, HOT_PASSES)):
        region_column = batch.column(REGION_PATTERNS)
        if region_column is None:
            continue
        tallies = merge_tallies(
            tallies,
            tally_rows(batch, cell_key(region_column), window, count_as=field),
        )
    return tallies


def _timeframe_token(timeframe: Union[str, RegionalTimeframe]) -> str:
    return RegionalTimeframe(timeframe).value


def _settings(settings: Optional[Settings]) -> Settings:
    return settings or get_settings()


# =============================================================================
# Department Regional Performance
# =============================================================================


def analyze_regional_performance(
    raw: RawParsedData,
    timeframe: Union[str, RegionalTimeframe],
    now: datetime,
    settings: Optional[Settings] = None,
) -> DepartmentRegionalPerformance:
    """
    Rank regions by T>P, P>Q and hot-pass rate for one timeframe.

    Args:
        raw: The six export batches.
        timeframe: Regional timeframe token.
        now: Reference instant for the window.
        settings: Thresholds (defaults to get_settings()).

    Raises:
        InvalidTimeframeError: If the token is not recognized.
    """
    settings = _settings(settings)
    window = resolve_timeframe(timeframe, now)
    token = _timeframe_token(timeframe)
    min_sample = settings.min_region_sample

    trips = trips_batch(raw)
    if trips.require(REGION_PATTERNS, 'region') is None:
        return DepartmentRegionalPerformance(
            timeframe=token,
            tp=empty_breakdown(MetricFamily.TP, min_sample),
            pq=empty_breakdown(MetricFamily.PQ, min_sample),
            hotPass=empty_breakdown(MetricFamily.HOT_PASS, min_sample),
        )

    tallies = region_tallies(trips, quotes_batch(raw), hot_pass_batch(raw), window)
    tp = rank_buckets(tallies, MetricFamily.TP, min_sample, settings.top_n)
    pq = rank_buckets(tallies, MetricFamily.PQ, min_sample, settings.top_n)
    hot_pass = rank_buckets(tallies, MetricFamily.HOT_PASS, min_sample, settings.top_n)

    logger.info(
        f"Regional performance ({token}): {len(tallies)} regions, "
        f"{len(tp.allBuckets)} qualifying, overall T>P {tp.overallRate:.1f}%"
    )

    return DepartmentRegionalPerformance(
        timeframe=token,
        tp=tp,
        pq=pq,
        hotPass=hot_pass,
        totals=sum_tallies(tallies),
        dataAvailable=tp.dataAvailable or pq.dataAvailable or hot_pass.dataAvailable,
    )


# =============================================================================
# Agent Regional Deviations
# =============================================================================


def partition_by_owner(batch: RowBatch) -> Dict[str, List[Row]]:
    """Rows grouped by forward-filled owner, in first-seen owner order."""
    partitions: Dict[str, List[Row]] = {}
    for row, owner in zip(batch.rows, batch.owners()):
        if owner is None:
            continue
        partitions.setdefault(owner, []).append(row)
    return partitions


def analyze_agent_regional_deviations(
    raw: RawParsedData,
    timeframe: Union[str, RegionalTimeframe],
    now: datetime,
    settings: Optional[Settings] = None,
    department: Optional[DepartmentRegionalPerformance] = None,
) -> List[AgentRegionalAnalysis]:
    """
    Compare every agent's region T>P rates with the department's.

    Agents are taken from the trips batch's owner column with the
    forward-fill rule. For each agent region bucket meeting
    min_agent_region_sample, deviation = agent rate - department rate for
    that region; when the department has no qualifying bucket for the
    region, the department overall rate is the baseline.

    Returns:
        One analysis per agent with windowed trips, most trips first.
    """
    settings = _settings(settings)
    if department is None:
        department = analyze_regional_performance(raw, timeframe, now, settings)
    window = resolve_timeframe(timeframe, now)

    trips = trips_batch(raw)
    if trips.column(REGION_PATTERNS) is None:
        return []
    if trips.require_agent() is None:
        return []

    department_by_key: Dict[str, AggregateBucket] = {
        bucket.key: bucket for bucket in department.tp.allBuckets
    }
    fallback_rate = department.tp.overallRate

    analyses: List[AgentRegionalAnalysis] = []
    for agent, rows in partition_by_owner(trips).items():
        tallies = trip_region_tallies(trips.subset(rows, name=f"trips[{agent}]"), window)
        totals = sum_tallies(tallies)
        if totals.trips == 0:
            continue

        buckets = qualifying_buckets(tallies, MetricFamily.TP, settings.min_agent_region_sample)
        above: List[RegionDeviation] = []
        below: List[RegionDeviation] = []
        for bucket in buckets:
            department_bucket = department_by_key.get(bucket.key)
            department_rate = department_bucket.rate if department_bucket else fallback_rate
            deviation = RegionDeviation(
                region=bucket.key,
                agentTpRate=bucket.rate,
                departmentTpRate=department_rate,
                deviation=bucket.rate - department_rate,
                agentTrips=bucket.trips,
                departmentTrips=department_bucket.trips if department_bucket else 0,
            )
            if deviation.deviation > 0:
                above.append(deviation)
            elif deviation.deviation < 0:
                below.append(deviation)

        above.sort(key=lambda d: d.deviation, reverse=True)
        below.sort(key=lambda d: d.deviation)

        analyses.append(AgentRegionalAnalysis(
            agentName=agent,
            totalTrips=totals.trips,
            totalPassthroughs=totals.passthroughs,
            overallTpRate=baseline_rate(buckets, MetricFamily.TP) if buckets else 0.0,
            regions=buckets,
            aboveAverage=above,
            belowAverage=below,
            recommendations=score_agent(
                buckets, department_by_key, settings, MetricFamily.TP, agent_name=agent,
            ),
        ))

    analyses.sort(key=lambda a: (-a.totalTrips, a.agentName))
    logger.info(f"Agent regional deviations ({_timeframe_token(timeframe)}): {len(analyses)} agents")
    return analyses


# =============================================================================
# Client Segments
# =============================================================================


def segment_label(cell: Optional[str], segment: SegmentType) -> Optional[str]:
    """Repeat/New or B2B/B2C label for a segment cell; None when blank."""
    if cell is None or not cell.strip():
        return None
    if segment == SegmentType.REPEAT:
        return SegmentLabel.REPEAT.value if is_repeat_value(cell) else SegmentLabel.NEW.value
    return SegmentLabel.B2B.value if is_b2b_value(cell) else SegmentLabel.B2C.value


def analyze_segment_performance(
    raw: RawParsedData,
    segment: Union[str, SegmentType],
    timeframe: Union[str, RegionalTimeframe],
    now: datetime,
    settings: Optional[Settings] = None,
    agent_name: Optional[str] = None,
) -> SegmentPerformance:
    """
    T>P by client segment (Repeat/New or B2B/B2C).

    When agent_name is given only that agent's trips (forward-filled owner,
    exact trimmed match) are counted.
    """
    settings = _settings(settings)
    segment = SegmentType(segment)
    window = resolve_timeframe(timeframe, now)
    token = _timeframe_token(timeframe)
    min_sample = settings.min_segment_sample

    trips = trips_batch(raw)
    patterns = REPEAT_PATTERNS if segment == SegmentType.REPEAT else B2B_PATTERNS
    segment_column = trips.require(patterns, f"{segment.value} segment")

    empty = SegmentPerformance(
        segment=segment,
        timeframe=token,
        agentName=agent_name,
        breakdown=empty_breakdown(MetricFamily.TP, min_sample),
    )
    if segment_column is None:
        return empty

    if agent_name is not None:
        target = agent_name.strip()
        rows = [
            row for row, owner in zip(trips.rows, trips.owners())
            if owner is not None and owner == target
        ]
        if not rows:
            return empty
        trips = trips.subset(rows, name=f"trips[{target}]")

    tallies = tally_rows(
        trips,
        lambda row: segment_label(row.get(segment_column), segment),
        window,
        count_as=TRIPS,
        flags={PASSTHROUGHS: companion_present(trips.column(PASSTHROUGH_DATE_PATTERNS))},
    )
    breakdown = rank_buckets(tallies, MetricFamily.TP, min_sample, settings.top_n)
    return SegmentPerformance(
        segment=segment,
        timeframe=token,
        agentName=agent_name,
        breakdown=breakdown,
        dataAvailable=breakdown.dataAvailable,
    )


# =============================================================================
# Period Trends
# =============================================================================


def analyze_period_trends(
    raw: RawParsedData,
    now: datetime,
    settings: Optional[Settings] = None,
    periods: Optional[int] = None,
    family: Union[str, MetricFamily] = MetricFamily.TP,
) -> PeriodTrendAnalysis:
    """
    Compute the region rollup independently for each trailing month.

    The last period is the calendar month containing `now`. Each period's
    department rate is pooled over its qualifying regions; the series of
    those rates is fitted with best_regression (empty periods are skipped
    by the fit but keep their index).
    """
    settings = _settings(settings)
    family = MetricFamily(family)
    periods = periods or settings.trend_periods
    ranges = trailing_month_ranges(now, periods)
    labels = [label for label, _ in ranges]

    trips = trips_batch(raw)
    if trips.require(REGION_PATTERNS, 'region') is None:
        return PeriodTrendAnalysis(metric=family, periodLabels=labels)

    quotes = quotes_batch(raw)
    hot_pass = hot_pass_batch(raw)

    by_period: Dict[str, List[AggregateBucket]] = {}
    summaries: List[PeriodSummary] = []
    points: List[TrendPoint] = []
    series: List[Optional[float]] = []

    for label, window in ranges:
        tallies = region_tallies(trips, quotes, hot_pass, window)
        ranked = qualifying_buckets(tallies, family, settings.min_region_sample)
        totals = sum_tallies(tallies)
        overall = baseline_rate(ranked, family)

        by_period[label] = ranked[:settings.top_n]
        points.extend(
            TrendPoint(period=label, key=bucket.key, rate=bucket.rate, trips=bucket.trips)
            for bucket in ranked
        )
        summaries.append(PeriodSummary(
            label=label,
            start=window.start,
            end=window.end,
            trips=totals.trips,
            passthroughs=totals.passthroughs,
            overallRate=overall,
        ))
        series.append(overall if ranked else None)

    trend = best_regression(series, len(series), settings.regression_r_squared_threshold)

    return PeriodTrendAnalysis(
        metric=family,
        periodLabels=labels,
        byPeriod=by_period,
        periods=summaries,
        points=points,
        departmentSeries=[value if value is not None else 0.0 for value in series],
        departmentTrend=trend,
        dataAvailable=bool(points),
    )


# =============================================================================
# Programs
# =============================================================================


def extract_programs(raw: RawParsedData) -> List[str]:
    """Distinct program values of the trips batch, sorted."""
    trips = trips_batch(raw)
    program_column = trips.column(PROGRAM_PATTERNS)
    if program_column is None:
        return []
    programs = {
        row.get(program_column, '').strip()
        for row in trips.rows
        if is_meaningful_key(row.get(program_column))
    }
    return sorted(programs)


def extract_program_destinations(raw: RawParsedData) -> Dict[str, List[str]]:
    """Program -> sorted distinct destinations seen on its trips."""
    trips = trips_batch(raw)
    program_column = trips.column(PROGRAM_PATTERNS)
    region_column = trips.column(REGION_PATTERNS)
    if program_column is None or region_column is None:
        return {}

    associations: Dict[str, set] = {}
    for row in trips.rows:
        program = row.get(program_column)
        region = row.get(region_column)
        if not is_meaningful_key(program) or not is_meaningful_key(region):
            continue
        associations.setdefault(program.strip(), set()).add(region.strip())
    return {program: sorted(regions) for program, regions in sorted(associations.items())}


def _filter_rows(
    rows: List[Row],
    program: str,
    destinations: set,
) -> List[Row]:
    batch = RowBatch(rows)
    program_column = batch.column(PROGRAM_PATTERNS)
    if program_column is not None:
        return [
            row for row in rows
            if (row.get(program_column) or '').strip().lower() == program
        ]
    region_column = batch.column(REGION_PATTERNS)
    if region_column is not None:
        return [
            row for row in rows
            if (row.get(region_column) or '').strip() in destinations
        ]
    return rows


def filter_by_program(raw: RawParsedData, program: str) -> RawParsedData:
    """
    Scope every batch to one program (case-insensitive).

    Batches with a program column are filtered on it; batches without one
    are filtered to the program's destinations; batches with neither are
    kept whole. When the trips batch has no program column the data is
    returned unchanged.
    """
    if trips_batch(raw).column(PROGRAM_PATTERNS) is None:
        logger.warning(f"No program column in trips batch; '{program}' covers all data")
        return raw

    target = program.strip().lower()
    destinations = {
        region
        for name, regions in extract_program_destinations(raw).items()
        if name.lower() == target
        for region in regions
    }
    return RawParsedData(
        trips=_filter_rows(raw.trips, target, destinations),
        quotes=_filter_rows(raw.quotes, target, destinations),
        passthroughs=_filter_rows(raw.passthroughs, target, destinations),
        hotPass=_filter_rows(raw.hotPass, target, destinations),
        bookings=_filter_rows(raw.bookings, target, destinations),
        nonConverted=_filter_rows(raw.nonConverted, target, destinations),
    )
