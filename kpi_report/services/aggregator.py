"""
Generic dimensional aggregation for the KPI Report engine.

Every ranked breakdown the dashboard shows (by region, by agent region, by
client segment, by period) is the same computation with different inputs:

    1. Window filter: keep rows whose date falls inside the resolved window.
       In a batch that has a date column, rows whose date cannot be parsed
       are excluded from every rate computation. A batch without a date
       column only participates in unbounded ('all') windows.
    2. Key extraction: group rows by a dimension key, skipping keys shorter
       than 2 characters after trimming.
    3. Accumulation: per key, count rows plus any named companion predicates
       (e.g. "passthroughs" = trips with a non-blank passthrough date).
    4. Threshold: drop buckets whose metric denominator < min_sample.
    5. Rank: sort by rate descending (stable on first-seen key order).
    6. Slice: topN = first N, bottomN = last N reversed (worst first).
    7. Baseline: overallRate = sum(numerator) / sum(denominator) over the
       qualifying buckets.

Metric families (numerator / denominator):
    - tp: passthroughs / trips
    - pq: quotes / passthroughs
    - hotPass: hotPasses / passthroughs

Rates are percentages; a zero denominator yields 0.
"""

import logging
from collections import Counter
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from kpi_report.models import (
    AggregateBucket,
    BucketTotals,
    DateRange,
    MetricFamily,
    RankedBreakdown,
    Row,
)
from kpi_report.services.columns import RowBatch, has_value, is_meaningful_key
from kpi_report.services.dates import parse_datetime_value

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

TRIPS = 'trips'
PASSTHROUGHS = 'passthroughs'
QUOTES = 'quotes'
HOT_PASSES = 'hotPasses'

COUNT_FIELDS: Tuple[str, ...] = (TRIPS, PASSTHROUGHS, QUOTES, HOT_PASSES)

# family -> (numerator field, denominator field)
FAMILY_FIELDS: Dict[MetricFamily, Tuple[str, str]] = {
    MetricFamily.TP: (PASSTHROUGHS, TRIPS),
    MetricFamily.PQ: (QUOTES, PASSTHROUGHS),
    MetricFamily.HOT_PASS: (HOT_PASSES, PASSTHROUGHS),
}

KeyFn = Callable[[Row], Optional[str]]
RowPredicate = Callable[[Row], bool]
Tallies = Dict[str, Counter]


# =============================================================================
# Rate Helpers
# =============================================================================


def rate(numerator: float, denominator: float) -> float:
    """Percentage numerator/denominator, 0 when the denominator is 0."""
    if denominator <= 0:
        return 0.0
    return numerator / denominator * 100


def family_rate(counts: Mapping[str, int], family: MetricFamily) -> float:
    numerator, denominator = FAMILY_FIELDS[family]
    return rate(counts.get(numerator, 0), counts.get(denominator, 0))


def family_denominator(counts: Mapping[str, int], family: MetricFamily) -> int:
    return counts.get(FAMILY_FIELDS[family][1], 0)


# =============================================================================
# Row Selectors
# =============================================================================


def cell_key(column: Optional[str]) -> KeyFn:
    """Key extractor reading one column (None column -> no keys)."""
    def extract(row: Row) -> Optional[str]:
        if column is None:
            return None
        return row.get(column)
    return extract


def companion_present(column: Optional[str]) -> RowPredicate:
    """Predicate: the companion cell of `column` is non-blank."""
    def check(row: Row) -> bool:
        return column is not None and has_value(row.get(column))
    return check


def row_in_window(batch: RowBatch, row: Row, window: DateRange) -> bool:
    if batch.date_column is None:
        return window.is_unbounded
    moment = parse_datetime_value(row.get(batch.date_column))
    if moment is None:
        return False
    return window.contains(moment)


def rows_in_window(batch: RowBatch, window: DateRange) -> List[Row]:
    return [row for row in batch.rows if row_in_window(batch, row, window)]


# =============================================================================
# Accumulation (steps 1-3)
# =============================================================================


def tally_rows(
    batch: RowBatch,
    key_fn: KeyFn,
    window: DateRange,
    count_as: str = TRIPS,
    flags: Optional[Mapping[str, RowPredicate]] = None,
) -> Tallies:
    """
    Group a batch's windowed rows by key and count them.

    Args:
        batch: Rows to aggregate.
        key_fn: Extracts the dimension key of a row.
        window: Resolved time window.
        count_as: Counter field incremented once per row.
        flags: Extra counter fields incremented when their predicate holds.

    Returns:
        Dict of trimmed key -> Counter, in first-seen key order.
    """
    tallies: Tallies = {}
    skipped_dates = 0
    for row in batch.rows:
        if not row_in_window(batch, row, window):
            skipped_dates += 1
            continue
        key = key_fn(row)
        if not is_meaningful_key(key):
            continue
        counts = tallies.setdefault(key.strip(), Counter())
        counts[count_as] += 1
        for field, predicate in (flags or {}).items():
            if predicate(row):
                counts[field] += 1

    if batch.rows:
        logger.debug(
            f"Tallied {len(batch.rows) - skipped_dates}/{len(batch.rows)} "
            f"{batch.name} rows into {len(tallies)} buckets"
        )
    return tallies


def merge_tallies(*parts: Tallies) -> Tallies:
    """Sum several tallies keyed on the same dimension (first-seen order)."""
    merged: Tallies = {}
    for part in parts:
        for key, counts in part.items():
            merged.setdefault(key, Counter()).update(counts)
    return merged


def sum_tallies(tallies: Tallies) -> BucketTotals:
    total: Counter = Counter()
    for counts in tallies.values():
        total.update(counts)
    return BucketTotals(**{field: total.get(field, 0) for field in COUNT_FIELDS})


# =============================================================================
# Buckets and Ranking (steps 4-7)
# =============================================================================


def build_bucket(key: str, counts: Mapping[str, int], family: MetricFamily) -> AggregateBucket:
    """Counts plus all three family rates; `rate` is the ranked family's."""
    return AggregateBucket(
        key=key,
        trips=counts.get(TRIPS, 0),
        passthroughs=counts.get(PASSTHROUGHS, 0),
        quotes=counts.get(QUOTES, 0),
        hotPasses=counts.get(HOT_PASSES, 0),
        tpRate=family_rate(counts, MetricFamily.TP),
        pqRate=family_rate(counts, MetricFamily.PQ),
        hotPassRate=family_rate(counts, MetricFamily.HOT_PASS),
        rate=family_rate(counts, family),
    )


def qualifying_buckets(
    tallies: Tallies,
    family: MetricFamily,
    min_sample: int,
) -> List[AggregateBucket]:
    """Buckets meeting the sample threshold, sorted by rate descending."""
    buckets = [
        build_bucket(key, counts, family)
        for key, counts in tallies.items()
        if family_denominator(counts, family) >= min_sample
    ]
    # sorted() is stable, so ties keep first-seen key order
    return sorted(buckets, key=lambda bucket: bucket.rate, reverse=True)


def baseline_rate(buckets: Iterable[AggregateBucket], family: MetricFamily) -> float:
    """Pooled rate over buckets: sum(numerator) / sum(denominator)."""
    numerator_field, denominator_field = FAMILY_FIELDS[family]
    numerator = 0
    denominator = 0
    for bucket in buckets:
        numerator += getattr(bucket, numerator_field)
        denominator += getattr(bucket, denominator_field)
    return rate(numerator, denominator)


def rank_buckets(
    tallies: Tallies,
    family: MetricFamily,
    min_sample: int,
    top_n: int,
) -> RankedBreakdown:
    """
    Threshold, rank and slice a tally into a RankedBreakdown.

    Totals count every keyed row in the window, qualifying or not; the
    overall rate is pooled over qualifying buckets only.
    """
    ranked = qualifying_buckets(tallies, family, min_sample)
    return RankedBreakdown(
        metric=family,
        minSample=min_sample,
        allBuckets=ranked,
        topN=ranked[:top_n],
        bottomN=list(reversed(ranked[-top_n:])) if top_n > 0 else [],
        totals=sum_tallies(tallies),
        overallRate=baseline_rate(ranked, family),
        dataAvailable=bool(ranked),
    )


def empty_breakdown(family: MetricFamily, min_sample: int) -> RankedBreakdown:
    return RankedBreakdown(metric=family, minSample=min_sample)
