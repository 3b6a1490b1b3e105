"""
Deviation-based recommendation scoring.

Turns a ranked breakdown into a prioritized list of improvement candidates:
buckets whose rate sits below a baseline (the department overall rate, or
for an agent the department's rate for the same key).

Scoring:
    deviation     = rate - baseline                    (negative for candidates)
    priority      = high   if |deviation| >= 15 and volume >= 10
                    medium if |deviation| >= 7
                    low    otherwise
    potentialGain = volume * |deviation| / 100

`volume` is the family denominator: trips for T>P, passthroughs for P>Q and
hot-pass. It is reported in the `trips` field and the rate in `tpRate`,
whichever family is scored. potentialGain is the number of extra numerator
events (passthroughs or quotes) if the bucket were lifted to the baseline.

Lists are ordered by priority (high first), then potentialGain descending.
Thresholds come from Settings.
"""

import logging
from typing import Dict, List, Optional, Sequence

from kpi_report.core.config import Settings, get_settings
from kpi_report.models import (
    AggregateBucket,
    MetricFamily,
    Priority,
    RankedBreakdown,
    Recommendation,
)
from kpi_report.services.aggregator import FAMILY_FIELDS

logger = logging.getLogger(__name__)


PRIORITY_ORDER: Dict[Priority, int] = {
    Priority.HIGH: 0,
    Priority.MEDIUM: 1,
    Priority.LOW: 2,
}

FAMILY_LABELS: Dict[MetricFamily, str] = {
    MetricFamily.TP: 'T>P',
    MetricFamily.PQ: 'P>Q',
    MetricFamily.HOT_PASS: 'hot-pass',
}

VOLUME_LABELS: Dict[MetricFamily, str] = {
    MetricFamily.TP: 'trips',
    MetricFamily.PQ: 'passthroughs',
    MetricFamily.HOT_PASS: 'passthroughs',
}


def classify_priority(deviation: float, volume: int, settings: Optional[Settings] = None) -> Priority:
    settings = settings or get_settings()
    gap = abs(deviation)
    if gap >= settings.high_priority_deviation and volume >= settings.high_priority_min_volume:
        return Priority.HIGH
    if gap >= settings.medium_priority_deviation:
        return Priority.MEDIUM
    return Priority.LOW


def _volume(bucket: AggregateBucket, family: MetricFamily) -> int:
    return getattr(bucket, FAMILY_FIELDS[family][1])


def _reason(key: str, family: MetricFamily, deviation: float, volume: int, baseline_label: str) -> str:
    return (
        f"{key} {FAMILY_LABELS[family]} rate is {abs(deviation):.1f} points below "
        f"{baseline_label} across {volume} {VOLUME_LABELS[family]}"
    )


def build_recommendation(
    bucket: AggregateBucket,
    family: MetricFamily,
    baseline: float,
    settings: Settings,
    baseline_label: str = 'the department average',
    agent_name: Optional[str] = None,
) -> Recommendation:
    deviation = bucket.rate - baseline
    volume = _volume(bucket, family)
    return Recommendation(
        key=bucket.key,
        region=bucket.key,
        metric=family,
        tpRate=bucket.rate,
        departmentAvgRate=baseline,
        deviation=deviation,
        trips=volume,
        priority=classify_priority(deviation, volume, settings),
        reason=_reason(bucket.key, family, deviation, volume, baseline_label),
        potentialGain=volume * abs(deviation) / 100,
        agentName=agent_name,
    )


def sort_recommendations(recommendations: Sequence[Recommendation]) -> List[Recommendation]:
    return sorted(
        recommendations,
        key=lambda rec: (PRIORITY_ORDER[rec.priority], -rec.potentialGain),
    )


def score_department(
    breakdown: RankedBreakdown,
    settings: Optional[Settings] = None,
) -> List[Recommendation]:
    """
    Recommend improvements for every qualifying bucket below the baseline.

    Args:
        breakdown: A department-level ranked breakdown.
        settings: Scoring thresholds (defaults to get_settings()).

    Returns:
        Recommendations ordered by priority, then potential gain.
    """
    settings = settings or get_settings()
    if not breakdown.dataAvailable:
        return []

    candidates = [
        build_recommendation(bucket, breakdown.metric, breakdown.overallRate, settings)
        for bucket in breakdown.allBuckets
        if bucket.rate < breakdown.overallRate
    ]
    return sort_recommendations(candidates)


def score_agent(
    agent_buckets: Sequence[AggregateBucket],
    department_by_key: Dict[str, AggregateBucket],
    settings: Optional[Settings] = None,
    family: MetricFamily = MetricFamily.TP,
    agent_name: Optional[str] = None,
) -> List[Recommendation]:
    """
    Recommend improvements where an agent trails the department on a key.

    Each agent bucket is compared with the department's bucket for the same
    key; keys the department rollup does not cover are skipped.
    """
    settings = settings or get_settings()
    candidates: List[Recommendation] = []
    for bucket in agent_buckets:
        department_bucket = department_by_key.get(bucket.key)
        if department_bucket is None:
            continue
        baseline = department_bucket.rate
        if bucket.rate >= baseline:
            continue
        candidates.append(build_recommendation(
            bucket,
            family,
            baseline,
            settings,
            baseline_label=f"the department's {bucket.key} average",
            agent_name=agent_name,
        ))
    return sort_recommendations(candidates)


def generate_department_recommendations(
    breakdown: RankedBreakdown,
    settings: Optional[Settings] = None,
) -> List[Recommendation]:
    """T>P recommendations from a tp-ranked breakdown."""
    if breakdown.metric != MetricFamily.TP:
        raise ValueError(f"Expected a tp breakdown, got {breakdown.metric.value}")
    return score_department(breakdown, settings)


def generate_pq_department_recommendations(
    breakdown: RankedBreakdown,
    settings: Optional[Settings] = None,
) -> List[Recommendation]:
    """P>Q recommendations from a pq-ranked breakdown."""
    if breakdown.metric != MetricFamily.PQ:
        raise ValueError(f"Expected a pq breakdown, got {breakdown.metric.value}")
    return score_department(breakdown, settings)
