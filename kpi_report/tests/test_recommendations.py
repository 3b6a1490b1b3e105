"""
Tests for deviation-based recommendation scoring and trend regression.
"""

import math

import pytest

from kpi_report.core.config import Settings
from kpi_report.models import AggregateBucket, MetricFamily, Priority, RankedBreakdown, RegressionType
from kpi_report.services.aggregator import build_bucket, empty_breakdown
from kpi_report.services.recommendations import (
    classify_priority,
    generate_department_recommendations,
    generate_pq_department_recommendations,
    score_agent,
    score_department,
)
from kpi_report.services.regression import (
    best_regression,
    linear_regression,
    log_linear_regression,
)


def tp_bucket(key: str, trips: int, passthroughs: int) -> AggregateBucket:
    return build_bucket(key, {'trips': trips, 'passthroughs': passthroughs}, MetricFamily.TP)


def tp_breakdown(buckets, overall_rate: float) -> RankedBreakdown:
    ranked = sorted(buckets, key=lambda b: b.rate, reverse=True)
    return RankedBreakdown(
        metric=MetricFamily.TP,
        minSample=3,
        allBuckets=ranked,
        topN=ranked[:5],
        overallRate=overall_rate,
        dataAvailable=True,
    )


class TestPriority:

    @pytest.mark.parametrize("deviation,volume,expected", [
        (-20.0, 50, Priority.HIGH),
        (-15.0, 10, Priority.HIGH),
        (-20.0, 9, Priority.MEDIUM),
        (-7.0, 1, Priority.MEDIUM),
        (-6.9, 500, Priority.LOW),
        (-0.5, 3, Priority.LOW),
    ])
    def test_classify_priority(
        self,
        deviation: float,
        volume: int,
        expected: Priority,
        test_settings: Settings,
    ) -> None:
        assert classify_priority(deviation, volume, test_settings) == expected

    def test_thresholds_come_from_settings(self) -> None:
        strict = Settings(_env_file=None, high_priority_deviation=30.0, medium_priority_deviation=25.0)
        assert classify_priority(-20.0, 50, strict) == Priority.LOW


class TestDepartmentRecommendations:

    def test_rome_scenario(self, test_settings: Settings) -> None:
        """Department 40%, Rome 20% on 50 trips: deviation -20, high, gain 10."""
        breakdown = tp_breakdown([tp_bucket('Paris', 50, 30), tp_bucket('Rome', 50, 10)], 40.0)

        recommendations = score_department(breakdown, test_settings)

        assert len(recommendations) == 1
        rome = recommendations[0]
        assert rome.key == 'Rome'
        assert rome.deviation == pytest.approx(-20.0)
        assert rome.priority == Priority.HIGH
        assert rome.potentialGain == pytest.approx(10.0)
        assert rome.trips == 50
        assert rome.tpRate == pytest.approx(20.0)
        assert rome.region == 'Rome'
        assert rome.departmentAvgRate == pytest.approx(40.0)
        assert '20.0 points below' in rome.reason

    def test_ordering_priority_then_gain(self, test_settings: Settings) -> None:
        breakdown = tp_breakdown([
            tp_bucket('Cairo', 4, 0),     # -40 on 4 trips: medium, gain 1.6
            tp_bucket('Oslo', 100, 35),   # -5 on 100: low, gain 5
            tp_bucket('Rome', 20, 2),     # -30 on 20: high, gain 6
            tp_bucket('Lima', 50, 5),     # -30 on 50: high, gain 15
            tp_bucket('Paris', 100, 60),
        ], 40.0)
        keys = [r.key for r in score_department(breakdown, test_settings)]
        assert keys == ['Lima', 'Rome', 'Cairo', 'Oslo']

    def test_no_data_no_recommendations(self, test_settings: Settings) -> None:
        assert score_department(empty_breakdown(MetricFamily.TP, 3), test_settings) == []

    def test_metric_guards(self, test_settings: Settings) -> None:
        breakdown = tp_breakdown([tp_bucket('Rome', 50, 10)], 40.0)
        assert generate_department_recommendations(breakdown, test_settings)
        with pytest.raises(ValueError):
            generate_pq_department_recommendations(breakdown, test_settings)

    def test_pq_volume_is_passthroughs(self, test_settings: Settings) -> None:
        bucket = build_bucket('Rome', {'passthroughs': 20, 'quotes': 4}, MetricFamily.PQ)
        breakdown = RankedBreakdown(
            metric=MetricFamily.PQ,
            minSample=3,
            allBuckets=[bucket],
            overallRate=50.0,
            dataAvailable=True,
        )
        rec = generate_pq_department_recommendations(breakdown, test_settings)[0]
        assert rec.trips == 20
        assert rec.tpRate == pytest.approx(20.0)
        assert rec.potentialGain == pytest.approx(6.0)
        assert 'P>Q' in rec.reason


class TestAgentRecommendations:

    def test_compares_with_department_bucket(self, test_settings: Settings) -> None:
        department = {'Paris': tp_bucket('Paris', 100, 50)}
        agent = [tp_bucket('Paris', 10, 2), tp_bucket('Nowhere', 5, 0)]

        recommendations = score_agent(agent, department, test_settings, agent_name='Alice Smith')

        # Nowhere has no department bucket and is skipped
        assert [r.key for r in recommendations] == ['Paris']
        assert recommendations[0].deviation == pytest.approx(-30.0)
        assert recommendations[0].priority == Priority.HIGH
        assert recommendations[0].agentName == 'Alice Smith'

    def test_agent_at_or_above_department_is_not_a_candidate(self, test_settings: Settings) -> None:
        department = {'Paris': tp_bucket('Paris', 100, 50)}
        assert score_agent([tp_bucket('Paris', 10, 5)], department, test_settings) == []


class TestRegression:

    def test_linear_fit(self) -> None:
        fit = linear_regression([10.0, 20.0, 30.0, 40.0])
        assert fit.type == RegressionType.LINEAR
        assert fit.slope == pytest.approx(10.0)
        assert fit.intercept == pytest.approx(10.0)
        assert fit.rSquared == pytest.approx(1.0)
        assert fit.predictedValues == pytest.approx([10.0, 20.0, 30.0, 40.0])

    def test_gaps_keep_their_index(self) -> None:
        fit = linear_regression([10.0, None, 30.0, 40.0])
        assert fit.validPointCount == 3
        assert fit.slope == pytest.approx(10.0)
        assert len(fit.predictedValues) == 4

    def test_too_few_points(self) -> None:
        assert linear_regression([1.0, None, 2.0]) is None
        assert log_linear_regression([0.0, 0.0, 5.0, 6.0]) is None

    def test_exponential_series_prefers_log_linear(self) -> None:
        fit = best_regression([1.0, 2.0, 4.0, 8.0, 16.0])
        assert fit.type == RegressionType.LOG_LINEAR
        assert fit.slope == pytest.approx(math.log(2))
        assert fit.intercept == pytest.approx(1.0)

    def test_linear_series_prefers_linear(self) -> None:
        assert best_regression([20.0, 30.0, 40.0, 50.0]).type == RegressionType.LINEAR

    def test_flat_or_noisy_series_has_no_trend(self) -> None:
        assert best_regression([5.0, 5.0, 5.0]) is None
        assert best_regression([10.0, 40.0, 10.0, 40.0, 10.0]) is None

    def test_predictions_span_requested_points(self) -> None:
        fit = linear_regression([1.0, 2.0, 3.0], total_points=5)
        assert fit.predictedValues == pytest.approx([1.0, 2.0, 3.0, 4.0, 5.0])
