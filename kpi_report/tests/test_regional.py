"""
Tests for the regional, agent, segment and trend rollups.

All expectations are derived from the sample department documented in
conftest.py (September 2026 is 'lastMonth').
"""

from datetime import datetime

import pytest

from kpi_report.core.config import Settings
from kpi_report.models import MetricFamily, Priority, RawParsedData, SegmentType
from kpi_report.services.insights import generate_insights_data
from kpi_report.services.regional import (
    analyze_agent_regional_deviations,
    analyze_period_trends,
    analyze_regional_performance,
    analyze_segment_performance,
    extract_program_destinations,
    extract_programs,
    filter_by_program,
)
from kpi_report.services.reporting import generate_meeting_agenda_data
from kpi_report.services.timeframes import InvalidTimeframeError


class TestRegionalPerformance:

    def test_last_month_tp_ranking(
        self,
        sample_raw: RawParsedData,
        now: datetime,
        test_settings: Settings,
    ) -> None:
        """Paris 40%, Rome 33.3%; Nowhere (2 trips) and August's Lisbon are out."""
        result = analyze_regional_performance(sample_raw, 'lastMonth', now, test_settings)

        assert result.timeframe == 'lastMonth'
        assert result.dataAvailable
        assert [b.key for b in result.tp.allBuckets] == ['Paris', 'Rome']
        paris, rome = result.tp.allBuckets
        assert (paris.trips, paris.passthroughs) == (10, 4)
        assert paris.rate == pytest.approx(40.0)
        assert rome.rate == pytest.approx(100 / 3)
        assert result.tp.overallRate == pytest.approx(37.5)
        assert [b.key for b in result.tp.bottomN] == ['Rome', 'Paris']

    def test_totals_include_non_qualifying_regions(
        self,
        sample_raw: RawParsedData,
        now: datetime,
        test_settings: Settings,
    ) -> None:
        result = analyze_regional_performance(sample_raw, 'lastMonth', now, test_settings)
        assert result.totals.trips == 18
        assert result.totals.passthroughs == 7
        assert result.totals.quotes == 4
        assert result.totals.hotPasses == 2

    def test_pq_and_hot_pass_use_passthrough_denominator(
        self,
        sample_raw: RawParsedData,
        now: datetime,
        test_settings: Settings,
    ) -> None:
        """Rome has only 2 passthroughs, so it drops out of P>Q and hot-pass."""
        result = analyze_regional_performance(sample_raw, 'lastMonth', now, test_settings)
        assert [b.key for b in result.pq.allBuckets] == ['Paris']
        assert result.pq.allBuckets[0].rate == pytest.approx(75.0)
        assert result.hotPass.allBuckets[0].rate == pytest.approx(50.0)

    def test_all_timeframe_includes_august(
        self,
        sample_raw: RawParsedData,
        now: datetime,
        test_settings: Settings,
    ) -> None:
        result = analyze_regional_performance(sample_raw, 'all', now, test_settings)
        assert result.totals.trips == 19

    @pytest.mark.parametrize("timeframe", [
        'lastWeek', 'thisMonth', 'lastMonth', 'thisQuarter', 'lastQuarter', 'lastYear',
    ])
    def test_narrower_windows_never_count_more_than_all(
        self,
        timeframe: str,
        sample_raw: RawParsedData,
        now: datetime,
        test_settings: Settings,
    ) -> None:
        everything = analyze_regional_performance(sample_raw, 'all', now, test_settings)
        windowed = analyze_regional_performance(sample_raw, timeframe, now, test_settings)

        assert windowed.totals.trips <= everything.totals.trips
        assert windowed.totals.passthroughs <= everything.totals.passthroughs
        assert windowed.totals.quotes <= everything.totals.quotes

    def test_missing_region_column(self, now: datetime, test_settings: Settings) -> None:
        raw = RawParsedData(trips=[{'gtt owner': 'A B', 'created date': '2026-09-01'}])
        result = analyze_regional_performance(raw, 'all', now, test_settings)
        assert not result.dataAvailable
        assert result.tp.allBuckets == []

    def test_empty_input(self, now: datetime, test_settings: Settings) -> None:
        result = analyze_regional_performance(RawParsedData(), 'lastWeek', now, test_settings)
        assert not result.dataAvailable

    def test_unknown_timeframe(self, sample_raw: RawParsedData, now: datetime) -> None:
        with pytest.raises(InvalidTimeframeError):
            analyze_regional_performance(sample_raw, 'fortnight', now)


class TestAgentRegionalDeviations:

    @pytest.fixture
    def analyses(self, sample_raw: RawParsedData, now: datetime, test_settings: Settings):
        return {
            a.agentName: a
            for a in analyze_agent_regional_deviations(sample_raw, 'lastMonth', now, test_settings)
        }

    def test_agents_come_from_forward_filled_owners(self, analyses) -> None:
        assert set(analyses) == {'Alice Smith', 'Bob Jones'}
        assert analyses['Alice Smith'].totalTrips == 9
        assert analyses['Bob Jones'].totalTrips == 9

    def test_deviation_against_department_region(self, analyses) -> None:
        """Alice converts 66.7% in Paris vs the department's 40%."""
        alice = analyses['Alice Smith']
        assert [d.region for d in alice.aboveAverage] == ['Paris']
        assert alice.aboveAverage[0].deviation == pytest.approx(200 / 3 - 40)
        assert [d.region for d in alice.belowAverage] == ['Rome']
        assert alice.belowAverage[0].deviation == pytest.approx(-100 / 3)

    def test_agent_threshold_admits_two_trip_region(self, analyses) -> None:
        """Nowhere has 2 trips: below the department threshold, at the agent one."""
        bob = analyses['Bob Jones']
        assert 'Nowhere' in [b.key for b in bob.regions]
        nowhere = next(d for d in bob.aboveAverage if d.region == 'Nowhere')
        # No department bucket, so the department overall rate is the baseline
        assert nowhere.departmentTpRate == pytest.approx(37.5)
        assert nowhere.departmentTrips == 0

    def test_agent_recommendations(self, analyses) -> None:
        """Bob's Paris gap is 40 points on 4 trips: medium, gain 1.6."""
        bob = analyses['Bob Jones']
        assert [r.key for r in bob.recommendations] == ['Paris']
        rec = bob.recommendations[0]
        assert rec.agentName == 'Bob Jones'
        assert rec.priority == Priority.MEDIUM
        assert rec.potentialGain == pytest.approx(1.6)

    def test_no_owner_column(self, now: datetime, test_settings: Settings) -> None:
        raw = RawParsedData(trips=[
            {'destination': 'Paris', 'created date': '2026-09-01'} for _ in range(3)
        ])
        assert analyze_agent_regional_deviations(raw, 'all', now, test_settings) == []


class TestSegmentPerformance:

    def test_repeat_vs_new(
        self,
        sample_raw: RawParsedData,
        now: datetime,
        test_settings: Settings,
    ) -> None:
        result = analyze_segment_performance(
            sample_raw, SegmentType.REPEAT, 'lastMonth', now, test_settings,
        )
        buckets = {b.key: b for b in result.breakdown.allBuckets}
        assert result.dataAvailable
        assert buckets['Repeat'].trips == 4
        assert buckets['Repeat'].rate == pytest.approx(100.0)
        assert buckets['New'].trips == 14
        assert buckets['New'].passthroughs == 3
        assert result.breakdown.allBuckets[0].key == 'Repeat'

    def test_b2b_for_one_agent(
        self,
        sample_raw: RawParsedData,
        now: datetime,
        test_settings: Settings,
    ) -> None:
        result = analyze_segment_performance(
            sample_raw, 'b2b', 'lastMonth', now, test_settings, agent_name='Bob Jones',
        )
        buckets = {b.key: b for b in result.breakdown.allBuckets}
        assert result.agentName == 'Bob Jones'
        assert (buckets['B2B'].trips, buckets['B2B'].passthroughs) == (3, 2)
        assert buckets['B2C'].trips == 6

    def test_unknown_agent_is_empty(
        self,
        sample_raw: RawParsedData,
        now: datetime,
        test_settings: Settings,
    ) -> None:
        result = analyze_segment_performance(
            sample_raw, 'repeat', 'all', now, test_settings, agent_name='Nobody Here',
        )
        assert not result.dataAvailable

    def test_missing_segment_column(self, now: datetime, test_settings: Settings) -> None:
        raw = RawParsedData(trips=[{'gtt owner': 'A B', 'destination': 'Paris'}])
        result = analyze_segment_performance(raw, 'b2b', 'all', now, test_settings)
        assert not result.dataAvailable


class TestPeriodTrends:

    def test_three_months(
        self,
        sample_raw: RawParsedData,
        now: datetime,
        test_settings: Settings,
    ) -> None:
        result = analyze_period_trends(sample_raw, now, test_settings, periods=3)

        assert result.metric == MetricFamily.TP
        assert result.periodLabels == ['Aug 2026', 'Sep 2026', 'Oct 2026']
        assert [b.key for b in result.byPeriod['Sep 2026']] == ['Paris', 'Rome']
        assert result.byPeriod['Aug 2026'] == []
        assert result.departmentSeries == pytest.approx([0.0, 37.5, 0.0])
        assert [p.trips for p in result.periods] == [1, 18, 0]
        assert len(result.points) == 2
        # One non-empty period is not enough for a trend line
        assert result.departmentTrend is None
        assert result.dataAvailable

    def test_defaults_to_configured_periods(
        self,
        sample_raw: RawParsedData,
        now: datetime,
        test_settings: Settings,
    ) -> None:
        result = analyze_period_trends(sample_raw, now, test_settings)
        assert len(result.periodLabels) == test_settings.trend_periods
        assert result.periodLabels[-1] == 'Oct 2026'

    def test_trend_line_over_growing_months(self, test_settings: Settings) -> None:
        """Paris improves 10 points a month from July to October."""
        trips = []
        for month, passthroughs in ((7, 2), (8, 3), (9, 4), (10, 5)):
            for index in range(10):
                trips.append({
                    'destination': 'Paris',
                    'created date': f'2026-{month:02d}-05',
                    'passthrough to sales date': '2026-10-01' if index < passthroughs else '',
                })
        result = analyze_period_trends(
            RawParsedData(trips=trips), datetime(2026, 10, 20), test_settings, periods=4,
        )
        assert result.departmentSeries == pytest.approx([20.0, 30.0, 40.0, 50.0])
        assert result.departmentTrend is not None
        assert result.departmentTrend.slope == pytest.approx(10.0)


class TestPrograms:

    def test_extract_programs(self, sample_raw: RawParsedData) -> None:
        assert extract_programs(sample_raw) == ['Europe', 'Faraway']

    def test_program_destinations(self, sample_raw: RawParsedData) -> None:
        assert extract_program_destinations(sample_raw) == {
            'Europe': ['Lisbon', 'Paris', 'Rome'],
            'Faraway': ['Nowhere'],
        }

    def test_filter_by_program(self, sample_raw: RawParsedData) -> None:
        """Trips filter on program; quotes (no program column) on destination."""
        scoped = filter_by_program(sample_raw, 'europe')
        assert len(scoped.trips) == 17
        assert all(row['program'] == 'Europe' for row in scoped.trips)
        assert len(scoped.quotes) == 4
        # No program or region column: kept whole
        assert len(scoped.passthroughs) == 4

    def test_faraway_drops_european_quotes(self, sample_raw: RawParsedData) -> None:
        scoped = filter_by_program(sample_raw, 'Faraway')
        assert len(scoped.trips) == 2
        assert scoped.quotes == []

    def test_no_program_column_keeps_everything(self) -> None:
        raw = RawParsedData(trips=[{'destination': 'Paris'}])
        assert filter_by_program(raw, 'Europe') is raw


class TestIdempotence:
    """Same input and same clock give byte-identical serialized output."""

    @pytest.mark.parametrize("build", [
        lambda raw, now, s: analyze_regional_performance(raw, 'lastMonth', now, s),
        lambda raw, now, s: analyze_segment_performance(raw, SegmentType.B2B, 'lastMonth', now, s),
        lambda raw, now, s: analyze_period_trends(raw, now, s, periods=3),
        lambda raw, now, s: generate_insights_data(raw, 'lastMonth', now),
        lambda raw, now, s: generate_meeting_agenda_data(raw, 'Europe', 'lastMonth', now, s),
    ])
    def test_model_outputs(
        self,
        build,
        sample_raw: RawParsedData,
        now: datetime,
        test_settings: Settings,
    ) -> None:
        first = build(sample_raw, now, test_settings).model_dump_json()
        second = build(sample_raw, now, test_settings).model_dump_json()
        assert first == second

    def test_agent_deviations(
        self,
        sample_raw: RawParsedData,
        now: datetime,
        test_settings: Settings,
    ) -> None:
        def run():
            agents = analyze_agent_regional_deviations(sample_raw, 'lastMonth', now, test_settings)
            return [agent.model_dump_json() for agent in agents]

        assert run() == run()
