"""
FastAPI router module for the analytics engine.

Every endpoint receives the raw export batches (RawParsedData) plus a
timeframe token and returns one engine structure. The analysis clock is the
injected ClockDep, so results are reproducible under test.

Key Endpoints:
- POST /analytics/ingest: Parse uploaded CSV reports into RawParsedData
- POST /analytics/columns: Column names per batch (debug aid)
- POST /analytics/regional: Department region rollups (T>P, P>Q, hot-pass)
- POST /analytics/regional/agents: Agent region deviations
- POST /analytics/recommendations: Department recommendations for one metric
- POST /analytics/segments: Repeat/New or B2B/B2C rollup
- POST /analytics/trends: Trailing-month region trends
- POST /analytics/insights: Timing and non-validated lead insights
- POST /analytics/insights/prompt: Narrative prompt for the insights
- POST /analytics/charts: Chart arrays
- POST /analytics/agents/metrics: Agent KPI table
- POST /analytics/agents/groups: Senior / team comparison
- POST /analytics/agents/time-series: Per-agent daily series with group averages
- POST /analytics/segments/daily: Daily T>P of repeat or B2B trips
- POST /analytics/quartiles: Top vs bottom hot-pass quartile daily T>Q
- POST /analytics/programs: Programs and their destinations
- POST /analytics/agenda: Meeting agenda export payload

Error mapping:
- InvalidTimeframeError -> 400
- IngestionError -> 400
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, File, HTTPException, UploadFile

from kpi_report.core.dependencies import ClockDep, SettingsDep
from kpi_report.models import (
    AgentMetrics,
    AgentRegionalAnalysis,
    AgendaRequest,
    AnalyticsRequest,
    ChartBundle,
    DailyRatioPoint,
    DepartmentRegionalPerformance,
    GroupComparison,
    GroupComparisonRequest,
    InsightsData,
    MeetingAgendaData,
    MetricFamily,
    PeriodTrendAnalysis,
    ProgramsResponse,
    PromptResponse,
    QuartileAnalysis,
    QuartileRequest,
    RawParsedData,
    Recommendation,
    RecommendationRequest,
    SegmentDailyRequest,
    SegmentPerformance,
    SegmentRequest,
    TimeSeriesData,
    TimeSeriesRequest,
    TrendRequest,
)
from kpi_report.services.agent_metrics import calculate_agent_metrics, compare_groups
from kpi_report.services.columns import discover_columns
from kpi_report.services.ingestion import IngestionError, build_raw_data
from kpi_report.services.insights import generate_insights_data
from kpi_report.services.quartiles import calculate_quartile_analysis
from kpi_report.services.recommendations import score_department
from kpi_report.services.regional import (
    analyze_agent_regional_deviations,
    analyze_period_trends,
    analyze_regional_performance,
    analyze_segment_performance,
    extract_program_destinations,
    extract_programs,
)
from kpi_report.services.reporting import (
    build_insights_prompt,
    count_chart,
    generate_meeting_agenda_data,
    rate_chart,
)
from kpi_report.services.time_series import (
    build_agent_time_series,
    calculate_segment_daily_averages,
)
from kpi_report.services.timeframes import InvalidTimeframeError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"])


def _bad_request(e: Exception) -> HTTPException:
    logger.warning(f"Rejected analytics request: {e}")
    return HTTPException(status_code=400, detail=str(e))


# =============================================================================
# Ingestion
# =============================================================================


@router.post("/ingest", response_model=RawParsedData)
async def ingest_reports(
    trips: Optional[UploadFile] = File(default=None),
    quotes: Optional[UploadFile] = File(default=None),
    passthroughs: Optional[UploadFile] = File(default=None),
    hotPass: Optional[UploadFile] = File(default=None),
    bookings: Optional[UploadFile] = File(default=None),
    nonConverted: Optional[UploadFile] = File(default=None),
) -> RawParsedData:
    """Parse uploaded CRM report CSVs (any subset of the six batches)."""
    uploads = {
        'trips': trips,
        'quotes': quotes,
        'passthroughs': passthroughs,
        'hotPass': hotPass,
        'bookings': bookings,
        'nonConverted': nonConverted,
    }
    sources = {}
    for name, upload in uploads.items():
        if upload is not None:
            sources[name] = await upload.read()
    try:
        return build_raw_data(sources)
    except IngestionError as e:
        raise _bad_request(e)


@router.post("/columns", response_model=Dict[str, List[str]])
def list_columns(data: RawParsedData) -> Dict[str, List[str]]:
    return discover_columns(data)


# =============================================================================
# Regional Rollups
# =============================================================================


@router.post("/regional", response_model=DepartmentRegionalPerformance)
def regional_performance(
    request: AnalyticsRequest,
    settings: SettingsDep,
    now: ClockDep,
) -> DepartmentRegionalPerformance:
    try:
        return analyze_regional_performance(request.data, request.timeframe, now, settings)
    except InvalidTimeframeError as e:
        raise _bad_request(e)


@router.post("/regional/agents", response_model=List[AgentRegionalAnalysis])
def agent_regional_deviations(
    request: AnalyticsRequest,
    settings: SettingsDep,
    now: ClockDep,
) -> List[AgentRegionalAnalysis]:
    try:
        return analyze_agent_regional_deviations(request.data, request.timeframe, now, settings)
    except InvalidTimeframeError as e:
        raise _bad_request(e)


@router.post("/recommendations", response_model=List[Recommendation])
def department_recommendations(
    request: RecommendationRequest,
    settings: SettingsDep,
    now: ClockDep,
) -> List[Recommendation]:
    """Recommendations for the requested metric family (tp, pq or hotPass)."""
    try:
        regional = analyze_regional_performance(request.data, request.timeframe, now, settings)
    except InvalidTimeframeError as e:
        raise _bad_request(e)
    breakdown = {
        MetricFamily.TP: regional.tp,
        MetricFamily.PQ: regional.pq,
        MetricFamily.HOT_PASS: regional.hotPass,
    }[request.metric]
    return score_department(breakdown, settings)


@router.post("/segments", response_model=SegmentPerformance)
def segment_performance(
    request: SegmentRequest,
    settings: SettingsDep,
    now: ClockDep,
) -> SegmentPerformance:
    try:
        return analyze_segment_performance(
            request.data,
            request.segment,
            request.timeframe,
            now,
            settings,
            agent_name=request.agentName,
        )
    except InvalidTimeframeError as e:
        raise _bad_request(e)


@router.post("/trends", response_model=PeriodTrendAnalysis)
def period_trends(
    request: TrendRequest,
    settings: SettingsDep,
    now: ClockDep,
) -> PeriodTrendAnalysis:
    return analyze_period_trends(
        request.data, now, settings, periods=request.periods, family=request.metric,
    )


# =============================================================================
# Insights
# =============================================================================


@router.post("/insights", response_model=InsightsData)
def insights(request: AnalyticsRequest, now: ClockDep) -> InsightsData:
    try:
        return generate_insights_data(request.data, request.timeframe, now)
    except InvalidTimeframeError as e:
        raise _bad_request(e)


@router.post("/insights/prompt", response_model=PromptResponse)
def insights_prompt(request: AnalyticsRequest, now: ClockDep) -> PromptResponse:
    try:
        data = generate_insights_data(request.data, request.timeframe, now)
    except InvalidTimeframeError as e:
        raise _bad_request(e)
    return PromptResponse(prompt=build_insights_prompt(data))


@router.post("/charts", response_model=ChartBundle)
def charts(
    request: AnalyticsRequest,
    settings: SettingsDep,
    now: ClockDep,
) -> ChartBundle:
    try:
        data = generate_insights_data(request.data, request.timeframe, now)
        regional = analyze_regional_performance(request.data, request.timeframe, now, settings)
    except InvalidTimeframeError as e:
        raise _bad_request(e)
    return ChartBundle(
        passthroughsByDay=count_chart(data.passthroughsByDay),
        passthroughsByTime=count_chart(data.passthroughsByTime),
        regionTpRates=rate_chart(regional.tp.allBuckets),
    )


# =============================================================================
# Agent KPIs
# =============================================================================


@router.post("/agents/metrics", response_model=List[AgentMetrics])
def agent_metrics(request: AnalyticsRequest, now: ClockDep) -> List[AgentMetrics]:
    """Agent KPI table; timeframe uses the week|month|quarter|ytd|all vocabulary."""
    try:
        return calculate_agent_metrics(request.data, request.timeframe, now)
    except InvalidTimeframeError as e:
        raise _bad_request(e)


@router.post("/agents/groups", response_model=GroupComparison)
def agent_groups(request: GroupComparisonRequest, now: ClockDep) -> GroupComparison:
    try:
        metrics = calculate_agent_metrics(request.data, request.timeframe, now)
    except InvalidTimeframeError as e:
        raise _bad_request(e)
    return compare_groups(metrics, request.seniors, request.teams)


@router.post("/agents/time-series", response_model=TimeSeriesData)
def agent_time_series(request: TimeSeriesRequest, now: ClockDep) -> TimeSeriesData:
    """Daily per-agent counts plus department, senior and non-senior averages."""
    try:
        return build_agent_time_series(request.data, request.timeframe, now, request.seniors)
    except InvalidTimeframeError as e:
        raise _bad_request(e)


@router.post("/segments/daily", response_model=List[DailyRatioPoint])
def segment_daily(request: SegmentDailyRequest, now: ClockDep) -> List[DailyRatioPoint]:
    try:
        return calculate_segment_daily_averages(
            request.data, request.segment, request.timeframe, now,
        )
    except InvalidTimeframeError as e:
        raise _bad_request(e)


@router.post("/quartiles", response_model=Optional[QuartileAnalysis])
def quartiles(
    request: QuartileRequest,
    settings: SettingsDep,
    now: ClockDep,
) -> Optional[QuartileAnalysis]:
    """
    Hot-pass quartile comparison; null when fewer than four agents reach
    the passthrough threshold.
    """
    try:
        series = build_agent_time_series(request.data, request.timeframe, now)
    except InvalidTimeframeError as e:
        raise _bad_request(e)
    min_passthroughs = request.minPassthroughs
    if min_passthroughs is None:
        min_passthroughs = settings.quartile_min_passthroughs
    return calculate_quartile_analysis(
        series, request.startDate, request.endDate, min_passthroughs,
    )


# =============================================================================
# Programs and Meeting Agenda
# =============================================================================


@router.post("/programs", response_model=ProgramsResponse)
def programs(data: RawParsedData) -> ProgramsResponse:
    return ProgramsResponse(
        programs=extract_programs(data),
        destinations=extract_program_destinations(data),
    )


@router.post("/agenda", response_model=MeetingAgendaData)
def meeting_agenda(
    request: AgendaRequest,
    settings: SettingsDep,
    now: ClockDep,
) -> MeetingAgendaData:
    try:
        return generate_meeting_agenda_data(
            request.data, request.program, request.timeframe, now, settings,
        )
    except InvalidTimeframeError as e:
        raise _bad_request(e)
