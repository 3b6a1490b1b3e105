"""
Package initialization file for KPI Report models.

This module exports all Pydantic schemas and enumerations from schemas.py and
enums.py, making them importable from kpi_report.models directly.

Usage:
    from kpi_report.models import (
        RawParsedData,
        RankedBreakdown,
        MetricFamily,
        # ... etc
    )
"""

# =============================================================================
# Enums
# =============================================================================

from kpi_report.models.enums import (
    RegionalTimeframe,
    SimpleTimeframe,
    MetricFamily,
    Priority,
    SegmentType,
    SegmentLabel,
    LineKind,
    RegressionType,
    DataKind,
    RecordMetric,
    RecordPeriod,
)


# =============================================================================
# Schemas
# =============================================================================

from kpi_report.models.schemas import (
    # -------------------------------------------------------------------------
    # Inputs
    # -------------------------------------------------------------------------
    Row,
    RawParsedData,
    DateRange,
    Team,

    # -------------------------------------------------------------------------
    # Aggregation
    # -------------------------------------------------------------------------
    AggregateBucket,
    BucketTotals,
    RankedBreakdown,
    DepartmentRegionalPerformance,
    RegionDeviation,
    Recommendation,
    AgentRegionalAnalysis,
    SegmentPerformance,
    RegressionResult,
    PeriodSummary,
    TrendPoint,
    PeriodTrendAnalysis,

    # -------------------------------------------------------------------------
    # Insights
    # -------------------------------------------------------------------------
    DayAnalysis,
    TimeAnalysis,
    NonValidatedReason,
    AgentNonValidated,
    InsightsData,
    ChartCount,
    ChartRate,
    ChartBundle,

    # -------------------------------------------------------------------------
    # Agent KPIs
    # -------------------------------------------------------------------------
    AgentMetrics,
    GroupSummary,
    GroupComparison,

    # -------------------------------------------------------------------------
    # Meeting agenda
    # -------------------------------------------------------------------------
    AgendaOverallStats,
    AgendaDestination,
    AgendaAgent,
    MeetingAgendaData,

    # -------------------------------------------------------------------------
    # Time series, quartiles and records
    # -------------------------------------------------------------------------
    DailyAgentMetrics,
    AgentTimeSeries,
    DailyRatioPoint,
    TimeSeriesData,
    QuartileAgent,
    QuartileDailyPoint,
    QuartileAnalysis,
    RecordEntry,
    VolumeRecords,
    RateRecords,
    AgentRecords,
    AllRecords,
    RecordUpdate,
    RecordsAnalysis,

    # -------------------------------------------------------------------------
    # Narrative and API wrappers
    # -------------------------------------------------------------------------
    NarrativeLine,
    AnalyticsRequest,
    SegmentRequest,
    TrendRequest,
    RecommendationRequest,
    AgendaRequest,
    GroupComparisonRequest,
    TimeSeriesRequest,
    SegmentDailyRequest,
    QuartileRequest,
    NarrativeRequest,
    NarrativeParseRequest,
    NarrativeResponse,
    PromptResponse,
    ProgramsResponse,
    ApiKeyRequest,
    ApiKeyStatus,
)


__all__ = [
    # Enums
    'RegionalTimeframe',
    'SimpleTimeframe',
    'MetricFamily',
    'Priority',
    'SegmentType',
    'SegmentLabel',
    'LineKind',
    'RegressionType',
    'DataKind',
    'RecordMetric',
    'RecordPeriod',
    # Inputs
    'Row',
    'RawParsedData',
    'DateRange',
    'Team',
    # Aggregation
    'AggregateBucket',
    'BucketTotals',
    'RankedBreakdown',
    'DepartmentRegionalPerformance',
    'RegionDeviation',
    'Recommendation',
    'AgentRegionalAnalysis',
    'SegmentPerformance',
    'RegressionResult',
    'PeriodSummary',
    'TrendPoint',
    'PeriodTrendAnalysis',
    # Insights
    'DayAnalysis',
    'TimeAnalysis',
    'NonValidatedReason',
    'AgentNonValidated',
    'InsightsData',
    'ChartCount',
    'ChartRate',
    'ChartBundle',
    # Agent KPIs
    'AgentMetrics',
    'GroupSummary',
    'GroupComparison',
    # Meeting agenda
    'AgendaOverallStats',
    'AgendaDestination',
    'AgendaAgent',
    'MeetingAgendaData',
    # Time series, quartiles and records
    'DailyAgentMetrics',
    'AgentTimeSeries',
    'DailyRatioPoint',
    'TimeSeriesData',
    'QuartileAgent',
    'QuartileDailyPoint',
    'QuartileAnalysis',
    'RecordEntry',
    'VolumeRecords',
    'RateRecords',
    'AgentRecords',
    'AllRecords',
    'RecordUpdate',
    'RecordsAnalysis',
    # Narrative and API wrappers
    'NarrativeLine',
    'AnalyticsRequest',
    'SegmentRequest',
    'TrendRequest',
    'RecommendationRequest',
    'AgendaRequest',
    'GroupComparisonRequest',
    'TimeSeriesRequest',
    'SegmentDailyRequest',
    'QuartileRequest',
    'NarrativeRequest',
    'NarrativeParseRequest',
    'NarrativeResponse',
    'PromptResponse',
    'ProgramsResponse',
    'ApiKeyRequest',
    'ApiKeyStatus',
]
