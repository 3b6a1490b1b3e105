"""
KPI Report Services Module

This module contains the analytics engine of the KPI Report backend. Every
service is a pure function of (rows, timeframe, now, settings): no clock
reads, no shared mutable state. The only I/O boundary is the narrative
client.

Services:
- timeframes: Timeframe token -> DateRange resolution
- columns: Semantic column discovery and owner forward-fill
- dates: Spreadsheet serial / calendar string normalization
- aggregator: Generic window/group/threshold/rank routine
- regional: Region, agent-region, segment and period rollups
- recommendations: Deviation-based recommendation scoring
- insights: Passthrough timing and non-validated lead analysis
- reporting: Narrative prompt, meeting agenda and chart arrays
- narrative: Anthropic client boundary and response line parsing
- ingestion: CRM report CSV parsing
- agent_metrics: Agent KPI table and group comparisons
- regression: Linear / log-linear trend fits
- time_series: Per-agent daily series and segment daily T>P
- quartiles: Top vs bottom hot-pass quartile comparison
- records: Agent personal-best tracking

All services are designed to be consumed by the API layer (kpi_report/api/).
"""

# =============================================================================
# Time Windows
# =============================================================================

from kpi_report.services.timeframes import (
    InvalidTimeframeError,
    resolve_timeframe,
    resolve_simple_timeframe,
    trailing_month_ranges,
)

# =============================================================================
# Column and Date Normalization
# =============================================================================

from kpi_report.services.columns import (
    RowBatch,
    find_column,
    find_agent_column,
    forward_fill_owners,
    discover_columns,
)
from kpi_report.services.dates import (
    ParsedDateTime,
    parse_date_time,
    get_time_slot,
)

# =============================================================================
# Aggregation and Scoring
# =============================================================================

from kpi_report.services.aggregator import (
    tally_rows,
    merge_tallies,
    build_bucket,
    rank_buckets,
)
from kpi_report.services.regional import (
    analyze_regional_performance,
    analyze_agent_regional_deviations,
    analyze_segment_performance,
    analyze_period_trends,
    extract_programs,
    extract_program_destinations,
    filter_by_program,
)
from kpi_report.services.recommendations import (
    classify_priority,
    score_department,
    score_agent,
    generate_department_recommendations,
    generate_pq_department_recommendations,
)
from kpi_report.services.regression import (
    linear_regression,
    log_linear_regression,
    best_regression,
)

# =============================================================================
# Insights, Reporting and Narrative
# =============================================================================

from kpi_report.services.insights import generate_insights_data
from kpi_report.services.reporting import (
    build_insights_prompt,
    generate_meeting_agenda_data,
    count_chart,
    rate_chart,
)
from kpi_report.services.narrative import (
    NarrativeClient,
    NarrativeServiceError,
    MissingApiKeyError,
    generate_narrative,
    parse_narrative,
)

# =============================================================================
# Ingestion and Agent KPIs
# =============================================================================

from kpi_report.services.ingestion import (
    IngestionError,
    parse_report,
    parse_csv,
    build_raw_data,
)
from kpi_report.services.agent_metrics import (
    calculate_agent_metrics,
    compare_groups,
)

# =============================================================================
# Time Series, Quartiles and Records
# =============================================================================

from kpi_report.services.time_series import (
    build_agent_time_series,
    calculate_segment_daily_averages,
)
from kpi_report.services.quartiles import calculate_quartile_analysis
from kpi_report.services.records import (
    analyze_and_update_records,
    period_bounds,
)


__all__ = [
    # Time windows
    'InvalidTimeframeError',
    'resolve_timeframe',
    'resolve_simple_timeframe',
    'trailing_month_ranges',
    # Columns and dates
    'RowBatch',
    'find_column',
    'find_agent_column',
    'forward_fill_owners',
    'discover_columns',
    'ParsedDateTime',
    'parse_date_time',
    'get_time_slot',
    # Aggregation and scoring
    'tally_rows',
    'merge_tallies',
    'build_bucket',
    'rank_buckets',
    'analyze_regional_performance',
    'analyze_agent_regional_deviations',
    'analyze_segment_performance',
    'analyze_period_trends',
    'extract_programs',
    'extract_program_destinations',
    'filter_by_program',
    'classify_priority',
    'score_department',
    'score_agent',
    'generate_department_recommendations',
    'generate_pq_department_recommendations',
    'linear_regression',
    'log_linear_regression',
    'best_regression',
    # Insights, reporting and narrative
    'generate_insights_data',
    'build_insights_prompt',
    'generate_meeting_agenda_data',
    'count_chart',
    'rate_chart',
    'NarrativeClient',
    'NarrativeServiceError',
    'MissingApiKeyError',
    'generate_narrative',
    'parse_narrative',
    # Ingestion and agent KPIs
    'IngestionError',
    'parse_report',
    'parse_csv',
    'build_raw_data',
    'calculate_agent_metrics',
    'compare_groups',
    # Time series, quartiles and records
    'build_agent_time_series',
    'calculate_segment_daily_averages',
    'calculate_quartile_analysis',
    'analyze_and_update_records',
    'period_bounds',
]
