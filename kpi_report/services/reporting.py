"""
Report assembly: the AI prompt, the meeting agenda and chart arrays.

Everything here is pure: no network, no file I/O, no clock reads. The
outputs are handed to collaborators outside the engine:
    - build_insights_prompt -> the narrative client
    - generate_meeting_agenda_data -> the PDF / slide exporters
    - count_chart / rate_chart -> the dashboard charts
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple, Union

from kpi_report.core.config import Settings, get_settings
from kpi_report.models import (
    AgendaAgent,
    AgendaDestination,
    AgendaOverallStats,
    AggregateBucket,
    ChartCount,
    ChartRate,
    DayAnalysis,
    InsightsData,
    MeetingAgendaData,
    RawParsedData,
    RegionalTimeframe,
    TimeAnalysis,
)
from kpi_report.services.aggregator import rate
from kpi_report.services.recommendations import (
    generate_department_recommendations,
    generate_pq_department_recommendations,
)
from kpi_report.services.regional import (
    analyze_agent_regional_deviations,
    analyze_regional_performance,
    filter_by_program,
)

logger = logging.getLogger(__name__)


AGENDA_TOP_AGENTS = 3
AGENDA_AGENT_REGIONS = 3
PROMPT_TOP_AGENTS = 5


# =============================================================================
# Narrative Prompt
# =============================================================================


def _day_section(insights: InsightsData) -> str:
    if not insights.passthroughsByDay:
        return 'No day-of-week data available'
    lines = [
        f"- {d.day}: {d.count} ({d.percentage:.1f}%), avg {d.avgPerDay:.1f}/day"
        for d in insights.passthroughsByDay
    ]
    return 'PASSTHROUGH BY DAY OF WEEK:\n' + '\n'.join(lines)


def _time_section(insights: InsightsData) -> str:
    if not insights.hasTimeData:
        return '\nNo time-of-day data available (timestamps may not include time)'
    lines = [
        f"- {t.timeSlot}: {t.count} ({t.percentage:.1f}%)"
        for t in insights.passthroughsByTime
    ]
    return '\nPASSTHROUGH BY TIME OF DAY:\n' + '\n'.join(lines)


def _reasons_section(insights: InsightsData) -> str:
    if not insights.hasNonValidatedReasons:
        return '\nNo non-validated reason data available'
    lines = [
        f'- "{r.reason}": {r.count} ({r.percentage:.1f}%)'
        for r in insights.topNonValidatedReasons
    ]
    return '\nTOP NON-VALIDATED REASONS (Department):\n' + '\n'.join(lines)


def _agent_section(insights: InsightsData) -> str:
    if not insights.agentNonValidated:
        return ''
    lines = []
    for agent in insights.agentNonValidated[:PROMPT_TOP_AGENTS]:
        top_reason = agent.topReasons[0].reason if agent.topReasons else 'N/A'
        lines.append(f'- {agent.agentName}: {agent.total} total, top reason: "{top_reason}"')
    return '\nTOP AGENTS BY NON-VALIDATED COUNT:\n' + '\n'.join(lines)


def build_insights_prompt(insights: InsightsData) -> str:
    """
    Render the deterministic narrative prompt for an InsightsData.

    The same insights always produce the same string, so the prompt can be
    used as a cache key for the generated narrative.
    """
    return f"""You are a data analyst examining sales department performance data. Provide actionable insights based on the patterns below.

OVERVIEW:
- Total Passthroughs: {insights.totalPassthroughs}
- Total Hot Passes: {insights.totalHotPass}
- Total Bookings: {insights.totalBookings}
- Total Non-Validated: {insights.totalNonValidated}

{_day_section(insights)}
{_time_section(insights)}
{_reasons_section(insights)}
{_agent_section(insights)}

Provide analysis in this format (be specific with numbers and percentages):

**Key Findings:**
- [3-4 bullet points with the most important patterns discovered]

**Optimal Timing Recommendations:**
- [2-3 bullet points on best days/times for passthroughs based on the data]

**Non-Validated Lead Insights:**
- [2-3 bullet points analyzing the common reasons and suggesting improvements]

**Actionable Recommendations:**
- [3-4 specific, actionable recommendations for the department]"""


# =============================================================================
# Meeting Agenda
# =============================================================================


def agenda_destinations(buckets: Sequence[AggregateBucket]) -> Tuple[AgendaDestination, ...]:
    """Copy ranked buckets into the exporter's destination rows."""
    return tuple(
        AgendaDestination(
            region=b.key,
            trips=b.trips,
            passthroughs=b.passthroughs,
            quotes=b.quotes,
            hotPasses=b.hotPasses,
            tpRate=b.tpRate,
            pqRate=b.pqRate,
            hotPassRate=b.hotPassRate,
        )
        for b in buckets
    )


def generate_meeting_agenda_data(
    raw: RawParsedData,
    program: str,
    timeframe: Union[str, RegionalTimeframe],
    now: datetime,
    settings: Optional[Settings] = None,
) -> MeetingAgendaData:
    """
    Assemble the export snapshot for one program and timeframe.

    Steps:
        1. Scope every batch to the program (filter_by_program).
        2. Rank the program's destinations by T>P and P>Q.
        3. Score T>P and P>Q recommendations against the program baseline.
        4. Pick the top agents by overall T>P among agents with at least
           min_region_sample windowed trips, listing the regions where each
           beats the department most.

    Lists are empty, never missing, when there is no data.

    Raises:
        InvalidTimeframeError: If the token is not recognized.
    """
    settings = settings or get_settings()
    scoped = filter_by_program(raw, program)
    regional = analyze_regional_performance(scoped, timeframe, now, settings)
    totals = regional.totals

    agents = analyze_agent_regional_deviations(
        scoped, timeframe, now, settings, department=regional,
    )
    eligible = [a for a in agents if a.totalTrips >= settings.min_region_sample]
    eligible.sort(
        key=lambda a: (-rate(a.totalPassthroughs, a.totalTrips), -a.totalTrips, a.agentName),
    )
    top_agents = tuple(
        AgendaAgent(
            name=agent.agentName,
            trips=agent.totalTrips,
            tpRate=rate(agent.totalPassthroughs, agent.totalTrips),
            regions=tuple(d.region for d in agent.aboveAverage[:AGENDA_AGENT_REGIONS]),
        )
        for agent in eligible[:AGENDA_TOP_AGENTS]
    )

    agenda = MeetingAgendaData(
        program=program,
        timeframe=regional.timeframe,
        date=now.date().isoformat(),
        overallStats=AgendaOverallStats(
            totalTrips=totals.trips,
            totalPassthroughs=totals.passthroughs,
            tpRate=rate(totals.passthroughs, totals.trips),
            pqRate=rate(totals.quotes, totals.passthroughs),
            hotPassRate=rate(totals.hotPasses, totals.passthroughs),
            destinationsTracked=len(regional.tp.allBuckets),
        ),
        topTpDestinations=agenda_destinations(regional.tp.topN),
        topPqDestinations=agenda_destinations(regional.pq.topN),
        tpRecommendations=tuple(generate_department_recommendations(regional.tp, settings)[:settings.top_n]),
        pqRecommendations=tuple(generate_pq_department_recommendations(regional.pq, settings)[:settings.top_n]),
        topAgents=top_agents,
    )
    logger.info(
        f"Meeting agenda for {program} ({agenda.timeframe}): "
        f"{agenda.overallStats.destinationsTracked} destinations, {len(top_agents)} top agents"
    )
    return agenda


# =============================================================================
# Chart Arrays
# =============================================================================


def count_chart(rows: Sequence[Union[DayAnalysis, TimeAnalysis]]) -> List[ChartCount]:
    """`{label, count, percentage}` points from day or time-slot analyses."""
    return [
        ChartCount(
            label=row.day if isinstance(row, DayAnalysis) else row.timeSlot,
            count=row.count,
            percentage=row.percentage,
        )
        for row in rows
    ]


def rate_chart(buckets: Sequence[AggregateBucket]) -> List[ChartRate]:
    """`{key, rate, trips}` points from ranked buckets."""
    return [ChartRate(key=b.key, rate=b.rate, trips=b.trips) for b in buckets]
