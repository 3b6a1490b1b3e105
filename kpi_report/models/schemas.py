"""
Pydantic request/response models for the KPI Report backend.

This module provides type-safe data validation and serialization for every
structure the analytics engine hands to its collaborators: the UI (ranked
breakdowns, chart arrays), the document exporter (MeetingAgendaData) and the
AI narrative step (InsightsData, prompt/response wrappers).

Field names are camelCase because the dashboard and the export layer index
into these objects by those names; they must remain stable.

All models use Pydantic v2 syntax.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from kpi_report.models.enums import (
    LineKind,
    MetricFamily,
    Priority,
    RecordMetric,
    RecordPeriod,
    RegressionType,
    SegmentType,
)


# A single export row: column name -> cell text. Column sets vary by file and
# by department export configuration and are discovered at runtime.
Row = Dict[str, str]


# =============================================================================
# Input Models
# =============================================================================


class RawParsedData(BaseModel):
    """
    The six normalized export batches consumed by the engine.

    Each batch is a list of rows sharing one column set. Non-string cells
    (numbers from JSON clients, nulls) are coerced to strings so every row is
    a plain str -> str mapping.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "trips": [
                    {"gtt owner": "Jane Doe", "destination": "Paris",
                     "created date": "2026-09-14", "passthrough to sales date": "2026-09-15"}
                ],
                "quotes": [],
                "passthroughs": [],
                "hotPass": [],
                "bookings": [],
                "nonConverted": [],
            }
        }
    )

    trips: List[Row] = Field(default_factory=list)
    quotes: List[Row] = Field(default_factory=list)
    passthroughs: List[Row] = Field(default_factory=list)
    hotPass: List[Row] = Field(default_factory=list)
    bookings: List[Row] = Field(default_factory=list)
    nonConverted: List[Row] = Field(default_factory=list)

    @field_validator(
        'trips', 'quotes', 'passthroughs', 'hotPass', 'bookings', 'nonConverted',
        mode='before',
    )
    @classmethod
    def _stringify_cells(cls, rows: Any) -> Any:
        if not isinstance(rows, list):
            return rows
        normalized = []
        for row in rows:
            if isinstance(row, dict):
                row = {
                    str(k): '' if v is None else str(v)
                    for k, v in row.items()
                }
            normalized.append(row)
        return normalized


class DateRange(BaseModel):
    """
    A resolved time window. None on either side means unbounded.

    Both bounds are inclusive.
    """
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @property
    def is_unbounded(self) -> bool:
        return self.start is None and self.end is None

    def contains(self, moment: datetime) -> bool:
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment > self.end:
            return False
        return True


class Team(BaseModel):
    """A named roster of agent names (matched case-insensitively)."""
    id: str
    name: str
    agentNames: List[str] = Field(default_factory=list)


# =============================================================================
# Aggregation Models
# =============================================================================


class AggregateBucket(BaseModel):
    """
    Counts and rates for one dimension key (region, agent, segment, ...).

    All three rate families are carried so one bucket can feed every table
    column; `rate` is the family the enclosing breakdown is ranked by.
    Rates are percentages (0-100); a zero denominator yields 0.
    """
    key: str
    trips: int = 0
    passthroughs: int = 0
    quotes: int = 0
    hotPasses: int = 0
    tpRate: float = 0.0
    pqRate: float = 0.0
    hotPassRate: float = 0.0
    rate: float = 0.0


class BucketTotals(BaseModel):
    """Counts over every windowed, keyed row (qualifying or not)."""
    trips: int = 0
    passthroughs: int = 0
    quotes: int = 0
    hotPasses: int = 0


class RankedBreakdown(BaseModel):
    """
    A ranked, threshold-filtered rollup of one dimension by one metric family.

    Guarantees:
    - every bucket in allBuckets has a family denominator >= minSample
    - allBuckets is non-increasing in rate
    - topN is the head of allBuckets, bottomN its tail reversed (worst first)
    - overallRate is the department baseline over the qualifying buckets
    """
    metric: MetricFamily
    minSample: int
    allBuckets: List[AggregateBucket] = Field(default_factory=list)
    topN: List[AggregateBucket] = Field(default_factory=list)
    bottomN: List[AggregateBucket] = Field(default_factory=list)
    totals: BucketTotals = Field(default_factory=BucketTotals)
    overallRate: float = 0.0
    dataAvailable: bool = False


class DepartmentRegionalPerformance(BaseModel):
    """Region/destination rollups of the whole department for one timeframe."""
    timeframe: str
    tp: RankedBreakdown
    pq: RankedBreakdown
    hotPass: RankedBreakdown
    totals: BucketTotals = Field(default_factory=BucketTotals)
    dataAvailable: bool = False


class RegionDeviation(BaseModel):
    """One agent's region rate against the department's rate for the region."""
    region: str
    agentTpRate: float
    departmentTpRate: float
    deviation: float
    agentTrips: int
    departmentTrips: int


class Recommendation(BaseModel):
    """
    A prioritized improvement suggestion for an underperforming bucket.

    deviation = tpRate - departmentAvgRate (negative for underperformers);
    potentialGain = trips * |deviation| / 100, the extra numerator events
    (passthroughs or quotes) if the bucket were lifted to the baseline.

    The document exporter reads `region`, `tpRate` and `trips` for every
    recommendation table. For P>Q and hot-pass rows those columns carry the
    scored family's rate and denominator (passthroughs), so the same table
    layout serves every family. `key` mirrors `region` for generic consumers.
    """
    model_config = ConfigDict(frozen=True)

    key: str
    region: str
    metric: MetricFamily
    tpRate: float
    departmentAvgRate: float
    deviation: float
    trips: int
    priority: Priority
    reason: str
    potentialGain: float
    agentName: Optional[str] = None


class AgentRegionalAnalysis(BaseModel):
    """Region performance of one agent relative to the department."""
    agentName: str
    totalTrips: int = 0
    totalPassthroughs: int = 0
    overallTpRate: float = 0.0
    regions: List[AggregateBucket] = Field(default_factory=list)
    aboveAverage: List[RegionDeviation] = Field(default_factory=list)
    belowAverage: List[RegionDeviation] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)


class SegmentPerformance(BaseModel):
    """Repeat/New or B2B/B2C rollup, optionally scoped to one agent."""
    segment: SegmentType
    timeframe: str
    agentName: Optional[str] = None
    breakdown: RankedBreakdown
    dataAvailable: bool = False


class RegressionResult(BaseModel):
    """Least-squares trend line over an evenly spaced series."""
    slope: float
    intercept: float
    rSquared: float
    predictedValues: List[float] = Field(default_factory=list)
    type: RegressionType
    validPointCount: int


class PeriodSummary(BaseModel):
    """Department totals for one calendar-month period."""
    label: str
    start: datetime
    end: datetime
    trips: int = 0
    passthroughs: int = 0
    overallRate: float = 0.0


class TrendPoint(BaseModel):
    """One (period, dimension key, rate) point for charting."""
    period: str
    key: str
    rate: float
    trips: int


class PeriodTrendAnalysis(BaseModel):
    """
    The same region rollup computed independently for N trailing months.

    byPeriod maps each period label to that period's top-N buckets;
    periodLabels gives the chronological order (oldest first).
    """
    metric: MetricFamily
    periodLabels: List[str] = Field(default_factory=list)
    byPeriod: Dict[str, List[AggregateBucket]] = Field(default_factory=dict)
    periods: List[PeriodSummary] = Field(default_factory=list)
    points: List[TrendPoint] = Field(default_factory=list)
    departmentSeries: List[float] = Field(default_factory=list)
    departmentTrend: Optional[RegressionResult] = None
    dataAvailable: bool = False


# =============================================================================
# Insights Models
# =============================================================================


class DayAnalysis(BaseModel):
    day: str
    count: int
    percentage: float
    avgPerDay: float


class TimeAnalysis(BaseModel):
    timeSlot: str
    count: int
    percentage: float


class NonValidatedReason(BaseModel):
    reason: str
    count: int
    percentage: float


class AgentNonValidated(BaseModel):
    agentName: str
    total: int
    topReasons: List[NonValidatedReason] = Field(default_factory=list)


class InsightsData(BaseModel):
    """
    Timing patterns and lead-quality facts fed to the narrative prompt.

    List fields are never null; the best day/time scalars are null when
    there is no qualifying data.
    """
    timeframe: str = "all"

    # Passthrough patterns
    passthroughsByDay: List[DayAnalysis] = Field(default_factory=list)
    passthroughsByTime: List[TimeAnalysis] = Field(default_factory=list)
    bestPassthroughDay: Optional[str] = None
    bestPassthroughTime: Optional[str] = None

    # Non-validated analysis
    topNonValidatedReasons: List[NonValidatedReason] = Field(default_factory=list)
    agentNonValidated: List[AgentNonValidated] = Field(default_factory=list)

    # Data availability
    hasTimeData: bool = False
    hasNonValidatedReasons: bool = False
    hasBookingData: bool = False

    # Raw stats for the prompt
    totalPassthroughs: int = 0
    totalNonValidated: int = 0
    totalBookings: int = 0
    totalHotPass: int = 0


class ChartCount(BaseModel):
    """Chart-ready `{label, count, percentage}` point."""
    label: str
    count: int
    percentage: float


class ChartRate(BaseModel):
    """Chart-ready `{key, rate, trips}` point."""
    key: str
    rate: float
    trips: int


class ChartBundle(BaseModel):
    """Chart arrays for the insights and regional views."""
    passthroughsByDay: List[ChartCount] = Field(default_factory=list)
    passthroughsByTime: List[ChartCount] = Field(default_factory=list)
    regionTpRates: List[ChartRate] = Field(default_factory=list)


# =============================================================================
# Agent KPI Models
# =============================================================================


class AgentMetrics(BaseModel):
    """Per-agent funnel counts and conversion rates (percentages)."""
    agentName: str
    trips: int = 0
    quotes: int = 0
    passthroughs: int = 0
    hotPasses: int = 0
    bookings: int = 0
    nonConvertedLeads: int = 0
    quotesFromTrips: float = 0.0
    passthroughsFromTrips: float = 0.0
    quotesFromPassthroughs: float = 0.0
    hotPassRate: float = 0.0
    nonConvertedRate: float = 0.0
    repeatTrips: int = 0
    repeatPassthroughs: int = 0
    repeatTpRate: float = 0.0
    b2bTrips: int = 0
    b2bPassthroughs: int = 0
    b2bTpRate: float = 0.0


class GroupSummary(BaseModel):
    """Aggregated funnel of a group of agents (department, seniors, a team)."""
    name: str
    agentCount: int = 0
    agents: List[str] = Field(default_factory=list)
    trips: int = 0
    quotes: int = 0
    passthroughs: int = 0
    hotPasses: int = 0
    tqRate: float = 0.0
    tpRate: float = 0.0
    pqRate: float = 0.0
    hotPassRate: float = 0.0


class GroupComparison(BaseModel):
    department: GroupSummary
    seniors: GroupSummary
    nonSeniors: GroupSummary
    teams: List[GroupSummary] = Field(default_factory=list)


# =============================================================================
# Meeting Agenda (document export payload)
# =============================================================================


class AgendaOverallStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    totalTrips: int = 0
    totalPassthroughs: int = 0
    tpRate: float = 0.0
    pqRate: float = 0.0
    hotPassRate: float = 0.0
    destinationsTracked: int = 0


class AgendaDestination(BaseModel):
    """One ranked destination row of the agenda tables."""
    model_config = ConfigDict(frozen=True)

    region: str
    trips: int = 0
    passthroughs: int = 0
    quotes: int = 0
    hotPasses: int = 0
    tpRate: float = 0.0
    pqRate: float = 0.0
    hotPassRate: float = 0.0


class AgendaAgent(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    trips: int
    tpRate: float
    regions: Tuple[str, ...] = ()


class MeetingAgendaData(BaseModel):
    """
    Export-ready snapshot for one program and timeframe.

    The PDF and slide generators index into this object positionally
    ("top 5 destinations", "top 3 agents") and by field name (`region`,
    `tpRate`, `trips`); lists are already ordered and truncated. Deeply
    immutable once built: every nested model is frozen and every sequence
    is a tuple, so nothing is shared mutably with the regional rollups.
    """
    model_config = ConfigDict(frozen=True)

    program: str
    timeframe: str
    date: str
    overallStats: AgendaOverallStats
    topTpDestinations: Tuple[AgendaDestination, ...] = ()
    topPqDestinations: Tuple[AgendaDestination, ...] = ()
    tpRecommendations: Tuple[Recommendation, ...] = ()
    pqRecommendations: Tuple[Recommendation, ...] = ()
    topAgents: Tuple[AgendaAgent, ...] = ()


# =============================================================================
# Daily Time Series
# =============================================================================


class DailyAgentMetrics(BaseModel):
    """One agent's event counts on one ISO date (YYYY-MM-DD)."""
    date: str
    trips: int = 0
    quotes: int = 0
    passthroughs: int = 0
    hotPasses: int = 0
    bookings: int = 0
    nonConverted: int = 0


class AgentTimeSeries(BaseModel):
    agentName: str
    dailyMetrics: List[DailyAgentMetrics] = Field(default_factory=list)


class DailyRatioPoint(BaseModel):
    """
    Pooled daily funnel of a group of agents.

    Rates are percentages of the group's summed counts for the day:
    tq = quotes/trips, tp = passthroughs/trips, pq = quotes/passthroughs,
    hp = hotPasses/passthroughs, nc = nonConverted/trips.
    """
    date: str
    tq: float = 0.0
    tp: float = 0.0
    pq: float = 0.0
    hp: float = 0.0
    nc: float = 0.0
    trips: int = 0
    quotes: int = 0
    passthroughs: int = 0
    bookings: int = 0


class TimeSeriesData(BaseModel):
    """
    Per-agent daily series over every date that carries at least one event.

    Every agent has one DailyAgentMetrics per entry of `dates` (zero-filled),
    so the group lists and the agent lists line up index for index.
    """
    timeframe: str
    startDate: str = ""
    endDate: str = ""
    dates: List[str] = Field(default_factory=list)
    agents: List[AgentTimeSeries] = Field(default_factory=list)
    departmentDaily: List[DailyRatioPoint] = Field(default_factory=list)
    seniorDaily: List[DailyRatioPoint] = Field(default_factory=list)
    nonSeniorDaily: List[DailyRatioPoint] = Field(default_factory=list)


# =============================================================================
# Quartile Analysis
# =============================================================================


class QuartileAgent(BaseModel):
    agentName: str
    aggregateHotPassRate: float = 0.0
    totalTrips: int = 0
    totalPassthroughs: int = 0
    totalQuotes: int = 0
    totalHotPasses: int = 0
    totalBookings: int = 0


class QuartileDailyPoint(BaseModel):
    """Pooled T>Q of each quartile on one date, over agents with trips that day."""
    date: str
    topQuartileAvgTQ: float = 0.0
    bottomQuartileAvgTQ: float = 0.0
    topQuartileAgentCount: int = 0
    bottomQuartileAgentCount: int = 0


class QuartileAnalysis(BaseModel):
    """Top vs bottom hot-pass quartile and their daily T>Q comparison."""
    topQuartileAgents: List[QuartileAgent] = Field(default_factory=list)
    bottomQuartileAgents: List[QuartileAgent] = Field(default_factory=list)
    dailyComparison: List[QuartileDailyPoint] = Field(default_factory=list)
    startDate: str = ""
    endDate: str = ""
    minPassthroughs: int = 0


# =============================================================================
# Personal Records
# =============================================================================


class RecordEntry(BaseModel):
    value: float
    periodStart: str
    periodEnd: str
    setAt: datetime


class VolumeRecords(BaseModel):
    day: Optional[RecordEntry] = None
    week: Optional[RecordEntry] = None
    month: Optional[RecordEntry] = None
    quarter: Optional[RecordEntry] = None


class RateRecords(BaseModel):
    month: Optional[RecordEntry] = None
    quarter: Optional[RecordEntry] = None


class AgentRecords(BaseModel):
    """
    An agent's personal bests. Volume metrics keep day/week/month/quarter
    slots, rate metrics month/quarter only. Documents saved before a slot
    existed load with that slot empty.
    """
    agentName: str
    trips: VolumeRecords = Field(default_factory=VolumeRecords)
    quotes: VolumeRecords = Field(default_factory=VolumeRecords)
    passthroughs: VolumeRecords = Field(default_factory=VolumeRecords)
    tq: RateRecords = Field(default_factory=RateRecords)
    tp: RateRecords = Field(default_factory=RateRecords)
    pq: RateRecords = Field(default_factory=RateRecords)


class AllRecords(BaseModel):
    agents: Dict[str, AgentRecords] = Field(default_factory=dict)
    lastUpdated: Optional[datetime] = None


class RecordUpdate(BaseModel):
    agentName: str
    metric: RecordMetric
    period: RecordPeriod
    previousValue: Optional[float] = None
    newValue: float
    periodStart: str
    periodEnd: str
    timestamp: datetime


class RecordsAnalysis(BaseModel):
    records: AllRecords
    updates: List[RecordUpdate] = Field(default_factory=list)


# =============================================================================
# Narrative Models
# =============================================================================


class NarrativeLine(BaseModel):
    """One classified line of an AI narrative response."""
    kind: LineKind
    text: str


# =============================================================================
# API Request / Response Models
# =============================================================================


class AnalyticsRequest(BaseModel):
    """Raw batches plus a named timeframe token."""
    data: RawParsedData = Field(default_factory=RawParsedData)
    timeframe: str = "all"


class SegmentRequest(AnalyticsRequest):
    segment: SegmentType = SegmentType.REPEAT
    agentName: Optional[str] = None


class TrendRequest(BaseModel):
    data: RawParsedData = Field(default_factory=RawParsedData)
    periods: Optional[int] = Field(default=None, ge=1, le=36)
    metric: MetricFamily = MetricFamily.TP


class RecommendationRequest(AnalyticsRequest):
    metric: MetricFamily = MetricFamily.TP


class AgendaRequest(AnalyticsRequest):
    program: str = Field(..., min_length=1)


class GroupComparisonRequest(AnalyticsRequest):
    seniors: List[str] = Field(default_factory=list)
    teams: List[Team] = Field(default_factory=list)


class TimeSeriesRequest(AnalyticsRequest):
    seniors: List[str] = Field(default_factory=list)


class SegmentDailyRequest(AnalyticsRequest):
    segment: SegmentType = SegmentType.REPEAT


class QuartileRequest(AnalyticsRequest):
    """Inclusive ISO date bounds narrow the series; None means open-ended."""
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    minPassthroughs: Optional[int] = Field(default=None, ge=0)


class NarrativeRequest(BaseModel):
    """
    Narrative generation input: either a prebuilt prompt or the insights
    to build one from. A cached response for the same prompt is returned
    unless refresh is set.
    """
    prompt: Optional[str] = None
    insights: Optional[InsightsData] = None
    refresh: bool = False


class NarrativeParseRequest(BaseModel):
    text: str


class NarrativeResponse(BaseModel):
    text: str
    lines: List[NarrativeLine] = Field(default_factory=list)
    cached: bool = False


class PromptResponse(BaseModel):
    prompt: str


class ProgramsResponse(BaseModel):
    programs: List[str] = Field(default_factory=list)
    destinations: Dict[str, List[str]] = Field(default_factory=dict)


class ApiKeyRequest(BaseModel):
    apiKey: str = Field(..., min_length=1)


class ApiKeyStatus(BaseModel):
    configured: bool
