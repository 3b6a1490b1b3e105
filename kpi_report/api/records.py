"""
FastAPI router module for agent personal-best records.

Records live in the key-value store and are updated from the same export
batches the analytics endpoints take.

Key Endpoints:
- GET /records: Saved personal bests
- POST /records/update: Fold new exports into the records and save them
- DELETE /records: Forget every saved record

Error mapping:
- InvalidTimeframeError -> 400
"""

import logging

from fastapi import APIRouter, HTTPException

from kpi_report.core.dependencies import ClockDep, StoreDep
from kpi_report.core.storage import clear_records, load_records, save_records
from kpi_report.models import AllRecords, AnalyticsRequest, RecordsAnalysis
from kpi_report.services.records import analyze_and_update_records
from kpi_report.services.time_series import build_agent_time_series
from kpi_report.services.timeframes import InvalidTimeframeError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/records", tags=["records"])


@router.get("", response_model=AllRecords)
def get_records(store: StoreDep) -> AllRecords:
    return load_records(store)


@router.post("/update", response_model=RecordsAnalysis)
def update_records(request: AnalyticsRequest, store: StoreDep, now: ClockDep) -> RecordsAnalysis:
    """Timeframe uses the week|month|quarter|ytd|all vocabulary."""
    try:
        series = build_agent_time_series(request.data, request.timeframe, now)
    except InvalidTimeframeError as e:
        logger.warning(f"Rejected records update: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    analysis = analyze_and_update_records(series, load_records(store), now)
    save_records(store, analysis.records)
    return analysis


@router.delete("", response_model=AllRecords)
def delete_records(store: StoreDep) -> AllRecords:
    clear_records(store)
    logger.info("Agent records cleared")
    return load_records(store)
