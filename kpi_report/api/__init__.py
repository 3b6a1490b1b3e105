"""
KPI Report API package initialization.

This package contains FastAPI router modules for the KPI Report backend:
- analytics: Engine endpoints (regional, agents, segments, trends, insights,
  agenda, ingestion, time series, quartiles)
- narrative: API key management and AI narrative generation
- records: Agent personal-best records
"""

from fastapi import APIRouter

from kpi_report.api.analytics import router as analytics_router
from kpi_report.api.narrative import router as narrative_router
from kpi_report.api.records import router as records_router

# Create main API router
api_router = APIRouter()

# Every router carries its own prefix
api_router.include_router(analytics_router)
api_router.include_router(narrative_router)
api_router.include_router(records_router)

__all__ = [
    "api_router",
    "analytics_router",
    "narrative_router",
    "records_router",
]
