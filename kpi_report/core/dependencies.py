"""
FastAPI dependency injection module for the KPI Report backend.

This module provides reusable FastAPI dependencies for configuration access,
the local key-value store and the analysis clock. Endpoints never call the
system clock or construct stores themselves; tests override these
dependencies through app.dependency_overrides.

Key Dependencies Provided:
- get_settings_dependency: Returns the cached Settings singleton
- get_store_dependency: Returns the global key-value store
- get_now: Returns the "now" every time-relative computation is anchored to
- SettingsDep / StoreDep / ClockDep: Annotated type aliases for endpoints

Usage Examples:
    @router.post("/regional")
    def regional(
        request: RegionalRequest,
        settings: SettingsDep,
        now: ClockDep,
    ) -> DepartmentRegionalPerformance:
        return analyze_regional_performance(request.data, request.timeframe, now, settings)

    # In tests
    app.dependency_overrides[get_now] = lambda: datetime(2026, 10, 15, 12, 0)
"""

from datetime import datetime
from typing import Annotated

from fastapi import Depends

from kpi_report.core.config import Settings, get_settings
from kpi_report.core.storage import KeyValueStore, get_store


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    This is a thin wrapper around get_settings() to enable FastAPI's
    dependency override mechanism for testing:

        app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    """
    return get_settings()


# =============================================================================
# Key-Value Store Dependency
# =============================================================================

def get_store_dependency() -> KeyValueStore:
    """Return the global key-value store (API key, cached narratives)."""
    return get_store()


# =============================================================================
# Clock Dependency
# =============================================================================

def get_now() -> datetime:
    """
    Return the current local time as a naive datetime.

    This is the only place the HTTP layer reads the wall clock; services take
    `now` as an explicit argument so their results are reproducible.
    """
    return datetime.now()


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]

StoreDep = Annotated[KeyValueStore, Depends(get_store_dependency)]

ClockDep = Annotated[datetime, Depends(get_now)]
