"""
Core infrastructure package for the KPI Report backend.

Provides:
- Configuration management via pydantic-settings
- Local key-value storage (API key, cached narratives)
- FastAPI dependency injection utilities

This module re-exports key components from submodules for convenient importing:

    from kpi_report.core import get_settings, get_store, SettingsDep

Components Re-exported:
    Settings: Pydantic settings class with all configuration parameters
    get_settings: Function returning the cached Settings singleton
    KeyValueStore / InMemoryStore / JsonFileStore: Store implementations
    init_store / get_store / close_store: Store singleton lifecycle
    SettingsDep / StoreDep / ClockDep: Dependency injection type aliases
"""

# =============================================================================
# Re-exports from kpi_report.core.config
# =============================================================================
from kpi_report.core.config import Settings, get_settings

# =============================================================================
# Re-exports from kpi_report.core.storage
# =============================================================================
from kpi_report.core.storage import (
    KeyValueStore,
    InMemoryStore,
    JsonFileStore,
    init_store,
    get_store,
    close_store,
)

# =============================================================================
# Re-exports from kpi_report.core.dependencies
# =============================================================================
from kpi_report.core.dependencies import (
    get_settings_dependency,
    get_store_dependency,
    get_now,
    SettingsDep,
    StoreDep,
    ClockDep,
)

__all__ = [
    # Configuration management (from config.py)
    'Settings',
    'get_settings',
    # Key-value storage (from storage.py)
    'KeyValueStore',
    'InMemoryStore',
    'JsonFileStore',
    'init_store',
    'get_store',
    'close_store',
    # FastAPI dependency injection (from dependencies.py)
    'get_settings_dependency',
    'get_store_dependency',
    'get_now',
    'SettingsDep',
    'StoreDep',
    'ClockDep',
]
