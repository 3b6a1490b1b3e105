"""
Settings and environment management module for the KPI Report backend.

This module provides centralized configuration management using pydantic-settings,
which automatically loads settings from environment variables and .env files.

Key Features:
- Environment variable validation and type coercion
- Sensible defaults for local use (no variable is required)
- Singleton pattern via @lru_cache for efficient access
- Optional Anthropic credentials for the AI narrative feature
- Analytics policy constants (sample thresholds, priority cutoffs) kept as
  tunable configuration rather than literals scattered through the engine

Environment Variables:
- ANTHROPIC_API_KEY: API key for AI narrative generation (optional; can also
  be saved through the key-value store at runtime)
- ANTHROPIC_MODEL: Model identifier used for narratives
- STORE_PATH: JSON file backing the key-value store (unset = in-memory)

Analytics Policy Defaults:
- min_region_sample: 3 (minimum denominator for department-level rollups)
- min_agent_region_sample: 2 (minimum denominator for agent-scoped rollups)
- min_segment_sample: 3 (minimum denominator for client-segment rollups)
- high_priority_deviation: 15.0 points / medium_priority_deviation: 7.0 points
- high_priority_min_volume: 10 (volume needed on top of the gap for 'high')

Usage:
    from kpi_report.core.config import get_settings

    settings = get_settings()
    threshold = settings.min_region_sample
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The class inherits from pydantic-settings BaseSettings which provides:
    - Automatic loading from environment variables (case-insensitive)
    - Support for .env file loading
    - Type validation and coercion
    - Default values for optional settings

    Attributes:
        anthropic_api_key: Anthropic API key for narrative generation.
        anthropic_model: Model identifier passed to the Messages API.
        narrative_max_tokens: Token budget for one narrative response.
        narrative_timeout_seconds: Timeout applied to the narrative call.
        store_path: Path of the JSON key-value store file.
        min_region_sample: Minimum denominator for department region rollups.
        min_agent_region_sample: Minimum denominator for agent region rollups.
        min_segment_sample: Minimum denominator for client-segment rollups.
        top_n: Length of ranked top/bottom lists.
        high_priority_deviation: Gap (points) needed for a 'high' recommendation.
        medium_priority_deviation: Gap (points) needed for a 'medium' recommendation.
        high_priority_min_volume: Volume needed (with the gap) for 'high'.
        trend_periods: Number of trailing calendar months in trend views.
        regression_r_squared_threshold: Minimum R² for a trend line to be reported.
        quartile_min_passthroughs: Passthrough volume needed to enter quartile ranking.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    # =========================================================================
    # Anthropic Integration (Optional - for AI narratives)
    # =========================================================================

    anthropic_api_key: Optional[str] = None
    anthropic_model: str = 'claude-sonnet-4-20250514'
    narrative_max_tokens: int = 800
    narrative_timeout_seconds: float = 60.0

    # =========================================================================
    # Local Key-Value Store
    # =========================================================================

    # Unset keeps API keys and cached narratives in process memory only
    store_path: Optional[str] = None

    # =========================================================================
    # Analytics Policy (tunable; ordering behavior matters, not the numbers)
    # =========================================================================

    # Buckets below these denominators are excluded from ranked outputs
    min_region_sample: int = 3
    min_agent_region_sample: int = 2
    min_segment_sample: int = 3

    top_n: int = 5

    # Recommendation priority cutoffs, in percentage points of rate gap
    high_priority_deviation: float = 15.0
    medium_priority_deviation: float = 7.0
    high_priority_min_volume: int = 10

    trend_periods: int = 6
    regression_r_squared_threshold: float = 0.5

    # Agents need this many passthroughs in range to be placed in a quartile
    quartile_min_passthroughs: int = 10


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The application settings instance with all configuration values.

    Raises:
        pydantic.ValidationError: If an environment variable has an invalid value
            (e.g., MIN_REGION_SAMPLE=abc).

    Note:
        To refresh settings in tests, you can clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
