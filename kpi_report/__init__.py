"""
KPI Report Backend Package.

Analytics engine and FastAPI service layer for the sales KPI dashboard.
Turns CSV exports (trips, quotes, passthroughs, hot passes, bookings,
non-converted leads) into ranked, rate-normalized performance breakdowns,
improvement recommendations, meeting-agenda snapshots and AI narrative prompts.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, key-value storage and dependencies
    - models: Pydantic schemas and enums
    - services: Analytics engine (pure functions) and external collaborators
"""

__version__ = "1.0.0"
