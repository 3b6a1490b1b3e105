"""
Pytest Configuration and Shared Fixtures for KPI Report Backend Tests.

This module provides fixtures for every backend test module:
- A fixed analysis clock (NOW = Thursday 2026-10-15 12:00) so timeframe
  windows resolve identically on every run
- Settings built without reading .env or the process environment's
  optional Anthropic key
- An in-memory key-value store
- A small department export (two agents, four regions, six batches) whose
  numbers are worked out below so tests can assert exact values
- A FastAPI TestClient with the clock, settings and store overridden

Sample department, September 2026 (lastMonth relative to NOW):

    trips (owner forward-filled)       trips  passthroughs
        Alice Smith  Paris                 6            4   (all Repeat)
        Alice Smith  Rome                  3            0
        Bob Jones    Paris                 4            0
        Bob Jones    Rome                  3            2   (all B2B)
        Bob Jones    Nowhere               2            1   (program Faraway)
    plus one August trip: Alice Smith, Lisbon, no passthrough

    department Paris 10/4 = 40.0%, Rome 6/2 = 33.3%, Nowhere below the
    3-trip threshold; baseline (Paris + Rome) 6/16 = 37.5%

    quotes: Paris 3 (Alice), Rome 1 (Bob); hot passes: Paris 2 (Alice)
    passthrough events: Tue 09-01 10:30, Tue 09-08 11:00, Tue 09-08 14:00,
        Thu 09-03 16:00 (three Alice, one Bob)
    non-validated leads: Alice 2x "No response", 1x "Budget";
        Bob 1x "Budget", 1x blank reason
    bookings: Alice 1
"""

from datetime import datetime
from typing import Dict, List
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from kpi_report.core.config import Settings
from kpi_report.core.storage import InMemoryStore
from kpi_report.models import RawParsedData


NOW = datetime(2026, 10, 15, 12, 0)


# ============================================================
# ROW BUILDERS
# ============================================================

def trip(
    owner: str,
    region: str,
    created: str,
    passthrough: str = '',
    repeat: str = 'New',
    b2b: str = 'B2C',
    program: str = 'Europe',
) -> Dict[str, str]:
    """One trips-batch row with the column names CRM exports use."""
    return {
        'gtt owner': owner,
        'destination': region,
        'created date': created,
        'passthrough to sales date': passthrough,
        'repeat/new': repeat,
        'b2b/b2c': b2b,
        'program': program,
    }


def sample_trips() -> List[Dict[str, str]]:
    rows = [
        trip('Alice Smith', 'Paris', '2026-09-01 09:00', '2026-09-02', repeat='Repeat'),
        trip('', 'Paris', '2026-09-02', '2026-09-03', repeat='Repeat'),
        trip('', 'Paris', '2026-09-03', '2026-09-04', repeat='Repeat'),
        trip('', 'Paris', '2026-09-04', '2026-09-05', repeat='Repeat'),
        trip('', 'Paris', '2026-09-05'),
        trip('', 'Paris', '2026-09-06'),
        trip('', 'Rome', '2026-09-07'),
        trip('', 'Rome', '2026-09-08'),
        trip('', 'Rome', '2026-09-09'),
        trip('Bob Jones', 'Paris', '2026-09-10'),
        trip('', 'Paris', '2026-09-11'),
        trip('', 'Paris', '2026-09-12'),
        trip('', 'Paris', '2026-09-13'),
        trip('', 'Rome', '2026-09-14', '2026-09-15', b2b='B2B'),
        trip('', 'Rome', '2026-09-15', '2026-09-16', b2b='B2B'),
        trip('', 'Rome', '2026-09-16', b2b='B2B'),
        trip('', 'Nowhere', '2026-09-17', '2026-09-18', program='Faraway'),
        trip('', 'Nowhere', '2026-09-18', program='Faraway'),
        trip('Alice Smith', 'Lisbon', '2026-08-20'),
    ]
    return rows


# ============================================================
# CORE FIXTURES
# ============================================================

@pytest.fixture
def now() -> datetime:
    """The fixed analysis clock."""
    return NOW


@pytest.fixture
def test_settings() -> Settings:
    """
    Settings with the default analytics policy and no Anthropic key.

    _env_file=None keeps a developer's .env out of the test run.
    """
    return Settings(_env_file=None, anthropic_api_key=None, store_path=None)


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def sample_raw() -> RawParsedData:
    """The department export described in the module docstring."""
    return RawParsedData(
        trips=sample_trips(),
        quotes=[
            {'gtt owner': 'Alice Smith', 'destination': 'Paris', 'quote first sent': '2026-09-03'},
            {'gtt owner': '', 'destination': 'Paris', 'quote first sent': '2026-09-04'},
            {'gtt owner': '', 'destination': 'Paris', 'quote first sent': '2026-09-05'},
            {'gtt owner': 'Bob Jones', 'destination': 'Rome', 'quote first sent': '2026-09-17'},
        ],
        passthroughs=[
            {'gtt owner': 'Alice Smith', 'passthrough to sales date': '2026-09-01 10:30'},
            {'gtt owner': '', 'passthrough to sales date': '2026-09-08 11:00'},
            {'gtt owner': '', 'passthrough to sales date': '2026-09-08 14:00'},
            {'gtt owner': 'Bob Jones', 'passthrough to sales date': '2026-09-03 16:00'},
        ],
        hotPass=[
            {'gtt owner': 'Alice Smith', 'destination': 'Paris', 'created date': '2026-09-02'},
            {'gtt owner': '', 'destination': 'Paris', 'created date': '2026-09-03'},
        ],
        bookings=[
            {'gtt owner': 'Alice Smith', 'booking date': '2026-09-10'},
        ],
        nonConverted=[
            {'lead owner': 'Alice Smith', 'created date': '2026-09-02', 'non validated reason': 'No response'},
            {'lead owner': '', 'created date': '2026-09-03', 'non validated reason': 'No response'},
            {'lead owner': '', 'created date': '2026-09-04', 'non validated reason': 'Budget'},
            {'lead owner': 'Bob Jones', 'created date': '2026-09-05', 'non validated reason': 'Budget'},
            {'lead owner': '', 'created date': '2026-09-06', 'non validated reason': ''},
        ],
    )


# ============================================================
# NARRATIVE FIXTURES
# ============================================================

NARRATIVE_TEXT = (
    "**Key Findings:**\n"
    "- Tuesday carries 75% of passthroughs\n"
    "\n"
    "Focus follow-ups early in the week."
)


def anthropic_message(text: str) -> MagicMock:
    """A Messages API reply carrying one text block."""
    block = MagicMock()
    block.type = 'text'
    block.text = text
    message = MagicMock()
    message.content = [block]
    return message


@pytest.fixture
def mock_anthropic() -> MagicMock:
    """
    Stand-in for anthropic.Anthropic.

    messages.create returns NARRATIVE_TEXT; tests swap side_effect to
    simulate API failures.
    """
    client = MagicMock()
    client.messages.create.return_value = anthropic_message(NARRATIVE_TEXT)
    return client


# ============================================================
# API FIXTURES
# ============================================================

@pytest.fixture
def api_client(test_settings: Settings, memory_store: InMemoryStore):
    """
    TestClient with the clock, settings and store dependencies overridden.

    The lifespan is not entered, so no global store is created.
    """
    from kpi_report.core.dependencies import (
        get_now,
        get_settings_dependency,
        get_store_dependency,
    )
    from kpi_report.main import app

    app.dependency_overrides[get_now] = lambda: NOW
    app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    app.dependency_overrides[get_store_dependency] = lambda: memory_store
    yield TestClient(app)
    app.dependency_overrides.clear()
