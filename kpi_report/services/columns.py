"""
Column discovery for heterogeneous CSV export batches.

Export schemas vary between departments and regions, so no column name is
ever hard-coded. Each semantic field (date, region, owner, reason, ...) is
described by an ordered list of lowercase substring patterns; the first
pattern matching any column name (case-insensitively) wins.

A missing column is never an error. Callers receive None and degrade the
affected metric to an empty result with a "data unavailable" flag.

Key Components:
- find_column: ordered substring pattern matching over a sample row
- find_agent_column: owner-column discovery with the grouped-report priority
- forward_fill_owners: blank/numeric owner cells inherit the last explicit owner
- RowBatch: a batch of rows with per-batch cached column resolution
- Pattern tables for every semantic field the engine reads

Usage:
    batch = RowBatch(raw.trips, date_patterns=TRIP_DATE_PATTERNS)
    region_col = batch.column(REGION_PATTERNS)
    for row, owner in zip(batch.rows, forward_fill_owners(batch.rows, batch.agent_column)):
        ...
"""

import logging
import re
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from kpi_report.models import RawParsedData, Row

logger = logging.getLogger(__name__)


# =============================================================================
# Semantic Pattern Tables (priority order)
# =============================================================================

# Trip creation date (trips batch)
TRIP_DATE_PATTERNS: List[str] = ['created date', 'trip: created date', 'date']

# Passthrough-to-sales date: on the trips batch its presence marks a passthrough
PASSTHROUGH_DATE_PATTERNS: List[str] = [
    'passthrough to sales date',
    'passthrough date',
]

# Date of the passthrough events themselves (passthroughs batch)
PASSTHROUGH_EVENT_DATE_PATTERNS: List[str] = [
    'passthrough to sales date',
    'passthrough date',
    'created date',
    'date',
]

QUOTE_DATE_PATTERNS: List[str] = ['quote first sent', 'created date', 'date']

HOT_PASS_DATE_PATTERNS: List[str] = ['created date', 'enquiry date', 'trip created', 'date']

BOOKING_DATE_PATTERNS: List[str] = ['booking date', 'created date', 'date']

NON_CONVERTED_DATE_PATTERNS: List[str] = ['created date', 'date']

REGION_PATTERNS: List[str] = ['destination', 'region', 'country']

PROGRAM_PATTERNS: List[str] = ['program', 'product']

REASON_PATTERNS: List[str] = [
    'non validated reason',
    'reason',
    'non-validated reason',
    'status reason',
]

NON_VALIDATED_OWNER_PATTERNS: List[str] = ['_agent', 'lead owner', 'agent']

REPEAT_PATTERNS: List[str] = ['repeat/new', 'repeat', 'client type', 'customer type']

B2B_PATTERNS: List[str] = [
    'b2b/b2c',
    'b2b',
    'business type',
    'client category',
    'lead channel',
]

TRIP_NAME_PATTERNS: List[str] = ['trip name', 'trip: trip name', 'opportunity name']

# Owner discovery tiers
GROUPED_AGENT_COLUMN = '_agent'
OWNER_PRIORITY_PATTERNS: List[str] = ['gtt owner', 'owner name', 'last gtt action by']
OWNER_EXACT_NAMES: List[str] = ['agent', 'agent name', 'agentname', 'agent_name', 'name', 'rep']
OWNER_PARTIAL_PATTERNS: List[str] = ['agent', 'owner', 'rep']

_NUMERIC_RE = re.compile(r'^\d+$')


# =============================================================================
# Cell Predicates
# =============================================================================


def is_numeric_text(value: str) -> bool:
    """True for purely-digit strings such as '12' (row counters, ids)."""
    return bool(_NUMERIC_RE.match(value))


def is_meaningful_key(value: Optional[str]) -> bool:
    """A dimension key must be at least 2 characters after trimming."""
    return value is not None and len(value.strip()) >= 2


def has_value(cell: Optional[str]) -> bool:
    """True when a companion cell carries an affirmative (non-blank) value."""
    return cell is not None and cell.strip() != ''


REPEAT_VALUES = {'repeat', 'returning', 'existing'}


def is_repeat_value(cell: Optional[str]) -> bool:
    return (cell or '').strip().lower() in REPEAT_VALUES


def is_b2b_value(cell: Optional[str]) -> bool:
    value = (cell or '').strip().lower()
    return 'b2b' in value or value == 'business'


# =============================================================================
# Column Locators
# =============================================================================


def find_column(row: Optional[Mapping[str, str]], patterns: Sequence[str]) -> Optional[str]:
    """
    Return the first column whose name contains a pattern.

    Patterns are tried in the given priority order; for each pattern the
    row's columns are scanned in order and compared case-insensitively.

    Args:
        row: A sample row (typically the batch's first row).
        patterns: Substring patterns, highest priority first.

    Returns:
        The matching column name as it appears in the row, or None.
    """
    if not row:
        return None
    keys = list(row.keys())
    for pattern in patterns:
        needle = pattern.lower()
        for key in keys:
            if needle in key.lower():
                return key
    return None


def find_agent_column(row: Optional[Mapping[str, str]]) -> Optional[str]:
    """
    Locate the owner/agent column of a batch.

    Priority:
        1. '_agent' (assigned by grouped-report ingestion)
        2. columns containing 'gtt owner', 'owner name' or 'last gtt action by'
        3. exact names: agent, agent name, agentname, agent_name, name, rep
        4. columns containing 'agent', 'owner' or 'rep'
    """
    if not row:
        return None

    if GROUPED_AGENT_COLUMN in row:
        return GROUPED_AGENT_COLUMN

    for key in row:
        lowered = key.lower()
        if any(pattern in lowered for pattern in OWNER_PRIORITY_PATTERNS):
            return key

    for name in OWNER_EXACT_NAMES:
        if name in row:
            return name

    for key in row:
        lowered = key.lower()
        if any(pattern in lowered for pattern in OWNER_PARTIAL_PATTERNS):
            return key

    return None


def forward_fill_owners(
    rows: Sequence[Mapping[str, str]],
    owner_column: Optional[str],
) -> List[Optional[str]]:
    """
    Resolve the effective owner of every row.

    Many exports leave the owner blank on continuation rows: the last
    non-empty, non-purely-numeric owner seen scanning top to bottom applies
    to the current row. Rows before any explicit owner get None.

    Returns:
        A list parallel to `rows`.
    """
    if owner_column is None:
        return [None] * len(rows)

    owners: List[Optional[str]] = []
    current: Optional[str] = None
    for row in rows:
        value = (row.get(owner_column) or '').strip()
        if value and not is_numeric_text(value):
            current = value
        owners.append(current)
    return owners


# =============================================================================
# Row Batch
# =============================================================================


class RowBatch:
    """
    One export batch plus cached column resolution.

    Column lookups are computed from the first row once per pattern list and
    reused for every row of the batch.

    Attributes:
        name: Batch label used in log messages ('trips', 'quotes', ...).
        rows: The raw rows.
        date_column: Resolved date column for window filtering, or None.
    """

    def __init__(
        self,
        rows: Sequence[Row],
        date_patterns: Optional[Sequence[str]] = None,
        name: str = 'rows',
    ):
        self.name = name
        self.rows: List[Row] = list(rows)
        self._cache: Dict[tuple, Optional[str]] = {}
        self._parent: Optional['RowBatch'] = None
        self._agent_column: Optional[str] = None
        self._agent_resolved = False
        self.date_column = self.column(date_patterns) if date_patterns else None

    @property
    def sample(self) -> Optional[Row]:
        return self.rows[0] if self.rows else None

    @property
    def columns(self) -> List[str]:
        return list(self.sample.keys()) if self.sample else []

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def __len__(self) -> int:
        return len(self.rows)

    def subset(self, rows: Sequence[Row], name: Optional[str] = None) -> 'RowBatch':
        """
        A batch over a subset of this batch's rows.

        Column resolution is inherited from the parent, so an agent's or a
        program's slice uses the same columns even when its first row differs.
        """
        child = RowBatch(rows, name=name or self.name)
        child._parent = self
        child._agent_column = self.agent_column
        child._agent_resolved = True
        child.date_column = self.date_column
        return child

    def column(self, patterns: Sequence[str]) -> Optional[str]:
        if self._parent is not None:
            return self._parent.column(patterns)
        key = tuple(patterns)
        if key not in self._cache:
            self._cache[key] = find_column(self.sample, patterns)
        return self._cache[key]

    def require(self, patterns: Sequence[str], field: str) -> Optional[str]:
        """Like column(), but logs a warning when the field is missing."""
        found = self.column(patterns)
        if found is None and not self.is_empty:
            logger.warning(
                f"No {field} column in {self.name} batch "
                f"(columns: {', '.join(self.columns)})"
            )
        return found

    @property
    def agent_column(self) -> Optional[str]:
        if not self._agent_resolved:
            self._agent_column = find_agent_column(self.sample)
            self._agent_resolved = True
        return self._agent_column

    def require_agent(self) -> Optional[str]:
        """Like agent_column, but logs a warning when no owner column exists."""
        found = self.agent_column
        if found is None and not self.is_empty:
            logger.warning(f"No owner column in {self.name} batch")
        return found

    def owners(self, owner_column: Optional[str] = None) -> List[Optional[str]]:
        """Forward-filled owners for every row (defaults to agent_column)."""
        return forward_fill_owners(self.rows, owner_column or self.agent_column)


# =============================================================================
# Debug Aid
# =============================================================================


def discover_columns(raw: RawParsedData) -> Dict[str, List[str]]:
    """List the column names of every non-empty batch."""
    discovered: Dict[str, List[str]] = {}
    batches: Iterable = (
        ('trips', raw.trips),
        ('quotes', raw.quotes),
        ('passthroughs', raw.passthroughs),
        ('hotPass', raw.hotPass),
        ('bookings', raw.bookings),
        ('nonConverted', raw.nonConverted),
    )
    for name, rows in batches:
        if rows:
            discovered[name] = list(rows[0].keys())
    return discovered
