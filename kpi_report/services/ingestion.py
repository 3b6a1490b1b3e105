"""
CSV report ingestion for the KPI Report backend.

Turns CRM report exports into the normalized rows the engine consumes
(lowercased, trimmed column names; every cell a trimmed string).

Report exports are not plain tables:
- a preamble (report title, filter descriptions) precedes the header row
- rows are often grouped under an owner: a "group header" row carrying only
  the owner's name, followed by member rows with a blank owner cell
- subtotal / grand total rows are interleaved

Parsing rules:
1. Header row: the first of the top 50 rows with at least 4 non-empty cells
   that mentions a known header (owner name, created date, ...) and is not
   a filter description ('contains ', 'equals '). Falls back to row 0.
2. Blank header cells become 'column_<index>'.
3. Fully empty rows are dropped.
4. A row with at most 2 non-empty cells whose first cell is longer than 3
   characters, contains a space or comma, does not start with a digit and
   does not mention 'total' is a group header: it sets the current owner
   and is not emitted.
5. With an owner column, blank owner cells take the current owner; without
   one, member rows get an '_agent' column.
6. Rows whose owner is 'total', 'subtotal' or contains 'grand total' are
   dropped.

Usage:
    with open("trips.csv", "rb") as fh:
        trips = parse_report(fh)
    raw = build_raw_data({"trips": trips_file, "quotes": quotes_file})
"""

import csv
import io
import logging
from typing import Any, BinaryIO, Dict, List, Mapping, Optional, TextIO, Union

import pandas as pd

from kpi_report.models import DataKind, RawParsedData, Row
from kpi_report.services.columns import GROUPED_AGENT_COLUMN

logger = logging.getLogger(__name__)

Source = Union[str, bytes, BinaryIO, TextIO]


# =============================================================================
# Constants
# =============================================================================

HEADER_SCAN_LIMIT = 50
MIN_HEADER_CELLS = 4

HEADER_PATTERNS: List[str] = [
    'owner name',
    'last gtt action by',
    'trip name',
    'account name',
    'created date',
    'quote first sent',
    'passthrough',
]

FILTER_ROW_MARKERS = ('contains ', 'equals ')

# Owner column used to attribute rows during ingestion
INGEST_OWNER_PATTERNS: List[str] = ['gtt owner', 'owner name', 'agent', 'last gtt action by']

SUMMARY_OWNER_VALUES = {'total', 'subtotal'}


class IngestionError(ValueError):
    """The input could not be read as a CSV report."""


# =============================================================================
# Reading
# =============================================================================


def _read_text(source: Source) -> str:
    if hasattr(source, 'read'):
        content = source.read()
    else:
        content = source
    if isinstance(content, bytes):
        try:
            return content.decode('utf-8-sig')
        except UnicodeDecodeError:
            return content.decode('latin-1')
    return content


def read_grid(source: Source) -> pd.DataFrame:
    """
    Read a CSV into a headerless grid of strings (ragged rows padded with '').

    Raises:
        IngestionError: If the content cannot be tokenized.
    """
    text = _read_text(source)
    if not text.strip():
        return pd.DataFrame()

    try:
        width = max((len(fields) for fields in csv.reader(io.StringIO(text))), default=0)
        grid = pd.read_csv(
            io.StringIO(text),
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except (csv.Error, pd.errors.ParserError, ValueError) as e:
        raise IngestionError(f"Failed to parse CSV file: {e}") from e

    logger.info(f"Parsed CSV grid with {len(grid)} rows and {width} columns")
    return grid.fillna('').apply(lambda column: column.str.strip())


def detect_header_row(grid: pd.DataFrame) -> int:
    """Index of the report's header row (0 when none is recognized)."""
    for index in range(min(HEADER_SCAN_LIMIT, len(grid))):
        cells = [cell for cell in grid.iloc[index].tolist() if cell]
        joined = '|'.join(cells).lower()
        if any(marker in joined for marker in FILTER_ROW_MARKERS):
            continue
        if len(cells) < MIN_HEADER_CELLS:
            continue
        if any(pattern in joined for pattern in HEADER_PATTERNS):
            return index
    return 0


def normalize_headers(cells: List[Any]) -> List[str]:
    headers = []
    for index, cell in enumerate(cells):
        name = str(cell or '').strip().lower()
        headers.append(name or f"column_{index}")
    return headers


def looks_like_group_header(values: List[str]) -> bool:
    first = values[0] if values else ''
    non_empty = sum(1 for value in values if value)
    return (
        non_empty <= 2
        and len(first) > 3
        and (' ' in first or ',' in first)
        and not first[:1].isdigit()
        and 'total' not in first.lower()
    )


def is_summary_owner(value: str) -> bool:
    lowered = value.strip().lower()
    return lowered in SUMMARY_OWNER_VALUES or 'grand total' in lowered


# =============================================================================
# Parsing
# =============================================================================


def parse_report(source: Source) -> List[Row]:
    """
    Parse a (possibly grouped) CRM report export into normalized rows.

    Raises:
        IngestionError: If the content cannot be read as CSV.
    """
    grid = read_grid(source)
    if grid.empty:
        return []

    header_index = detect_header_row(grid)
    headers = normalize_headers(grid.iloc[header_index].tolist())
    owner_key = next(
        (h for h in headers if any(p in h for p in INGEST_OWNER_PATTERNS)),
        None,
    )

    rows: List[Row] = []
    current_agent = ''
    group_headers = 0
    summaries = 0

    for values in grid.iloc[header_index + 1:].itertuples(index=False, name=None):
        values = list(values)
        if not any(values):
            continue

        if looks_like_group_header(values):
            current_agent = values[0]
            group_headers += 1
            continue

        row: Row = dict(zip(headers, values))
        if owner_key is not None:
            if row[owner_key]:
                current_agent = row[owner_key]
            else:
                row[owner_key] = current_agent
            if is_summary_owner(row[owner_key]):
                summaries += 1
                continue
        elif current_agent:
            row[GROUPED_AGENT_COLUMN] = current_agent

        rows.append(row)

    logger.info(
        f"Parsed report: header at row {header_index}, {len(rows)} rows, "
        f"{group_headers} group headers, {summaries} summary rows dropped"
    )
    return rows


def parse_csv(source: Source) -> List[Row]:
    """Parse a plain CSV (first line is the header) into normalized rows."""
    grid = read_grid(source)
    if grid.empty:
        return []
    headers = normalize_headers(grid.iloc[0].tolist())
    return [
        dict(zip(headers, values))
        for values in grid.iloc[1:].itertuples(index=False, name=None)
        if any(values)
    ]


def build_raw_data(
    sources: Mapping[Union[str, DataKind], Optional[Source]],
) -> RawParsedData:
    """
    Parse one report per batch into RawParsedData.

    Keys are batch names (trips, quotes, passthroughs, hotPass, bookings,
    nonConverted); missing or None sources become empty batches.

    Raises:
        IngestionError: For an unknown batch name or an unreadable file.
    """
    batches: Dict[str, List[Row]] = {}
    for name, source in sources.items():
        try:
            kind = DataKind(name)
        except ValueError:
            raise IngestionError(f"Unknown data batch: {name!r}") from None
        if source is None:
            continue
        batches[kind.value] = parse_report(source)
        logger.info(f"Ingested {len(batches[kind.value])} {kind.value} rows")
    return RawParsedData(**batches)
