"""
flight_timetable.py — day / night flight loading timetable
===========================================================
One sheet holds two tables side by side, the day shift on the left and the
night shift on the right:

    M/bay | ETD/ETA | Flt No |       TPO       | No || M/bay | ETD/ETA | ...
          |         |        | FWD | MID | AFT |    ||       |         |

The header row is the first row whose column 0 contains "M/bay" and which
also holds an exact "No" cell followed by a second "M/bay"; that "No"
column closes the day table. Columns under a two-row header ("TPO" over
"FWD") are named ``TPO.FWD``; a repeated name gets a running counter
(``TPO.FWD``, ``TPO.FWD1``, ``TPO.FWD2``).

Each table carries its own date / shift / section / supervisor block in
the rows around its header. Document number, revision and attachment come
from the top of the sheet.
"""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from diagnostics import START_NOT_FOUND, DiagnosticLog
from field_normalizer import to_iso_date, to_text
from layouts import Layout
from sheet_anchors import MetadataRule, match_kw, match_strict, scan_metadata
from sheet_grid import Grid, clean, is_blank

logger = logging.getLogger(__name__)

BAY_KW = "M/bay"
SPLIT_KW = "No"
CHILD_HEADERS = ("FWD", "MID", "AFT", "No")
TPO_KW = "TPO"

DOC_SCAN_ROWS = 5
META_ROWS_ABOVE = 10
META_ROWS_BELOW = 3
META_COLS_RIGHT = 5

DOCUMENT_RULES = (
    MetadataRule("document_number", "Document Number:"),
    MetadataRule("revision", "Revision:"),
    MetadataRule("attachment", "Attachment", mode="cell"),
)

# "right" precedes "inline": a value written in the label cell itself wins
TABLE_RULES = (
    MetadataRule("date", "Date:", mode="right"),
    MetadataRule("date", "Date:", pattern=re.compile(r"(?:Ngày-)?Date:\s*(.+)", re.IGNORECASE)),
    MetadataRule("shift", "shift:", pattern=re.compile(r"(?:Ca-?\s*)?shift:\s*(.+)", re.IGNORECASE)),
    MetadataRule("section", "Section:"),
    MetadataRule("ac_supervisor", "ACS Supervisor:"),
    MetadataRule("tpo_supervisor", "Giám sát TPO", mode="line"),
    MetadataRule("tpo_supervisor", "TPO Supervisor", mode="line"),
)


@dataclass(frozen=True)
class TableSpan:
    name: str                 # "day" | "night"
    start_col: int            # the M/bay key column
    end_col: int              # inclusive
    header_row: int


def _split_col(grid: Grid, r: int) -> Optional[int]:
    if not match_kw(grid.cell(r, 0), BAY_KW):
        return None
    row = grid.row(r)
    for c in range(1, len(row)):
        if match_strict(row[c], SPLIT_KW) and match_kw(grid.cell(r, c + 1), BAY_KW):
            return c
    return None


def find_tables(grid: Grid) -> Optional[Tuple[TableSpan, TableSpan]]:
    """
    Day and night table spans, or None when no split header row exists.

    A header merged down several rows matches on each of them; the last one
    holds the column names.
    """
    for r in range(grid.n_rows):
        c = _split_col(grid, r)
        if c is None:
            continue
        while r + 1 < grid.n_rows and _split_col(grid, r + 1) == c:
            r += 1
        width = len(grid.row(r))
        return TableSpan("day", 0, c, r), TableSpan("night", c + 1, max(width - 1, c + 1), r)
    return None


def column_names(grid: Grid, span: TableSpan) -> Dict[int, str]:
    """Output name of every value column right of the key column."""
    names: Dict[int, str] = {}
    counts: Dict[str, int] = {}
    hr = span.header_row
    for c in range(span.start_col + 1, span.end_col + 1):
        head = grid.cell(hr, c)
        if match_kw(head, "ETD/ETA"):
            name = "ETD/ETA"
        elif match_kw(head, "Flt No"):
            name = "FlightNo"
        elif any(match_strict(head, child) for child in CHILD_HEADERS):
            parent = grid.cell(hr - 1, c) if hr > 0 else None
            prefix = TPO_KW if match_kw(parent, TPO_KW) else clean(parent)
            if match_strict(parent, clean(head)):
                prefix = ""                         # header merged down over both rows
            name = f"{prefix}.{clean(head)}" if prefix else clean(head)
            if name in counts:
                n = counts[name]
                counts[name] += 1
                name = f"{name}{n}"
            else:
                counts[name] = 1
        else:
            name = clean(head) or f"col_{c}"
        names[c] = name
    return names


def read_table(grid: Grid, span: TableSpan) -> "OrderedDict[str, Dict[str, Any]]":
    """
    ``{bay: {column: value}}`` for the rows under the header.

    Rows with a blank cell right of the key column are skipped; a bay seen
    twice merges into one entry, later cells winning.
    """
    names = column_names(grid, span)
    flights: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for r in range(span.header_row + 1, grid.n_rows):
        if is_blank(grid.cell(r, span.start_col + 1)):
            continue
        bay = clean(grid.cell(r, span.start_col))
        if not bay:
            continue
        entry = flights.setdefault(bay, {})
        for c, name in names.items():
            v = grid.cell(r, c)
            if not is_blank(v):
                entry[name] = v
    return flights


def table_metadata(grid: Grid, span: TableSpan, last_col: Optional[int] = None) -> Dict[str, Optional[str]]:
    """Date, shift, section and supervisors written around one table's header."""
    rows = range(max(0, span.header_row - META_ROWS_ABOVE), min(grid.n_rows, span.header_row + META_ROWS_BELOW + 1))
    stop = span.end_col + META_COLS_RIGHT
    cols = range(span.start_col, stop + 1 if last_col is None else min(stop, last_col) + 1)
    found = scan_metadata(grid, TABLE_RULES, rows=rows, cols=cols)
    meta = {k: to_text(v) for k, v in found.items()}
    if found["date"] is not None:
        meta["date"] = to_iso_date(found["date"]) or meta["date"]
    return meta


def extract_timetable(grid: Grid, layout: Layout, diagnostics: DiagnosticLog) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    found = scan_metadata(grid, DOCUMENT_RULES, rows=range(min(DOC_SCAN_ROWS, grid.n_rows)))
    metadata: Dict[str, Any] = {k: to_text(v) for k, v in found.items()}

    tables = find_tables(grid)
    if tables is None:
        diagnostics.add(START_NOT_FOUND, f"no '{BAY_KW}' header row split by '{SPLIT_KW}'")
        return [], metadata
    day, night = tables
    metadata["header_row"] = day.header_row

    records: List[Dict[str, Any]] = []
    for span, last_col in ((day, night.start_col - 1), (night, None)):
        metadata[span.name] = table_metadata(grid, span, last_col)
        flights = read_table(grid, span)
        logger.debug("%s table: %d bays", span.name, len(flights))
        for bay, values in flights.items():
            records.append({"table": span.name, "bay": bay, **values})
    return records, metadata


FLIGHT_TIMETABLE = Layout(
    name="flight_timetable",
    description="Day / night loading timetable: one record per bay per shift table",
    start_keywords=(BAY_KW,),
    signals=("m/bay", "etd/eta", "flt no", "document number", "tpo supervisor", "shift:"),
    custom=extract_timetable,
)
